#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""Tests for the diagnostics channel and the pre-build error checks."""
# -----------------------------------------------------------------------------

from __future__ import annotations

from dpl.core.config import Settings
from dpl.services.diagnostics import DiagnosticCode, Diagnostics, Severity
from dpl.services.evaluation import header_footer_type, query_error_checks, replace_variables
from dpl.services.parameters import ParameterStore, ParameterValidator
from dpl.services.titles import TitleResolver


# -----------------------------------------------------------------------------

def _store(settings: Settings, **options: str) -> ParameterStore:
    store = ParameterStore.with_defaults(settings)
    validator = ParameterValidator(store, settings, TitleResolver())
    for name, option in options.items():
        assert validator.validate(name, option), name
    return store


def _check(store, settings, **kwargs):
    d = Diagnostics()
    ok = query_error_checks(store, settings, d, **kwargs)
    return ok, d


# ── Channel ───────────────────────────────────────────────────────────────────

def test_add_and_levels():
    d = Diagnostics()
    d.add(DiagnosticCode.QUERY_SQL, "SELECT 1")
    d.add(DiagnosticCode.WRONG_PARAM, "count", "abc")
    assert not d.has_critical
    assert [x.code for x in d.reported()] == [DiagnosticCode.WRONG_PARAM]

    d.level = 3
    assert len(d.reported()) == 2

    d.add(DiagnosticCode.NO_SELECTION)
    d.level = 1
    assert d.has_critical
    assert d.codes() == [30, 14, 5]
    assert [x.severity for x in d.reported()] == [Severity.CRITICAL]


def test_message_formatting():
    d = Diagnostics()
    item = d.add(DiagnosticCode.WRONG_PARAM, "count", "abc")
    assert item.message == "Invalid value 'abc' for parameter 'count'"
    assert item.as_dict() == {
        "code": 14, "name": "WRONG_PARAM", "severity": 2,
        "message": "Invalid value 'abc' for parameter 'count'",
    }


# ── Error checks ──────────────────────────────────────────────────────────────

def test_checks_pass_for_plain_category():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo"), settings)
    assert ok
    assert d.items == []


def test_too_many_categories():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="A|B|C|D|E"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.TOO_MANY_CATEGORIES]


def test_unlimited_categories():
    settings = Settings(environment="testing", allow_unlimited_categories=True)
    ok, _ = _check(_store(settings, category="A|B|C|D|E"), settings)
    assert ok


def test_too_few_categories():
    settings = Settings(environment="testing", min_category_count=2)
    ok, d = _check(_store(settings, category="A"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.TOO_FEW_CATEGORIES]


def test_no_selection():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.NO_SELECTION]


def test_order_method_needs_categories():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, namespace="Help", ordermethod="categoryadd"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.NO_CATEGORIES_FOR_ORDER_METHOD]


def test_first_category_date_needs_categories():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, namespace="Help", addfirstcategorydate="true"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.NO_CATEGORIES_FOR_ADD_DATE]


def test_more_than_one_date():
    settings = Settings(environment="testing")
    store = _store(settings, category="Foo", addpagetoucheddate="true", addfirstcategorydate="true")
    ok, d = _check(store, settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.MORE_THAN_ONE_TYPE_OF_DATE]


def test_author_and_last_editor_conflict():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo", addauthor="true", addlasteditor="true"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.CONFLICTING_USER_PARAMETERS]


def test_dominant_section_range():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo", include="intro", dominantsection="3"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.DOMINANT_SECTION_RANGE]


def test_category_mode_needs_category_order():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo", mode="category", ordermethod="size"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.WRONG_ORDER_METHOD]


def test_minoredits_needs_edit_order():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo", minoredits="exclude"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.WRONG_ORDER_METHOD]


def test_uncategorized_needs_view():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="_none_"), settings, category_view_exists=False)
    assert not ok
    assert d.codes() == [DiagnosticCode.NO_CL_VIEW]


def test_category_mode_ignores_add_parameters():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, category="Foo", mode="category", addcategories="true"), settings)
    assert ok
    assert d.codes() == [DiagnosticCode.CAT_OUTPUT_BUT_WRONG_PARAMS]


def test_heading_mode_falls_back_to_none():
    settings = Settings(environment="testing")
    store = _store(settings, category="Foo", headingmode="h2", ordermethod="title")
    ok, d = _check(store, settings)
    assert ok
    assert d.codes() == [DiagnosticCode.HEADING_MODE_TOO_FEW_ORDER_METHODS]
    assert store.get("headingmode") == "none"


def test_open_references_conflict():
    settings = Settings(environment="testing")
    ok, d = _check(_store(settings, openreferences="yes", category="Foo"), settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.OPEN_REFERENCES]


def test_checks_stop_at_first_critical():
    settings = Settings(environment="testing")
    store = _store(
        settings, category="A|B|C|D|E", openreferences="yes",
        addauthor="true", addlasteditor="true",
    )
    ok, d = _check(store, settings)
    assert not ok
    assert d.codes() == [DiagnosticCode.TOO_MANY_CATEGORIES]


# ── Header and footer helpers ─────────────────────────────────────────────────

def test_header_footer_selection():
    settings = Settings(environment="testing")
    store = _store(
        settings, category="Foo",
        resultsheader="Found %PAGES%", noresultsheader="Nothing", oneresultheader="Just one",
    )
    assert header_footer_type(store, "header", 0) == "noresultsheader"
    assert header_footer_type(store, "header", 1) == "oneresultheader"
    assert header_footer_type(store, "header", 2) == "resultsheader"
    assert header_footer_type(store, "footer", 2) is None


def test_replace_variables():
    assert replace_variables("%PAGES% of %TOTALPAGES%", {"PAGES": 2, "TOTALPAGES": 9}) == "2 of 9"
    assert replace_variables("%UNKNOWN%", {"PAGES": 2}) == "%UNKNOWN%"


# -----------------------------------------------------------------------------
