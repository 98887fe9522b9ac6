#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""Tests for record materialization and date formatting."""
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timezone

from dpl.core.config import Settings
from dpl.services.articles import (
    UNCATEGORIZED_LINK, ArticleBuilder, HeadingCounter,
    parse_mw_timestamp, php_date, user_adjust,
)
from dpl.services.parameters import ParameterStore, ParameterValidator
from dpl.services.titles import TitleResolver


# -----------------------------------------------------------------------------

def _builder(settings: Settings = None, invoking: str = None, **options: str) -> ArticleBuilder:
    settings = settings or Settings(environment="testing")
    resolver = TitleResolver()
    store = ParameterStore.with_defaults(settings)
    validator = ParameterValidator(store, settings, resolver)
    for name, option in options.items():
        assert validator.validate(name, option), name
    return ArticleBuilder(
        store, resolver, settings,
        headings=HeadingCounter(),
        invoking_title=resolver.new_from_text(invoking) if invoking else None,
    )


def _row(title, ns=0, page_id=7, **extra):
    return {"page_namespace": ns, "page_title": title, "page_id": page_id, **extra}


# ── Links ─────────────────────────────────────────────────────────────────────

def test_basic_record():
    record = _builder(category="Foo").build(_row("Foo_bar"))
    assert record.namespace == 0
    assert record.title == "Foo bar"
    assert record.prefixed_title == "Foo bar"
    assert record.page_id == 7
    assert record.link == "[[Foo bar|Foo bar]]"
    assert record.start_char == "F"
    assert record.revision is None
    assert record.user is None


def test_start_char_from_sortkey():
    record = _builder(category="Foo").build(_row("Foo_bar", sortkey="zeta"))
    assert record.start_char == "Z"


def test_category_link_is_escaped():
    record = _builder(category="Foo").build(_row("Fruit", ns=14))
    assert record.link == "[[:Category:Fruit|Category:Fruit]]"


def test_without_namespace_text():
    record = _builder(category="Foo", shownamespace="false").build(_row("Fruit", ns=14))
    assert record.link == "[[:Category:Fruit|Fruit]]"


def test_unescaped_category_link():
    record = _builder(category="Foo", escapelinks="false").build(_row("Fruit", ns=14))
    assert record.link == "[[Category:Fruit|Category:Fruit]]"


def test_showcurid_link():
    record = _builder(category="Foo", showcurid="true").build(_row("Foo_bar"))
    assert record.link == "[/index.php?title=Foo_bar&curid=7 Foo bar]"


def test_link_text_is_html_escaped():
    record = _builder(category="Foo").build(_row("A&B"))
    assert record.link == "[[A&B|A&amp;B]]"


def test_replace_and_truncate_title():
    builder = _builder(category="Foo", replaceintitle="/bar/,baz")
    assert builder.build(_row("Foo_bar")).title_text == "Foo baz"

    builder = _builder(category="Foo", titlemaxlen="3")
    assert builder.build(_row("Foo_bar")).link == "[[Foo bar|Foo...]]"


def test_subpages_can_be_skipped():
    assert _builder(category="Foo").build(_row("Foo/Sub")) is not None
    assert _builder(category="Foo", includesubpages="false").build(_row("Foo/Sub")) is None


def test_invoking_page_is_skipped():
    assert _builder(invoking="Foo bar", category="Foo").build(_row("Foo_bar")) is None
    builder = _builder(invoking="Foo bar", category="Foo", skipthispage="no")
    assert builder.build(_row("Foo_bar")) is not None


# ── Query modes ───────────────────────────────────────────────────────────────

def test_category_goal_row():
    record = _builder(category="Foo", goal="categories").build({"cl_to": "Fruit"})
    assert record.namespace == 14
    assert record.title == "Fruit"
    assert record.link == "[[:Category:Fruit|Category:Fruit]]"
    assert record.heading_key is None


def test_open_references_row():
    record = _builder(openreferences="yes", namespace="").build({"pl_namespace": 0, "pl_title": "Missing_page"})
    assert record.title == "Missing page"
    assert record.page_id == 0


def test_linksto_without_selection_echo():
    builder = _builder(linksto="Main Page")
    assert builder.build(_row("Foo")).sel_title == "unknown page"
    record = builder.build(_row("Bar", sel_title="Main_Page", sel_ns=0))
    assert (record.sel_title, record.sel_namespace) == ("Main_Page", 0)


# ── Enrichment ────────────────────────────────────────────────────────────────

def test_page_size_and_counter():
    record = _builder(category="Foo", addpagesize="true").build(_row("Foo", page_len=512, page_counter=3))
    assert record.size == 512
    assert record.counter == 3


def test_contribution_glyphs():
    builder = _builder(category="Foo", addcontribution="true")
    record = builder.build(_row("Foo", contribution=100, contributor="Alice"))
    assert record.contribution == 100
    assert record.contrib == "*****"
    assert record.contributor == "Alice"
    assert builder.build(_row("Bar", contribution=1)).contrib == ""


def test_categories_are_sorted_and_unique():
    record = _builder(category="Foo", addcategories="true").build(_row("Foo", cats="B_c | A | B_c"))
    assert record.category_texts == ["A", "B c"]
    assert record.category_links == ["[[:Category:A|A]]", "[[:Category:B_c|B c]]"]


def test_page_touched_date():
    builder = _builder(category="Foo", addpagetoucheddate="true", userdateformat="Y-m-d H:i")
    record = builder.build(_row("Foo", page_touched="20240315083000"))
    assert record.date == "20240315083000"
    assert record.user_date == "2024-03-15 08:30"


def test_date_in_display_timezone():
    settings = Settings(environment="testing", display_timezone="Europe/Berlin")
    record = _builder(settings, category="Foo", addpagetoucheddate="true").build(
        _row("Foo", page_touched="20240315083000"),
    )
    assert record.date == "20240315093000"


def test_revision_fields_need_a_window():
    row = _row("Foo", rev_id=11, rev_user_text="Bob", rev_timestamp="20240301000000", rev_comment="fix")
    assert _builder(category="Foo").build(row).revision is None

    record = _builder(category="Foo", allrevisionssince="20240101").build(row)
    assert record.revision == 11
    assert record.user == "Bob"
    assert record.date == "20240301000000"
    assert record.comment == "fix"


def test_author_link():
    record = _builder(category="Foo", addauthor="true").build(_row("Foo", rev_user_text="Alice"))
    assert record.user == "Alice"
    assert record.user_link == "[[User:Alice|Alice]]"


# ── Headings ──────────────────────────────────────────────────────────────────

def test_category_headings_count_as_they_go():
    builder = _builder(category="Foo|Bar", ordermethod="category,title")
    first  = builder.build(_row("A", cl_to="Fruit"))
    second = builder.build(_row("B", cl_to="Fruit"))
    uncat  = builder.build(_row("C", cl_to=""))
    assert (first.heading_key, first.heading_count) == ("Fruit", 1)
    assert (second.heading_key, second.heading_count) == ("Fruit", 2)
    assert first.heading_link == "[[:Category:Fruit|Fruit]]"
    assert uncat.heading_link == UNCATEGORIZED_LINK
    assert builder.headings.items() == [("Fruit", 2), ("", 1)]


def test_heading_counts_are_per_key():
    builder = _builder(category="Foo", ordermethod="category,title")
    counts = [builder.build(_row(str(i), cl_to=key)).heading_count for i, key in enumerate("AABA")]
    assert counts == [1, 2, 1, 3]


def test_user_headings():
    builder = _builder(category="Foo", ordermethod="user,title")
    record = builder.build(_row("A", rev_user_text="Bob"))
    assert record.heading_key == "Bob"
    assert record.heading_link == "[[User:Bob|Bob]]"
    assert builder.build(_row("B")).heading_key is None


# ── Dates ─────────────────────────────────────────────────────────────────────

def test_php_date():
    when = datetime(2024, 3, 1, 13, 5, 9, tzinfo=timezone.utc)
    assert php_date("jS F Y", when) == "1st March 2024"
    assert php_date("D, d M y", when) == "Fri, 01 Mar 24"
    assert php_date("g:i a", when) == "1:05 pm"
    assert php_date("H:i:s", when) == "13:05:09"
    assert php_date("L t", when) == "1 31"
    assert php_date("\\Y-m", when) == "Y-03"
    assert php_date("jS", when.replace(day=11)) == "11th"
    assert php_date("jS", when.replace(day=22)) == "22nd"


def test_user_adjust():
    assert user_adjust("20240101120000", "Europe/Berlin") == "20240101130000"
    assert user_adjust("20240101120000", "Not/AZone") == "20240101120000"
    assert user_adjust("2024") is None


def test_parse_mw_timestamp():
    assert parse_mw_timestamp("20240315083000") == datetime(2024, 3, 15, 8, 30, tzinfo=timezone.utc)
    assert parse_mw_timestamp("20241399000000") is None
    assert parse_mw_timestamp(None) is None


# -----------------------------------------------------------------------------
