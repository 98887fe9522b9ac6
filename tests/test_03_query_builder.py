#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""Tests for the SQL query builder and the parameter-to-SQL handlers."""
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from dpl.core.config import Settings
from dpl.core.errors import QueryBuildError
from dpl.models import CATEGORY_VIEW
from dpl.services.diagnostics import Diagnostics
from dpl.services.input_parser import parse_input
from dpl.services.parameters import ParameterStore, ParameterValidator, sort_by_priority
from dpl.services.query import Dialect, QueryBuilder
from dpl.services.query_handlers import QueryAssembler, convert_timestamp
from dpl.services.titles import TitleResolver
from tests.conftest import NOW


# -----------------------------------------------------------------------------

def _store(text: str, settings: Settings) -> ParameterStore:
    d = Diagnostics()
    store = ParameterStore.with_defaults(settings)
    validator = ParameterValidator(store, settings, TitleResolver())
    for name, options in sort_by_priority(parse_input(text, d)).items():
        for option in options:
            assert validator.validate(name, option), (name, option)
    assert d.items == []
    return store


def _assemble(text: str, settings: Settings = None, dialect: str = "sqlite", **values) -> QueryBuilder:
    settings = settings or Settings(environment="testing")
    store = _store(text, settings)
    for name, value in values.items():
        store.set(name, value)
    return QueryAssembler(store, settings, TitleResolver(), dialect=dialect, now=NOW).build()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QueryBuilder
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def test_render_basic():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_table("categorylinks", "cl1")
    q.add_join("cl1", "INNER JOIN", "page.page_id = cl1.cl_from")
    q.add_select({"page_title": "page.page_title"})
    q.add_order_by("page.page_title")
    q.set_limit(5)
    assert q.render() == (
        "SELECT DISTINCT page.page_title AS page_title FROM page "
        "INNER JOIN categorylinks AS cl1 ON (page.page_id = cl1.cl_from) "
        "ORDER BY page.page_title ASC LIMIT 5"
    )


def test_render_cross_join_and_where():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_table("revision", "rev")
    q.add_select(["rev.rev_user_text"])
    q.add_where(["page.page_id = rev.rev_page", "rev.rev_minor_edit = 0"])
    q.distinct = False
    assert q.render() == (
        "SELECT rev.rev_user_text AS rev_user_text FROM page CROSS JOIN revision AS rev "
        "WHERE (page.page_id = rev.rev_page) AND (rev.rev_minor_edit = 0)"
    )


def test_add_table():
    q = QueryBuilder()
    assert q.add_table("page", "page") is True
    assert q.add_table("page", "page") is True
    assert q.add_table("revision", "page") is False
    assert q.tables == {"page": "page"}
    with pytest.raises(QueryBuildError):
        q.add_table("page", "12")
    with pytest.raises(QueryBuildError):
        q.add_table("", "x")


def test_add_join_twice():
    q = QueryBuilder()
    q.add_join("cl1", "INNER JOIN", "a = b")
    with pytest.raises(QueryBuildError):
        q.add_join("cl1", "LEFT JOIN", "a = c")


def test_add_select_conflict():
    q = QueryBuilder()
    q.add_select({"sortkey": "page.page_title"})
    q.add_select({"sortkey": "page.page_title"})
    with pytest.raises(QueryBuildError):
        q.add_select({"sortkey": "page.page_len"})
    q.add_select(["rev.rev_timestamp"])
    assert q.select == {"sortkey": "page.page_title", "rev_timestamp": "rev.rev_timestamp"}


def test_add_where_binds_values():
    q = QueryBuilder()
    q.add_where({"page.page_namespace": [0, 14], "page.page_is_redirect": 0, "x.y": None})
    assert q.where == ["page.page_namespace IN (:p1, :p2)", "page.page_is_redirect = :p3", "x.y IS NULL"]
    assert q.params == {"p1": 0, "p2": 14, "p3": 0}

    with pytest.raises(QueryBuildError):
        q.add_where({"page.page_namespace": []})
    with pytest.raises(QueryBuildError):
        q.add_where("")
    with pytest.raises(QueryBuildError):
        q.add_where(5)


def test_add_not_where():
    q = QueryBuilder()
    q.add_not_where({"a.b": [1], "c.d": [2, 3], "e.f": []})
    assert q.where == ["a.b != :p1", "c.d NOT IN (:p2, :p3)"]


def test_check_unregistered_aliases():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_select({"x": "foo.bar"})
    with pytest.raises(QueryBuildError):
        q.render()

    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_select({"page_id": "page.page_id"})
    q.add_join("cl9", "INNER JOIN", "page.page_id = cl9.cl_from")
    with pytest.raises(QueryBuildError):
        q.render()

    with pytest.raises(QueryBuildError):
        QueryBuilder().render()


@pytest.mark.parametrize("method,expr", [
    ("add_where",    "pagelinks.pl_namespace != :p1"),
    ("add_group_by", "page.page_title"),
    ("add_order_by", "pl.pl_title"),
])
def test_check_scans_every_clause(method, expr):
    q = QueryBuilder()
    q.add_table("imagelinks", "ic")
    q.add_select({"il_to": "ic.il_to"})
    getattr(q, method)(expr)
    with pytest.raises(QueryBuildError, match="unregistered table alias"):
        q.render()


def test_check_allows_subquery_tables_and_literals():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_table("revision", "rev")
    q.add_select({"page_id": "page.page_id", "label": "REPLACE(page.page_title, '_', ' ')"})
    q.add_where([
        "page.page_id = rev.rev_page",
        "rev.rev_timestamp = (SELECT MAX(rev_aux.rev_timestamp) FROM revision AS rev_aux "
        "WHERE rev_aux.rev_page = rev.rev_page)",
        "EXISTS (SELECT el_from FROM externallinks WHERE externallinks.el_from = page.page_id)",
        "page.page_title LIKE 'x.y%'",
    ])
    assert "FROM page CROSS JOIN revision AS rev" in q.render()


def test_order_direction():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_select({"page_id": "page.page_id"})
    q.add_order_by("page.page_len")
    q.add_order_by("page.page_id ASC")
    q.set_order_dir("descending")
    assert q.render().endswith("ORDER BY page.page_len DESC, page.page_id ASC")


def test_count_sql_ignores_pagination():
    q = QueryBuilder()
    q.add_table("page", "page")
    q.add_select({"page_id": "page.page_id"})
    q.add_order_by("page.page_id")
    q.set_limit(5)
    q.set_offset(10)
    assert q.count_sql() == (
        "SELECT COUNT(*) FROM (SELECT DISTINCT page.page_id AS page_id FROM page) AS found"
    )


@pytest.mark.parametrize("dialect,limit,offset,expected", [
    ("sqlite",     5,    None, " LIMIT 5"),
    ("sqlite",     5,    10,   " LIMIT 5 OFFSET 10"),
    ("sqlite",     None, 10,   " LIMIT -1 OFFSET 10"),
    ("postgresql", None, 10,   " OFFSET 10"),
    ("mariadb",    None, 10,   " LIMIT 18446744073709551615 OFFSET 10"),
    ("sqlite",     None, None, ""),
])
def test_limit_clause(dialect, limit, offset, expected):
    assert Dialect(dialect).limit_clause(limit, offset) == expected


def test_dialect_fragments():
    assert Dialect("sqlite").concat("a", "b") == "(a || b)"
    assert Dialect("mysql").concat("a", "b") == "CONCAT(a, b)"
    assert Dialect("postgresql").compare("x", "regexp", ":p1") == "x ~ :p1"
    assert Dialect("sqlite").compare("x", "REGEXP", ":p1") == "x REGEXP :p1"
    assert Dialect("sqlite").compare("x", "like", ":p1") == "x LIKE :p1 ESCAPE '\\'"
    assert Dialect("mysql").lower_text("x") == "LOWER(CAST(x AS CHAR))"
    assert Dialect("postgresql").group_concat("c").startswith("STRING_AGG(DISTINCT c")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QueryAssembler
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def test_default_category_query():
    q = _assemble("category = Foo")
    sql = q.render()
    assert sql.startswith("SELECT DISTINCT ")
    assert "INNER JOIN categorylinks AS cl1 ON (page.page_id = cl1.cl_from AND cl1.cl_to = :p" in sql
    assert "page.page_is_redirect = :p" in sql
    assert "ORDER BY page.page_title ASC" in sql
    assert sql.endswith(" LIMIT 500")
    assert "Foo" in q.params.values()


def test_or_group_shares_one_join():
    sql = _assemble("category = Foo|Bar").render()
    assert re.search(
        r"INNER JOIN categorylinks AS cl1 ON \(page\.page_id = cl1\.cl_from "
        r"AND \(cl1\.cl_to = :p\d+ OR cl1\.cl_to = :p\d+\)\)",
        sql,
    )
    assert "cl2" not in sql


def test_and_group_joins_each_category():
    sql = _assemble("category = Foo&Bar").render()
    assert "categorylinks AS cl1" in sql
    assert "categorylinks AS cl2" in sql


def test_user_values_are_bound():
    q = _assemble("createdby = O'Brien")
    assert "O'Brien" not in q.render()
    assert "O'Brien" in q.params.values()
    assert "creation_rev.rev_parent_id = 0" in q.render()


def test_uncategorized_uses_view():
    sql = _assemble("category = _none_").render()
    assert f"{CATEGORY_VIEW} AS cl1" in sql


def test_notcategory_outer_join():
    sql = _assemble("namespace = \nnotcategory = Foo").render()
    assert "LEFT OUTER JOIN categorylinks AS ecl1" in sql
    assert "(ecl1.cl_to IS NULL)" in sql


def test_count_and_offset():
    q = _assemble("category = Foo\ncount = 5", offset=10)
    assert q.render().endswith(" LIMIT 5 OFFSET 10")


def test_goal_categories_has_no_limit():
    q = _assemble("category = Foo\ngoal = categories\ncount = 5", offset=10)
    assert q.limit is None
    assert q.offset is None
    assert q.page_ids_sql().startswith("SELECT DISTINCT page.page_id AS page_id FROM page")
    assert "ORDER BY" not in q.page_ids_sql()


def test_lastedit_descending():
    sql = _assemble("category = Foo\nordermethod = lastedit\norder = descending").render()
    assert "ORDER BY rev.rev_timestamp DESC" in sql
    assert "MAX(rev_aux.rev_timestamp)" in sql


def test_contribution_groups_by_page():
    sql = _assemble("category = Foo\naddcontribution = true").render()
    assert "SUM(ABS(rc.rc_new_len - rc.rc_old_len)) AS contribution" in sql
    assert "GROUP BY page.page_id" in sql


def test_ignorecase_title_match():
    q = _assemble("namespace = \nignorecase = true\ntitlematch = Foo%")
    assert "LOWER(CAST(page.page_title AS TEXT)) LIKE :p" in q.render()
    assert "foo%" in q.params.values()


def test_collation_applies_to_sort_key():
    sql = _assemble("category = Foo\nordercollation = utf8_bin").render()
    assert "page.page_title COLLATE utf8_bin AS sortkey" in sql


def test_title_order_on_mysql():
    sql = _assemble("category = Foo\nordermethod = title", dialect="mysql").render()
    assert "CONCAT(CASE page.page_namespace" in sql


def test_category_headings_join():
    sql = _assemble("category = Foo|Bar\nordermethod = category,title").render()
    assert "LEFT OUTER JOIN categorylinks AS cl_head ON (page.page_id = cl_head.cl_from)" in sql
    assert "cl_head.cl_to AS cl_to" in sql
    assert "ORDER BY cl_head.cl_to ASC, sortkey ASC" in sql


def test_linksto_groups():
    resolver = TitleResolver()
    q = _assemble(
        "namespace = ",
        linksto=[[resolver.new_from_text("Main Page")], [resolver.new_from_text("Help:Foo%")]],
    )
    sql = q.render()
    assert "page.page_id = pl.pl_from AND ((pl.pl_namespace = :p" in sql
    assert "EXISTS (SELECT pl_from FROM pagelinks" in sql
    assert "pagelinks.pl_title LIKE :p" in sql
    assert "Main_Page" in q.params.values()


def test_open_references():
    q = _assemble("openreferences = yes\nnamespace = Help")
    sql = q.render()
    assert q.tables == {"pagelinks": "pagelinks"}
    assert sql.startswith(
        "SELECT DISTINCT pagelinks.pl_namespace AS pl_namespace, pagelinks.pl_title AS pl_title FROM pagelinks"
    )
    assert "pagelinks.pl_namespace = :p" in sql
    assert "ORDER BY" not in sql


def test_open_image_references_use_image_columns():
    settings = Settings(environment="testing", non_includable_namespaces=[8])
    apple = TitleResolver().make(0, "Apple", article_id=4)
    q = _assemble(
        "openreferences = yes\nnamespace = File\ntitlegt = A\nordermethod = title",
        settings=settings,
        imagecontainer=[[apple]],
    )
    sql = q.render()
    assert q.tables == {"ic": "imagelinks"}
    assert "pagelinks" not in sql
    assert "6 = :p" in sql
    assert "6 != :p" in sql
    assert "ic.il_to > :p" in sql
    assert "ic.il_from = :p" in sql


def test_page_counter_joined_once():
    sql = _assemble("category = Foo\naddpagecounter = true\nordermethod = counter").render()
    assert sql.count("LEFT JOIN hit_counter") == 1
    assert "ORDER BY hit_counter.page_counter ASC" in sql


def test_categoriesminmax():
    sql = _assemble("category = Foo\ncategoriesminmax = 1,3").render()
    assert "(1 <= (SELECT count(*) FROM categorylinks" in sql
    assert "(3 >= (SELECT count(*) FROM categorylinks" in sql


def test_non_includable_namespaces():
    settings = Settings(environment="testing", non_includable_namespaces=[2])
    sql = _assemble("category = Foo", settings=settings).render()
    assert "page.page_namespace != :p" in sql


def test_bad_stored_value_fails_the_build():
    with pytest.raises(QueryBuildError):
        _assemble("category = Foo", maxrevisions="abc")


def test_revision_window_uses_resolved_timestamp():
    q = _assemble("category = Foo\nallrevisionssince = last week")
    assert "rev.rev_timestamp >= :p" in q.render()
    assert "20240608120000" in q.params.values()


def test_convert_timestamp():
    assert convert_timestamp("20240101000000", NOW) == "20240101000000"
    assert convert_timestamp("last hour", NOW) == "20240615110000"
    end_of_march = datetime(2024, 3, 31, 8, 0, 0, tzinfo=timezone.utc)
    assert convert_timestamp("last month", end_of_march) == "20240229080000"
    assert convert_timestamp("last year", NOW) == "20230615120000"


# -----------------------------------------------------------------------------
