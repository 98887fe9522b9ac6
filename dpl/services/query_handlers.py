#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query handlers
==============
One handler per parameter that changes the SQL.  ``QueryAssembler.build()``
walks the resolved parameters in store order and calls the handler
registered for each name with the stored value.

A handler returning False, or raising, makes the whole build fail with
``QueryBuildError``; validation problems were reported earlier as warnings
and never reach this stage.

Boolean ``add*`` handlers only act when their value is True.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from dpl.core.config import Settings
from dpl.core.errors import QueryBuildError
from dpl.models import CATEGORY_VIEW, mw_timestamp
from .parameters import CategorySelector, ComparisonList, ParameterStore
from .query import QueryBuilder
from .titles import NS_FILE, NS_MAIN, TitleResolver


log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------

QueryHandler = Callable[["QueryAssembler", Any], Optional[bool]]

_QUERY_HANDLERS: dict[str, QueryHandler] = {}


def query_handler(*names: str) -> Callable[[QueryHandler], QueryHandler]:
    def register(func: QueryHandler) -> QueryHandler:
        for name in names:
            _QUERY_HANDLERS[name] = func
        return func
    return register


def _months_ago(now: datetime, months: int) -> datetime:
    month = now.month - 1 - months
    year  = now.year + month // 12
    month = month % 12 + 1
    day   = now.day
    while True:
        try:
            return now.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def convert_timestamp(value: str, now: Optional[datetime] = None) -> str:
    """Resolve a stored timestamp (14 digits or relative keyword) against *now*."""
    now = now or datetime.now(tz=timezone.utc)
    relative = {
        "today":      lambda: now,
        "last hour":  lambda: now - timedelta(hours=1),
        "last day":   lambda: now - timedelta(days=1),
        "last week":  lambda: now - timedelta(days=7),
        "last month": lambda: _months_ago(now, 1),
        "last year":  lambda: _months_ago(now, 12),
    }
    resolve = relative.get(str(value).lower())
    if resolve is not None:
        return mw_timestamp(resolve())
    return str(value)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Assembler
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class QueryAssembler:
    """Builds one ``QueryBuilder`` from a resolved ``ParameterStore``."""

    def __init__(
        self,
        store: ParameterStore,
        settings: Settings,
        resolver: TitleResolver,
        dialect: str = "sqlite",
        now: Optional[datetime] = None,
    ):
        self.store    = store
        self.settings = settings
        self.resolver = resolver
        self.q        = QueryBuilder(dialect)
        self.now      = now or datetime.now(tz=timezone.utc)

    # ── Shortcuts ──────────────────────────────────────────────────────────

    @property
    def open_refs(self) -> bool:
        return self.store.open_references

    @property
    def ignorecase(self) -> bool:
        return bool(self.store.get("ignorecase"))

    @property
    def strict(self) -> bool:
        return self.store.get("distinct") == "strict"

    def _compare(self, left: str, comparison: str, value: Any, lower: bool = False) -> str:
        if lower:
            return self.q.dialect.compare(
                self.q.dialect.lower_text(left), comparison, self.q.bind(str(value).lower())
            )
        return self.q.dialect.compare(left, comparison, self.q.bind(value))

    def _timestamp(self, value: str) -> str:
        return self.q.bind(convert_timestamp(value, self.now))

    def _namespace_prefix(self, column: str) -> str:
        """``CASE`` turning a namespace id into its ``Name:`` title prefix."""
        whens = " ".join(
            f"WHEN {int(ns_id)} THEN {self.q.bind(name + ':')}"
            for ns_id, name in sorted(self.resolver.namespaces.items())
            if ns_id != NS_MAIN and name
        )
        return f"CASE {column} WHEN 0 THEN '' {whens} ELSE '' END"

    def _display_title(self, ns_column: str, title_column: str) -> str:
        joined = self.q.dialect.concat(self._namespace_prefix(ns_column), title_column)
        return f"REPLACE({joined}, '_', ' ')"

    def _revision_bound(self, alias: str, aggregate: str, extra: str = "") -> str:
        return (
            f"rev.rev_timestamp = (SELECT {aggregate}({alias}.rev_timestamp) "
            f"FROM revision AS {alias} WHERE {alias}.rev_page = rev.rev_page{extra})"
        )

    def _adduser(self, alias: str = "rev") -> None:
        self.q.add_select([f"{alias}.rev_user", f"{alias}.rev_user_text", f"{alias}.rev_comment"])

    # ── Build ──────────────────────────────────────────────────────────────

    def build(self) -> QueryBuilder:
        """Run every handler and finish the statement for the active mode."""
        if not self.open_refs:
            self.q.add_table("page", "page")

        self._default_options()

        for name, value in self.store.items():
            func = _QUERY_HANDLERS.get(name)
            if func is None or value is None:
                continue
            try:
                ok = func(self, value)
            except QueryBuildError:
                raise
            except (TypeError, ValueError, KeyError, IndexError) as e:
                raise QueryBuildError(f"Parameter '{name}' could not be applied: {e}") from e
            if ok is False:
                raise QueryBuildError(f"Parameter '{name}' could not be applied")

        excluded = list(self.settings.non_includable_namespaces)
        if excluded:
            self.q.add_not_where({self._ns_column(): excluded})

        if self.open_refs:
            self._open_references_tables()
        else:
            self.q.add_select({
                "page_namespace": "page.page_namespace",
                "page_id":        "page.page_id",
                "page_title":     "page.page_title",
            })

        log.debug("Built query: %s", self.q.render())
        return self.q

    def _default_options(self) -> None:
        # sort keys are synthesized by ordermethod, which may run before ordercollation
        self.q.set_collation(self.store.get("ordercollation"))

        if self.store.goal_is_categories:
            self.q.distinct = True
            return

        offset = self.store.get("offset")
        count  = self.store.get("count")
        if offset:
            self.q.set_offset(offset)
        if count is not None:
            self.q.set_limit(count)
        elif offset:
            self.q.set_limit(self.settings.max_result_count)
        self.q.distinct = self.store.get("distinct") in (True, "strict")

    def _open_references_tables(self) -> None:
        if self.store.get("imagecontainer"):
            self.q.tables = {"ic": "imagelinks"}
            self.q.add_select({"il_to": "ic.il_to"})
        else:
            self.q.tables = {"pagelinks": "pagelinks"}
            self.q.add_select({
                "pl_namespace": "pagelinks.pl_namespace",
                "pl_title":     "pagelinks.pl_title",
            })

    # ━━ Enrichment ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @query_handler("addauthor")
    def _addauthor(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_table("revision", "rev")
        self.q.add_where(["page.page_id = rev.rev_page", self._revision_bound("rev_aux_min", "MIN")])
        self._adduser()

    @query_handler("addlasteditor")
    def _addlasteditor(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_table("revision", "rev")
        self.q.add_where(["page.page_id = rev.rev_page", self._revision_bound("rev_aux_max", "MAX")])
        self._adduser()

    @query_handler("adduser")
    def _adduser_flag(self, option: bool) -> None:
        # the revision row is bounded by firstedit / lastedit or a revision window
        if option is True:
            self.q.add_table("revision", "rev")
            self._adduser()

    @query_handler("addcategories")
    def _addcategories(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_table("categorylinks", "cl_gc")
        self.q.add_select({"cats": self.q.dialect.group_concat("cl_gc.cl_to")})
        self.q.add_join("cl_gc", "LEFT OUTER JOIN", "page.page_id = cl_gc.cl_from")
        self.q.add_group_by("page.page_id")

    @query_handler("addcontribution")
    def _addcontribution(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_table("recentchanges", "rc")
        self.q.add_select({
            "contribution": "SUM(ABS(rc.rc_new_len - rc.rc_old_len))",
            "contributor":  "MAX(rc.rc_user_text)",
        })
        self.q.add_where("page.page_id = rc.rc_cur_id")
        self.q.add_group_by("page.page_id")

    @query_handler("addfirstcategorydate")
    def _addfirstcategorydate(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_select({"cl_timestamp": "cl1.cl_timestamp"})

    @query_handler("addpagecounter")
    def _addpagecounter(self, option: bool) -> None:
        if option is not True:
            return
        self._hit_counter()
        self.q.add_select({"page_counter": "hit_counter.page_counter"})

    def _hit_counter(self) -> None:
        self.q.add_table("hit_counter", "hit_counter")
        if "hit_counter" not in self.q.joins:
            self.q.add_join("hit_counter", "LEFT JOIN", "hit_counter.page_id = page.page_id")

    @query_handler("addpagesize")
    def _addpagesize(self, option: bool) -> None:
        if option is True:
            self.q.add_select({"page_len": "page.page_len"})

    @query_handler("addpagetoucheddate")
    def _addpagetoucheddate(self, option: bool) -> None:
        if option is True:
            self.q.add_select({"page_touched": "page.page_touched"})

    @query_handler("addeditdate")
    def _addeditdate(self, option: bool) -> None:
        if option is not True:
            return
        self.q.add_table("revision", "rev")
        self.q.add_select(["rev.rev_timestamp"])
        self.q.add_where("page.page_id = rev.rev_page")

    # ━━ Revision windows ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _revision_window(self) -> None:
        self.q.add_table("revision", "rev")
        self.q.add_select(["rev.rev_id", "rev.rev_timestamp"])

    @query_handler("allrevisionsbefore")
    def _allrevisionsbefore(self, option: str) -> None:
        self._revision_window()
        self.q.set_order_dir("DESC")
        self.q.add_order_by("rev.rev_id")
        self.q.add_where(["page.page_id = rev.rev_page", f"rev.rev_timestamp < {self._timestamp(option)}"])

    @query_handler("allrevisionssince")
    def _allrevisionssince(self, option: str) -> None:
        self._revision_window()
        self.q.set_order_dir("DESC")
        self.q.add_order_by("rev.rev_id")
        self.q.add_where(["page.page_id = rev.rev_page", f"rev.rev_timestamp >= {self._timestamp(option)}"])

    @query_handler("firstrevisionsince")
    def _firstrevisionsince(self, option: str) -> None:
        self._revision_window()
        bound = self._timestamp(option)
        self.q.add_where([
            "page.page_id = rev.rev_page",
            f"rev.rev_timestamp >= {bound}",
            self._revision_bound("rev_aux_snc", "MIN", f" AND rev_aux_snc.rev_timestamp >= {bound}"),
        ])

    @query_handler("lastrevisionbefore")
    def _lastrevisionbefore(self, option: str) -> None:
        self._revision_window()
        bound = self._timestamp(option)
        self.q.add_where([
            "page.page_id = rev.rev_page",
            f"rev.rev_timestamp < {bound}",
            self._revision_bound("rev_aux_bef", "MAX", f" AND rev_aux_bef.rev_timestamp < {bound}"),
        ])

    # ━━ Categories ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @query_handler("category")
    def _category(self, option: CategorySelector) -> None:
        index = 0
        for comparison, operator, group in option:
            table = CATEGORY_VIEW if "" in group else "categorylinks"
            if operator == "OR":
                index += 1
                alias = f"cl{index}"
                self.q.add_table(table, alias)
                ors = " OR ".join(self._compare(f"{alias}.cl_to", comparison, name) for name in group)
                self.q.add_join(alias, "INNER JOIN", f"page.page_id = {alias}.cl_from AND ({ors})")
            else:
                for name in group:
                    index += 1
                    alias = f"cl{index}"
                    self.q.add_table(table, alias)
                    self.q.add_join(
                        alias, "INNER JOIN",
                        f"page.page_id = {alias}.cl_from AND {self._compare(f'{alias}.cl_to', comparison, name)}",
                    )

    @query_handler("notcategory")
    def _notcategory(self, option: ComparisonList) -> None:
        for index, (comparison, name) in enumerate(option, start=1):
            alias = f"ecl{index}"
            self.q.add_table("categorylinks", alias)
            self.q.add_join(
                alias, "LEFT OUTER JOIN",
                f"page.page_id = {alias}.cl_from AND {self._compare(f'{alias}.cl_to', comparison, name)}",
            )
            self.q.add_where(f"{alias}.cl_to IS NULL")

    @query_handler("categoriesminmax")
    def _categoriesminmax(self, option: list) -> None:
        count = "(SELECT count(*) FROM categorylinks WHERE categorylinks.cl_from = page.page_id)"
        low, high = (list(option) + ["", ""])[:2]
        if str(low).isdigit():
            self.q.add_where(f"{int(low)} <= {count}")
        if str(high).isdigit():
            self.q.add_where(f"{int(high)} >= {count}")

    @query_handler("articlecategory")
    def _articlecategory(self, option: str) -> None:
        self.q.add_where(
            "page.page_title IN (SELECT p2.page_title FROM page AS p2 "
            "INNER JOIN categorylinks AS clstc ON clstc.cl_from = p2.page_id "
            f"AND clstc.cl_to = {self.q.bind(option)} WHERE p2.page_namespace = 0)"
        )

    # ━━ Authors ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @query_handler("createdby")
    def _createdby(self, option: str) -> None:
        self.q.add_table("revision", "creation_rev")
        self._adduser("creation_rev")
        self.q.add_where([
            f"{self.q.bind(option)} = creation_rev.rev_user_text",
            "creation_rev.rev_page = page.page_id",
            "creation_rev.rev_parent_id = 0",
        ])

    @query_handler("notcreatedby")
    def _notcreatedby(self, option: str) -> None:
        self.q.add_table("revision", "no_creation_rev")
        self.q.add_where([
            f"{self.q.bind(option)} != no_creation_rev.rev_user_text",
            "no_creation_rev.rev_page = page.page_id",
            "no_creation_rev.rev_parent_id = 0",
        ])

    @query_handler("modifiedby")
    def _modifiedby(self, option: str) -> None:
        self.q.add_table("revision", "change_rev")
        self.q.add_where(
            f"{self.q.bind(option)} = change_rev.rev_user_text AND change_rev.rev_page = page.page_id"
        )

    @query_handler("notmodifiedby")
    def _notmodifiedby(self, option: str) -> None:
        self.q.add_where(
            "NOT EXISTS (SELECT 1 FROM revision WHERE revision.rev_page = page.page_id "
            f"AND revision.rev_user_text = {self.q.bind(option)})"
        )

    def _last_editor(self) -> str:
        return (
            "(SELECT rev_user_text FROM revision WHERE revision.rev_page = page.page_id "
            "ORDER BY revision.rev_timestamp DESC LIMIT 1)"
        )

    @query_handler("lastmodifiedby")
    def _lastmodifiedby(self, option: str) -> None:
        self.q.add_where(f"{self.q.bind(option)} = {self._last_editor()}")

    @query_handler("notlastmodifiedby")
    def _notlastmodifiedby(self, option: str) -> None:
        self.q.add_where(f"{self.q.bind(option)} != {self._last_editor()}")

    # ━━ Revisions ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @query_handler("maxrevisions")
    def _maxrevisions(self, option: int) -> None:
        self.q.add_where(
            "((SELECT count(rev_aux3.rev_page) FROM revision AS rev_aux3 "
            f"WHERE rev_aux3.rev_page = page.page_id) <= {int(option)})"
        )

    @query_handler("minrevisions")
    def _minrevisions(self, option: int) -> None:
        self.q.add_where(
            "((SELECT count(rev_aux2.rev_page) FROM revision AS rev_aux2 "
            f"WHERE rev_aux2.rev_page = page.page_id) >= {int(option)})"
        )

    @query_handler("minoredits")
    def _minoredits(self, option: str) -> None:
        if option == "exclude":
            self.q.add_where("rev.rev_minor_edit = 0")

    @query_handler("redirects")
    def _redirects(self, option: str) -> None:
        if self.open_refs:
            return
        if option == "only":
            self.q.add_where({"page.page_is_redirect": 1})
        elif option == "exclude":
            self.q.add_where({"page.page_is_redirect": 0})

    # ━━ Namespaces and titles ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @property
    def image_refs(self) -> bool:
        return self.open_refs and bool(self.store.get("imagecontainer"))

    def _ns_column(self) -> str:
        # image references carry no namespace column; their targets are files
        if self.image_refs:
            return str(NS_FILE)
        return "pagelinks.pl_namespace" if self.open_refs else "page.page_namespace"

    def _title_column(self) -> str:
        if self.image_refs:
            return "ic.il_to"
        return "pagelinks.pl_title" if self.open_refs else "page.page_title"

    @query_handler("namespace")
    def _namespace(self, option: list) -> None:
        if option:
            self.q.add_where({self._ns_column(): list(option)})

    @query_handler("notnamespace")
    def _notnamespace(self, option: list) -> None:
        if option:
            self.q.add_not_where({self._ns_column(): list(option)})

    def _title_filter(self, option: ComparisonList) -> str:
        ors = [
            self._compare(self._title_column(), comparison, value, lower=self.ignorecase)
            for comparison, value in option
        ]
        return "(" + " OR ".join(ors) + ")"

    @query_handler("title")
    def _title(self, option: ComparisonList) -> None:
        if option:
            self.q.add_where(self._title_filter(option))

    @query_handler("nottitle")
    def _nottitle(self, option: ComparisonList) -> None:
        if option:
            self.q.add_where("NOT " + self._title_filter(option))

    @query_handler("titlegt")
    def _titlegt(self, option: str) -> None:
        if option.startswith("=_"):
            self.q.add_where(f"{self._title_column()} >= {self.q.bind(option[2:])}")
        else:
            self.q.add_where(f"{self._title_column()} > {self.q.bind(option)}")

    @query_handler("titlelt")
    def _titlelt(self, option: str) -> None:
        if option.startswith("=_"):
            self.q.add_where(f"{self._title_column()} <= {self.q.bind(option[2:])}")
        else:
            self.q.add_where(f"{self._title_column()} < {self.q.bind(option)}")

    # ━━ Link relations ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _strict_group(self) -> None:
        if self.strict:
            self.q.add_group_by(self._title_column())

    def _link_target(self, ns_column: str, title_column: str, title) -> str:
        """``(ns = :a AND title = :b)``; LIKE when the key carries a ``%`` wildcard."""
        comparison = "LIKE" if "%" in title.db_key else "="
        title_sql = self._compare(title_column, comparison, title.db_key, lower=self.ignorecase)
        return f"({ns_column} = {self.q.bind(title.namespace)} AND {title_sql})"

    @query_handler("linksto")
    def _linksto(self, option: list) -> None:
        self._strict_group()
        if not option:
            return
        self.q.add_table("pagelinks", "pl")
        self.q.add_select({"sel_title": "pl.pl_title", "sel_ns": "pl.pl_namespace"})

        for index, group in enumerate(option):
            if index == 0:
                ors = " OR ".join(self._link_target("pl.pl_namespace", "pl.pl_title", t) for t in group)
                self.q.add_where(f"page.page_id = pl.pl_from AND ({ors})")
            else:
                ors = " OR ".join(
                    self._link_target("pagelinks.pl_namespace", "pagelinks.pl_title", t) for t in group
                )
                self.q.add_where(
                    "EXISTS (SELECT pl_from FROM pagelinks "
                    f"WHERE pagelinks.pl_from = page.page_id AND ({ors}))"
                )

    @query_handler("notlinksto")
    def _notlinksto(self, option: list) -> None:
        self._strict_group()
        titles = [t for group in option for t in group]
        if not titles:
            return
        ors = " OR ".join(
            self._link_target("pagelinks.pl_namespace", "pagelinks.pl_title", t) for t in titles
        )
        self.q.add_where(f"page.page_id NOT IN (SELECT pagelinks.pl_from FROM pagelinks WHERE {ors})")

    @query_handler("linksfrom")
    def _linksfrom(self, option: list) -> None:
        self._strict_group()
        titles = [t for group in option for t in group]
        if not titles:
            return

        if self.open_refs:
            ors = " OR ".join(f"(pagelinks.pl_from = {self.q.bind(t.article_id)})" for t in titles)
            self.q.add_where(f"({ors})")
            return

        self.q.add_table("pagelinks", "plf")
        self.q.add_table("page", "pagesrc")
        self.q.add_select({"sel_title": "pagesrc.page_title", "sel_ns": "pagesrc.page_namespace"})
        ors = " OR ".join(f"plf.pl_from = {self.q.bind(t.article_id)}" for t in titles)
        self.q.add_where(
            "page.page_namespace = plf.pl_namespace AND page.page_title = plf.pl_title "
            f"AND pagesrc.page_id = plf.pl_from AND ({ors})"
        )

    @query_handler("notlinksfrom")
    def _notlinksfrom(self, option: list) -> None:
        self._strict_group()
        titles = [t for group in option for t in group]
        if not titles:
            return

        if self.open_refs:
            ands = " AND ".join(f"pagelinks.pl_from <> {self.q.bind(t.article_id)}" for t in titles)
            self.q.add_where(f"({ands})")
            return

        dialect = self.q.dialect
        ors = " OR ".join(f"pl_from = {self.q.bind(t.article_id)}" for t in titles)
        self.q.add_where(
            f"{dialect.concat('page.page_namespace', 'page.page_title')} NOT IN "
            f"(SELECT {dialect.concat('pagelinks.pl_namespace', 'pagelinks.pl_title')} "
            f"FROM pagelinks WHERE {ors})"
        )

    @query_handler("linkstoexternal")
    def _linkstoexternal(self, option: list) -> None:
        self._strict_group()
        if not option:
            return
        self.q.add_table("externallinks", "el")
        self.q.add_select({"el_to": "el.el_to"})

        for index, group in enumerate(option):
            if index == 0:
                ors = " OR ".join(self._compare("el.el_to", "LIKE", link) for link in group)
                self.q.add_where(f"page.page_id = el.el_from AND ({ors})")
            else:
                ors = " OR ".join(self._compare("externallinks.el_to", "LIKE", link) for link in group)
                self.q.add_where(
                    "EXISTS (SELECT el_from FROM externallinks "
                    f"WHERE externallinks.el_from = page.page_id AND ({ors}))"
                )

    # ── Templates ──────────────────────────────────────────────────────────

    @query_handler("uses")
    def _uses(self, option: list) -> None:
        titles = [t for group in option for t in group]
        if not titles:
            return
        self.q.add_table("templatelinks", "tl")
        ors = " OR ".join(self._link_target("tl.tl_namespace", "tl.tl_title", t) for t in titles)
        self.q.add_where(f"page.page_id = tl.tl_from AND ({ors})")

    @query_handler("notuses")
    def _notuses(self, option: list) -> None:
        titles = [t for group in option for t in group]
        if not titles:
            return
        ors = " OR ".join(
            self._link_target("templatelinks.tl_namespace", "templatelinks.tl_title", t) for t in titles
        )
        self.q.add_where(
            f"page.page_id NOT IN (SELECT templatelinks.tl_from FROM templatelinks WHERE {ors})"
        )

    @query_handler("usedby")
    def _usedby(self, option: list) -> None:
        titles = [t for group in option for t in group]
        if not titles:
            return
        self.q.add_table("templatelinks", "tpl")
        self.q.add_table("page", "tplsrc")
        self.q.add_select({"tpl_sel_title": "tplsrc.page_title", "tpl_sel_ns": "tplsrc.page_namespace"})
        ors = " OR ".join(f"tpl.tl_from = {self.q.bind(t.article_id)}" for t in titles)
        self.q.add_where(
            "page.page_namespace = tpl.tl_namespace AND page.page_title = tpl.tl_title "
            f"AND tplsrc.page_id = tpl.tl_from AND ({ors})"
        )

    # ── Images ─────────────────────────────────────────────────────────────

    @query_handler("imageused")
    def _imageused(self, option: list) -> None:
        self._strict_group()
        titles = [t for group in option for t in group]
        if not titles:
            return
        self.q.add_table("imagelinks", "il")
        self.q.add_select({"image_sel_title": "il.il_to"})
        ors = " OR ".join(
            self._compare("il.il_to", "=", t.db_key, lower=self.ignorecase) for t in titles
        )
        self.q.add_where(f"page.page_id = il.il_from AND ({ors})")

    @query_handler("imagecontainer")
    def _imagecontainer(self, option: list) -> None:
        titles = [t for group in option for t in group]
        if not titles:
            return
        ors = " OR ".join(f"ic.il_from = {self.q.bind(t.article_id)}" for t in titles)

        if self.open_refs:
            self.q.add_where(f"({ors})")
            return

        self.q.add_table("imagelinks", "ic")
        self.q.add_where(
            f"page.page_namespace = {NS_FILE} AND page.page_title = ic.il_to AND ({ors})"
        )

    # ━━ Ordering and result shaping ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @query_handler("distinct")
    def _distinct(self, option: Any) -> None:
        self.q.distinct = option in (True, "strict")

    @query_handler("goal")
    def _goal(self, option: str) -> None:
        if option == "categories":
            self.q.set_limit(None)
            self.q.set_offset(None)

    @query_handler("count")
    def _count(self, option: int) -> None:
        if not self.store.goal_is_categories:
            self.q.set_limit(option)

    @query_handler("offset")
    def _offset(self, option: int) -> None:
        if not self.store.goal_is_categories:
            self.q.set_offset(option if option else None)

    @query_handler("order")
    def _order(self, option: str) -> None:
        methods = self.store.order_methods
        if methods and methods[0] != "none":
            self.q.set_order_dir("DESC" if option in ("descending", "desc") else "ASC")

    @query_handler("ordermethod")
    def _ordermethod(self, option: list) -> None:
        if self.store.goal_is_categories:
            return

        methods = [option] if isinstance(option, str) else list(option)
        collate = self.q.collate_sql()
        edit_bound_added = False

        for method in methods:
            if method == "category":
                self._order_by_category()

            elif method == "categoryadd":
                self.q.add_select({"cl_timestamp": "cl1.cl_timestamp"})
                self.q.add_order_by("cl1.cl_timestamp")

            elif method == "counter":
                self._hit_counter()
                self.q.add_select({"page_counter": "hit_counter.page_counter"})
                self.q.add_order_by("hit_counter.page_counter")

            elif method in ("firstedit", "lastedit"):
                self.q.add_table("revision", "rev")
                self.q.add_select(["rev.rev_timestamp"])
                self.q.add_order_by("rev.rev_timestamp")
                if not edit_bound_added:
                    aggregate = "MIN" if method == "firstedit" else "MAX"
                    self.q.add_where(["page.page_id = rev.rev_page", self._revision_bound("rev_aux", aggregate)])
                    edit_bound_added = True

            elif method == "pagesel":
                self.q.add_select({
                    "sortkey": self.q.dialect.concat("pl.pl_namespace", "pl.pl_title") + collate,
                })
                self.q.add_order_by("sortkey")

            elif method == "pagetouched":
                self.q.add_select({"page_touched": "page.page_touched"})
                self.q.add_order_by("page_touched")

            elif method == "size":
                self.q.add_select({"page_len": "page.page_len"})
                self.q.add_order_by("page_len")

            elif method == "sortkey":
                display = self._display_title("page.page_namespace", "page.page_title")
                if self.store.total_categories() > 0:
                    alias = "cl_head" if "category" in methods else "cl1"
                    self.q.add_select({"sortkey": f"COALESCE({alias}.cl_sortkey, {display}){collate}"})
                else:
                    self.q.add_select({"sortkey": display + collate})
                self.q.add_order_by("sortkey")

            elif method == "titlewithoutnamespace":
                if self.open_refs:
                    self.q.add_select({"sortkey": self._title_column() + collate})
                    self.q.add_order_by(self._title_column())
                else:
                    self.q.add_select({"sortkey": "page.page_title" + collate})
                    self.q.add_order_by("page.page_title")

            elif method == "title":
                if self.open_refs:
                    display = self._display_title(self._ns_column(), self._title_column())
                else:
                    display = self._display_title("page.page_namespace", "page.page_title")
                self.q.add_select({"sortkey": display + collate})
                self.q.add_order_by("sortkey")

            elif method == "user":
                self.q.add_table("revision", "rev")
                self._adduser()
                self.q.add_order_by("rev.rev_user_text")
                if not (edit_bound_added or self.store.has_revision_window()
                        or {"firstedit", "lastedit"} & set(methods)):
                    self.q.add_where(["page.page_id = rev.rev_page", self._revision_bound("rev_aux", "MAX")])
                    edit_bound_added = True

    def _order_by_category(self) -> None:
        headings     = list(self.store.get("catheadings") or [])
        not_headings = list(self.store.get("catnotheadings") or [])

        table = CATEGORY_VIEW if ("" in headings or "" in not_headings) else "categorylinks"
        self.q.add_table(table, "cl_head")
        self.q.add_select({"cl_to": "cl_head.cl_to"})
        self.q.add_join("cl_head", "LEFT OUTER JOIN", "page.page_id = cl_head.cl_from")
        self.q.add_order_by("cl_head.cl_to")

        if headings:
            self.q.add_where({"cl_head.cl_to": headings})
        if not_headings:
            self.q.add_not_where({"cl_head.cl_to": not_headings})



# -----------------------------------------------------------------------------
