#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query evaluation
================
Runs one query text end to end:

    parse -> validate -> error checks -> build -> execute
          -> sample -> materialize -> post-process -> header / footer

Every evaluation owns its parameter store, diagnostics and heading counter;
nothing is shared between requests.  A critical diagnostic stops the
pipeline and the result carries the diagnostics with no records.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dpl._version import __version__
from dpl.core.config import Settings, get_settings
from dpl.core.database import view_exists
from dpl.core.errors import ParameterPermissionError, QueryBuildError, SqlExecutionError
from dpl.models import CATEGORY_VIEW
from .articles import ArticleBuilder, HeadingCounter, Record
from .diagnostics import DiagnosticCode, Diagnostics
from .executor import category_goal_rows, count_rows, fetch_subcategories, stream_rows
from .input_parser import parse_input
from .namespaces import get_resolver
from .ordering import HeadingGroup, heading_groups, post_process
from .parameter_definitions import REGISTRY
from .parameters import (
    ParameterStore, ParameterValidator, parse_integer,
    replace_new_lines, sort_by_priority, subcategory_requests,
)
from .query import QueryBuilder
from .query_handlers import QueryAssembler
from .sampling import pick_positions, sample_rows
from .titles import Title, TitleResolver, attach_article_ids


log = logging.getLogger(__name__)

C = DiagnosticCode

DATE_PARAMETERS = ("addpagetoucheddate", "addfirstcategorydate", "addeditdate")

CATEGORY_MODE_IGNORED = (
    "addcategories", "addeditdate", "addfirstcategorydate", "addpagetoucheddate",
    "incpage", "adduser", "addauthor", "addcontribution", "addlasteditor",
)

PRESENTATION_KEYS = (
    "mode", "headingmode", "headingcount", "inlinetext", "listseparators",
    "columns", "rows", "incpage", "seclabels", "seclabelsmatch", "seclabelsnotmatch",
    "dominantsection", "resultsheader", "resultsfooter", "noresultsheader",
    "noresultsfooter", "oneresultheader", "oneresultfooter", "suppresserrors",
    "scroll", "escapelinks", "addexternallink", "ordermethod", "updaterules", "deleterules",
)

SQL_DEBUG_LEVEL = 3


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Result
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class EvaluationResult:
    records:      list[Record] = field(default_factory=list)
    total_pages:  int = 0
    pages:        int = 0
    headings:     list[HeadingGroup] = field(default_factory=list)
    diagnostics:  Diagnostics = field(default_factory=Diagnostics)
    header:       str = ""
    footer:       str = ""
    sql:          Optional[str] = None
    variables:    dict[str, str] = field(default_factory=dict)
    presentation: dict[str, Any] = field(default_factory=dict)

    @property
    def aborted(self) -> bool:
        return self.diagnostics.has_critical


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Query error checks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def query_error_checks(
    store: ParameterStore,
    settings: Settings,
    diagnostics: Diagnostics,
    category_view_exists: bool = True,
) -> bool:
    """
    Cross-parameter checks run before any SQL is built.  Returns False at
    the first critical problem; warnings are recorded and checking goes on.
    """
    total = store.total_categories()
    methods = store.order_methods

    if total > settings.max_category_count and not settings.allow_unlimited_categories:
        diagnostics.add(C.TOO_MANY_CATEGORIES, settings.max_category_count)
        return False

    if total < settings.min_category_count:
        diagnostics.add(C.TOO_FEW_CATEGORIES, settings.min_category_count)
        return False

    if not total and not store.selection_criteria_found:
        diagnostics.add(C.NO_SELECTION)
        return False

    if not total:
        if "categoryadd" in methods:
            diagnostics.add(C.NO_CATEGORIES_FOR_ORDER_METHOD, "categoryadd")
            return False
        if store.get("addfirstcategorydate") is True:
            diagnostics.add(C.NO_CATEGORIES_FOR_ADD_DATE)
            return False

    if sum(1 for name in DATE_PARAMETERS if store.get(name)) > 1:
        diagnostics.add(C.MORE_THAN_ONE_TYPE_OF_DATE)
        return False

    if store.get("addauthor") and store.get("addlasteditor"):
        diagnostics.add(C.CONFLICTING_USER_PARAMETERS)
        return False

    dominant = store.get("dominantsection") or -1
    sections = store.get("seclabels") or []
    if dominant > 0 and len(sections) < dominant:
        diagnostics.add(C.DOMINANT_SECTION_RANGE, len(sections))
        return False

    edit_orders = {"firstedit", "lastedit"} & set(methods)

    if store.get("mode") == "category" and not {"sortkey", "title", "titlewithoutnamespace"} & set(methods):
        diagnostics.add(C.WRONG_ORDER_METHOD, "mode=category", "sortkey | title | titlewithoutnamespace")
        return False

    if store.get("addpagetoucheddate") and not {"pagetouched", "title"} & set(methods):
        diagnostics.add(C.WRONG_ORDER_METHOD, "addpagetoucheddate=true", "pagetouched | title")
        return False

    if store.get("addeditdate") and not edit_orders and store.has_revision_window():
        diagnostics.add(C.WRONG_ORDER_METHOD, "addeditdate=true", "firstedit | lastedit")
        return False

    if store.get("adduser") and not edit_orders and not store.has_revision_window():
        diagnostics.add(C.WRONG_ORDER_METHOD, "adduser=true", "firstedit | lastedit")
        return False

    if store.get("minoredits") and not edit_orders:
        diagnostics.add(C.WRONG_ORDER_METHOD, "minoredits", "firstedit | lastedit")
        return False

    if store.get("includeuncat") and not category_view_exists:
        diagnostics.add(C.NO_CL_VIEW, CATEGORY_VIEW)
        return False

    if store.get("mode") == "category" and any(store.get(name) for name in CATEGORY_MODE_IGNORED):
        diagnostics.add(C.CAT_OUTPUT_BUT_WRONG_PARAMS)

    if store.get("headingmode") != "none" and len(methods) < 2:
        diagnostics.add(C.HEADING_MODE_TOO_FEW_ORDER_METHODS, store.get("headingmode"))
        store.set("headingmode", "none")

    if store.open_references_conflict and store.open_references:
        diagnostics.add(C.OPEN_REFERENCES)
        return False

    return True


# -----------------------------------------------------------------------------

def row_calculation_mode(store: ParameterStore, settings: Settings) -> bool:
    """Whether the header or footer needs the LIMIT-independent total."""
    check = "".join(str(store.get(name) or "") for name in ("resultsheader", "noresultsheader", "resultsfooter"))
    return (
        not settings.allow_unlimited_results
        and not store.goal_is_categories
        and "%TOTALPAGES%" in check
    )


def header_footer_type(store: ParameterStore, position: str, count: int) -> Optional[str]:
    results, one, none = f"results{position}", f"oneresult{position}", f"noresults{position}"
    if store.get(results) is not None and (count >= 2 or (store.get(one) is None and count >= 1)):
        return results
    if count == 1 and store.get(one) is not None:
        return one
    if count == 0 and store.get(none) is not None:
        return none
    return None


def replace_variables(text: str, variables: dict[str, str]) -> str:
    text = replace_new_lines(text)
    for name, value in variables.items():
        text = text.replace(f"%{name}%", str(value))
    return text


def rows_returned(total: int, query: QueryBuilder) -> int:
    """How many rows a LIMIT / OFFSET query hands back out of *total* matches."""
    remaining = max(0, total - (query.offset or 0))
    return min(remaining, query.limit) if query.limit is not None else remaining


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Evaluation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Evaluation:
    """State of one query evaluation."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        *,
        title: Optional[str] = None,
        protected: bool = False,
        arguments: Optional[dict[str, str]] = None,
        permissions: Iterable[str] = (),
        now: Optional[datetime] = None,
    ):
        self.db          = db
        self.settings    = settings
        self.title_text  = title
        self.protected   = protected
        self.arguments   = dict(arguments or {})
        self.permissions = list(permissions)
        self.now         = now or datetime.now(tz=timezone.utc)

        self.diagnostics = Diagnostics()
        self.headings    = HeadingCounter()
        self.store       = ParameterStore.with_defaults(settings)
        self.resolver: Optional[TitleResolver] = None
        self.sql: Optional[str] = None
        self.started     = time.monotonic()

    # -------------------------------------------------------------------------

    def empty_result(self) -> EvaluationResult:
        self.diagnostics.level = int(self.store.get("debug") or 2)
        return EvaluationResult(
            diagnostics=self.diagnostics,
            sql=self._visible_sql(),
            presentation=self._presentation(),
        )

    def _visible_sql(self) -> Optional[str]:
        return self.sql if int(self.store.get("debug") or 0) >= SQL_DEBUG_LEVEL else None

    def _presentation(self) -> dict[str, Any]:
        return {key: self.store.get(key) for key in PRESENTATION_KEYS if self.store.get(key) is not None}

    # -------------------------------------------------------------------------

    async def run(self, text: str) -> EvaluationResult:
        self.resolver = await get_resolver(self.db)

        offset = parse_integer(self.arguments.get("DPL_offset"))
        self.store.set("offset", offset if offset is not None else REGISTRY["offset"].default)

        if self.settings.run_from_protected_pages_only and not self.protected:
            self.diagnostics.add(C.NOT_PROTECTED, self.title_text or "")
            return self.empty_result()

        parameters = parse_input(text, self.diagnostics, self.arguments)
        if parameters is None:
            self.diagnostics.add(C.NO_SELECTION)
            return self.empty_result()

        if not await self._validate(parameters):
            return self.empty_result()
        self.diagnostics.level = int(self.store.get("debug") or 2)

        await self._attach_page_ids()

        view_ok = True
        if self.store.get("includeuncat"):
            view_ok = await view_exists(await self.db.connection(), CATEGORY_VIEW)
        if not query_error_checks(self.store, self.settings, self.diagnostics, view_ok):
            return self.empty_result()

        try:
            query = QueryAssembler(
                self.store, self.settings, self.resolver,
                dialect=self.db.get_bind().dialect.name, now=self.now,
            ).build()
            self.sql = query.page_ids_sql() if self.store.goal_is_categories else query.render()
        except QueryBuildError as e:
            self.diagnostics.add(C.SQL_BUILD_ERROR, str(e))
            return self.empty_result()

        self.diagnostics.add(C.QUERY_SQL, self.sql)

        try:
            records, found_rows = await self._execute(query)
        except SqlExecutionError as e:
            self.diagnostics.add(C.SQL_EXECUTION_ERROR, e.driver_message or e.message)
            return self.empty_result()

        records = post_process(records, self.store)
        return self._finish(records, found_rows)

    # ── Validation ─────────────────────────────────────────────────────────

    async def _validate(self, parameters: dict[str, list[str]]) -> bool:
        subcategories: dict[tuple[str, int], list[str]] = {}
        for key, depth in subcategory_requests(self.resolver, parameters.get("category", [])):
            subcategories[(key, depth)] = await fetch_subcategories(self.db, key, depth)

        validator = ParameterValidator(
            self.store, self.settings, self.resolver,
            arguments=self.arguments,
            permissions=self.permissions,
            subcategories=subcategories,
        )

        for name, options in sort_by_priority(parameters).items():
            for option in options:
                try:
                    ok = validator.validate(name, option)
                except ParameterPermissionError as e:
                    self.diagnostics.add(C.PERMISSION_DENIED, str(e))
                    return False
                if not ok:
                    self.diagnostics.add(C.WRONG_PARAM, name, option)
        return True

    async def _attach_page_ids(self) -> None:
        for definition in REGISTRY.values():
            if not (definition.page_name_list and definition.page_name_must_exist):
                continue
            groups = self.store.page_groups(definition.name)
            if groups:
                self.store.set(
                    definition.name,
                    [await attach_article_ids(self.db, group) for group in groups],
                )

    # ── Execution ──────────────────────────────────────────────────────────

    async def _execute(self, query: QueryBuilder) -> tuple[list[Record], Optional[int]]:
        builder = ArticleBuilder(
            self.store, self.resolver, self.settings,
            headings=self.headings,
            invoking_title=self._invoking_title(),
        )
        records: list[Record] = []

        if self.store.goal_is_categories:
            for row in await category_goal_rows(self.db, query):
                record = builder.build(row)
                if record is not None:
                    records.append(record)
            return records, None

        found_rows = None
        total = None
        if row_calculation_mode(self.store, self.settings):
            total = found_rows = await count_rows(self.db, query)

        stream = rows = stream_rows(self.db, query)
        random_count = self.store.get("randomcount")
        if random_count and random_count > 0:
            if total is None:
                total = await count_rows(self.db, query)
            positions = pick_positions(rows_returned(total, query), random_count, self.store.get("randomseed"))
            rows = sample_rows(rows, positions)

        async with aclosing(stream), aclosing(rows):
            async for row in rows:
                record = builder.build(row)
                if record is not None:
                    records.append(record)
        return records, found_rows

    def _invoking_title(self) -> Optional[Title]:
        if not self.title_text:
            return None
        return self.resolver.new_from_text(self.title_text)

    # ── Output ─────────────────────────────────────────────────────────────

    def _finish(self, records: list[Record], found_rows: Optional[int]) -> EvaluationResult:
        pages = len(records)
        total = found_rows if found_rows is not None else pages

        elapsed = time.monotonic() - self.started
        variables = {
            "TOTALPAGES": str(total),
            "PAGES":      str(pages),
            "VERSION":    __version__,
            "DPLTIME":    f"{elapsed:.3f} sec. ({self.now.strftime('%Y/%m/%d %H:%M:%S')})",
            "FIRSTNAMESPACE": "",
            "FIRSTTITLE":     "",
            "LASTNAMESPACE":  "",
            "LASTTITLE":      "",
            "SCROLLDIR":      str(self.store.get("scrolldir") or ""),
        }
        if records:
            variables["FIRSTNAMESPACE"] = str(records[0].namespace)
            variables["FIRSTTITLE"]     = records[0].title.replace(" ", "_")
            variables["LASTNAMESPACE"]  = str(records[-1].namespace)
            variables["LASTTITLE"]      = records[-1].title.replace(" ", "_")

        count = total if records else 0
        header = footer = ""
        header_type = header_footer_type(self.store, "header", count)
        if header_type:
            header = replace_variables(str(self.store.get(header_type)), variables)
        footer_type = header_footer_type(self.store, "footer", count)
        if footer_type:
            footer = replace_variables(str(self.store.get(footer_type)), variables)

        if not records:
            self.diagnostics.add(C.NO_RESULTS)

        log.info("Query returned %d records (%d total)", pages, total)
        return EvaluationResult(
            records=records,
            total_pages=total,
            pages=pages,
            headings=heading_groups(records, self.headings),
            diagnostics=self.diagnostics,
            header=header,
            footer=footer,
            sql=self._visible_sql(),
            variables=variables,
            presentation=self._presentation(),
        )


# -----------------------------------------------------------------------------

async def evaluate(
    db: AsyncSession,
    text: str,
    *,
    title: Optional[str] = None,
    protected: bool = False,
    arguments: Optional[dict[str, str]] = None,
    permissions: Iterable[str] = (),
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    """Evaluate one query text, bounded by the configured timeout."""
    settings = settings or get_settings()
    evaluation = Evaluation(
        db, settings,
        title=title, protected=protected,
        arguments=arguments, permissions=permissions, now=now,
    )
    try:
        return await asyncio.wait_for(evaluation.run(text), timeout=settings.query_timeout_seconds)
    except asyncio.TimeoutError:
        evaluation.diagnostics.add(C.QUERY_TIMEOUT, settings.query_timeout_seconds)
        return evaluation.empty_result()


# -----------------------------------------------------------------------------
