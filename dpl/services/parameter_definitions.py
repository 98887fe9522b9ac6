#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Parameter registry
==================
Static metadata for every parameter a query may use.  Each definition says
how the raw option text is coerced (boolean, integer, timestamp, page-name
list, regex capture, enumerated values or free text), what the default is,
and which derived flags a successful value raises:

set_criteria_found  — the parameter selects pages on its own
open_ref_conflict   — the parameter cannot be combined with openreferences

Definitions marked ``custom`` are coerced by a dedicated handler in
``dpl.services.parameters`` instead of the generic pipeline.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


# -----------------------------------------------------------------------------

ORDER_METHODS = (
    "category", "categoryadd", "counter", "firstedit", "lastedit", "pagesel",
    "pagetouched", "size", "sortkey", "title", "titlewithoutnamespace",
    "user", "none",
)

LIST_MODES = (
    "category", "definition", "gallery", "inline", "none", "ordered",
    "subpage", "unordered", "userformat",
)

HEADING_MODES = ("none", "definition", "h2", "h3", "h4", "ordered", "unordered")

TIMESTAMP_KEYWORDS = ("today", "last hour", "last day", "last week", "last month", "last year")

REVISION_WINDOW_PARAMETERS = (
    "allrevisionsbefore", "allrevisionssince", "firstrevisionsince", "lastrevisionbefore",
)

# Resolved first, in this order; everything else keeps input order
PRIORITY = (
    "distinct", "openreferences", "ignorecase", "category", "goal",
    "ordercollation", "ordermethod", "includepage", "include",
)


# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ParameterDefinition:
    name:                 str
    group:                str
    default:              Any = None
    values:               Optional[tuple[str, ...]] = None
    boolean:              bool = False
    integer:              bool = False
    timestamp:            bool = False
    page_name_list:       bool = False
    page_name_must_exist: bool = False
    pattern:              Optional[str] = None
    strip_html:           bool = False
    db_format:            bool = False
    preserve_case:        bool = False
    set_criteria_found:   bool = False
    open_ref_conflict:    bool = False
    permission:           Optional[str] = None
    custom:               bool = False

    @property
    def kind(self) -> str:
        if self.custom:
            return "custom"
        if self.boolean:
            return "boolean"
        if self.integer:
            return "integer"
        if self.timestamp:
            return "timestamp"
        if self.page_name_list:
            return "page_name_list"
        if self.pattern:
            return "pattern"
        if self.values:
            return "values"
        return "string"

    @property
    def stores_default(self) -> bool:
        """Defaults of None and boolean False are left unset in the store."""
        return self.default is not None and not (self.boolean and self.default is False)


# -----------------------------------------------------------------------------

def _d(name: str, group: str, **kwargs) -> ParameterDefinition:
    return ParameterDefinition(name=name, group=group, **kwargs)


def _flag(name: str, group: str, default: bool = False, **kwargs) -> ParameterDefinition:
    return ParameterDefinition(name=name, group=group, default=default, boolean=True, **kwargs)


def _pages(name: str, must_exist: bool = True, conflict: bool = True) -> ParameterDefinition:
    return ParameterDefinition(
        name=name, group="selection", page_name_list=True,
        page_name_must_exist=must_exist, set_criteria_found=True,
        open_ref_conflict=conflict,
    )


def _user(name: str) -> ParameterDefinition:
    return ParameterDefinition(
        name=name, group="selection", preserve_case=True,
        set_criteria_found=True, open_ref_conflict=True,
    )


def _revision_window(name: str) -> ParameterDefinition:
    return ParameterDefinition(
        name=name, group="selection", timestamp=True,
        set_criteria_found=True, open_ref_conflict=True,
    )


def _text(name: str, group: str = "presentation", **kwargs) -> ParameterDefinition:
    return ParameterDefinition(name=name, group=group, preserve_case=True, strip_html=True, **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Registry
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_DEFINITIONS: tuple[ParameterDefinition, ...] = (

    # ── Selection: categories ──────────────────────────────────────────────

    _d("category",          "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("categorymatch",     "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("categoryregexp",    "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("notcategory",       "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("notcategorymatch",  "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("notcategoryregexp", "selection", custom=True, preserve_case=True, open_ref_conflict=True),
    _d("categoriesminmax",  "selection", pattern=r"^(\d*),?(\d*)$", open_ref_conflict=True),
    _d("articlecategory",   "selection", preserve_case=True, db_format=True, open_ref_conflict=True),

    # ── Selection: namespaces and titles ───────────────────────────────────

    _d("namespace",      "selection", custom=True, preserve_case=True),
    _d("notnamespace",   "selection", custom=True, preserve_case=True),
    _d("title",          "selection", custom=True, preserve_case=True),
    _d("titlematch",     "selection", custom=True, preserve_case=True),
    _d("titleregexp",    "selection", custom=True, preserve_case=True),
    _d("nottitlematch",  "selection", custom=True, preserve_case=True),
    _d("nottitleregexp", "selection", custom=True, preserve_case=True),
    _d("titlegt",        "selection", preserve_case=True, db_format=True, set_criteria_found=True),
    _d("titlelt",        "selection", preserve_case=True, db_format=True, set_criteria_found=True),

    # ── Selection: link relations ──────────────────────────────────────────

    _pages("linksto"),
    _pages("notlinksto"),
    _pages("linksfrom",      conflict=False),
    _pages("notlinksfrom",   conflict=False),
    _pages("linkstoexternal", must_exist=False),
    _pages("uses"),
    _pages("notuses"),
    _pages("usedby"),
    _pages("imageused"),
    _pages("imagecontainer", conflict=False),

    # ── Selection: authorship and revisions ────────────────────────────────

    _user("createdby"),
    _user("notcreatedby"),
    _user("modifiedby"),
    _user("notmodifiedby"),
    _user("lastmodifiedby"),
    _user("notlastmodifiedby"),

    _d("redirects",    "selection", default="exclude", values=("include", "exclude", "only"), open_ref_conflict=True),
    _d("minoredits",   "selection", values=("include", "exclude"), open_ref_conflict=True),
    _d("minrevisions", "selection", integer=True, open_ref_conflict=True),
    _d("maxrevisions", "selection", integer=True, open_ref_conflict=True),

    _revision_window("lastrevisionbefore"),
    _revision_window("allrevisionsbefore"),
    _revision_window("firstrevisionsince"),
    _revision_window("allrevisionssince"),

    # ── Enrichment ─────────────────────────────────────────────────────────

    _flag("addauthor",            "enrichment", open_ref_conflict=True),
    _flag("addlasteditor",        "enrichment", open_ref_conflict=True),
    _flag("adduser",              "enrichment", open_ref_conflict=True),
    _flag("addcategories",        "enrichment", open_ref_conflict=True),
    _flag("addcontribution",      "enrichment", open_ref_conflict=True),
    _flag("addeditdate",          "enrichment", open_ref_conflict=True),
    _flag("addexternallink",      "enrichment", open_ref_conflict=True),
    _flag("addfirstcategorydate", "enrichment", open_ref_conflict=True),
    _flag("addpagecounter",       "enrichment", open_ref_conflict=True),
    _flag("addpagesize",          "enrichment", open_ref_conflict=True),
    _flag("addpagetoucheddate",   "enrichment", open_ref_conflict=True),
    _flag("showcurid",            "enrichment"),
    _flag("shownamespace",        "enrichment", default=True),
    _flag("escapelinks",          "enrichment", default=True),
    _flag("includesubpages",      "enrichment", default=True),
    _flag("skipthispage",         "enrichment", default=True),
    _d("replaceintitle",  "enrichment", custom=True, preserve_case=True),
    _d("titlemaxlen",     "enrichment", integer=True),
    _text("userdateformat", group="enrichment"),

    # ── Ordering and result shaping ────────────────────────────────────────

    _d("ordermethod",    "ordering", custom=True, default=["titlewithoutnamespace"], values=ORDER_METHODS),
    _d("order",          "ordering", default="ascending", values=("ascending", "descending")),
    _d("ordercollation", "ordering", custom=True),
    _d("distinct",       "ordering", custom=True, default=True, values=("true", "false", "strict")),
    _d("goal",           "ordering", default="pages", values=("pages", "categories"), open_ref_conflict=True),
    _d("count",          "ordering", custom=True, integer=True),
    _d("offset",         "ordering", integer=True, default=0),
    _d("randomcount",    "ordering", integer=True),
    _d("randomseed",     "ordering", integer=True),
    _d("openreferences", "ordering", custom=True, default=False, boolean=True),
    _flag("ignorecase",  "ordering"),

    # ── Presentation pass-through ──────────────────────────────────────────

    _d("mode",            "presentation", custom=True, default="unordered", values=LIST_MODES),
    _d("headingmode",     "presentation", default="none", values=HEADING_MODES),
    _flag("headingcount", "presentation"),
    _text("inlinetext",   default="&#160;-&#160;"),
    _d("format",          "presentation", custom=True, preserve_case=True),
    _d("listseparators",  "presentation", custom=True, preserve_case=True),
    _d("columns",         "presentation", integer=True, default=1),
    _d("rows",            "presentation", integer=True, default=1),
    _d("include",         "presentation", custom=True, preserve_case=True),
    _d("includepage",     "presentation", custom=True, preserve_case=True),
    _d("includematch",    "presentation", custom=True, preserve_case=True),
    _d("includenotmatch", "presentation", custom=True, preserve_case=True),
    _d("dominantsection", "presentation", integer=True, default=-1),
    _text("resultsheader"),
    _text("resultsfooter"),
    _text("noresultsheader"),
    _text("noresultsfooter"),
    _text("oneresultheader"),
    _text("oneresultfooter"),
    _flag("suppresserrors", "presentation"),
    _d("debug",           "presentation", custom=True, default=2, values=("0", "1", "2", "3", "4", "5")),
    _d("scroll",          "presentation", custom=True, boolean=True),

    # ── Permission guarded ─────────────────────────────────────────────────

    _text("updaterules", group="rules", permission="dpl_param_update_rules"),
    _text("deleterules", group="rules", permission="dpl_param_delete_rules"),
)


REGISTRY: dict[str, ParameterDefinition] = {d.name: d for d in _DEFINITIONS}


# -----------------------------------------------------------------------------

def get_definition(name: str) -> Optional[ParameterDefinition]:
    return REGISTRY.get(name)


def exists(name: str) -> bool:
    return name in REGISTRY


def all_definitions() -> list[ParameterDefinition]:
    return list(_DEFINITIONS)


# -----------------------------------------------------------------------------
