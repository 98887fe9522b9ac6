#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Parameter store and validator
=============================
``ParameterStore`` holds the resolved name -> value map of one evaluation and
the two derived flags (selection criteria found, open references conflict).

``ParameterValidator`` turns raw option text into stored values.  Generic
parameters run through the coercion pipeline driven by their definition:

    enumerated values -> lower-case -> strip <html> -> integer -> boolean
    -> timestamp -> page-name list -> regex capture -> db-key format

Parameters with a structured value (categories, namespaces, title filters,
order methods, ...) have a dedicated handler registered with ``@handler``.
A handler or pipeline failure returns False; the caller records a warning
and keeps the previous value.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import copy
import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Optional

from dpl.core.config import Settings
from dpl.core.errors import ParameterPermissionError
from .parameter_definitions import (
    ORDER_METHODS, PRIORITY, REGISTRY, TIMESTAMP_KEYWORDS, ParameterDefinition,
)
from .titles import Title, TitleResolver


log = logging.getLogger(__name__)

_HTML_TAG   = re.compile(r"<.*?html.*?>", re.IGNORECASE | re.DOTALL)
_INTEGER    = re.compile(r"^\s*[+-]?\d+\s*$")
_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]+$")

_TRUE  = {"1", "true", "on", "yes"}
_FALSE = {"0", "false", "off", "no", ""}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Coercion helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def strip_html_tags(text: str) -> str:
    return _HTML_TAG.sub("", text)


def replace_new_lines(text: str) -> str:
    return text.replace("\\n", "\n").replace("¶", "\n")


def filter_boolean(value: Any) -> Optional[bool]:
    """True / False, or None when *value* is not a recognised boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


def parse_integer(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if value is None or not _INTEGER.match(str(value)):
        return None
    return int(str(value).strip())


def normalize_timestamp(value: str) -> Optional[str]:
    """
    Relative keywords are kept as-is (resolved when the query is built);
    anything else is reduced to its digits, padded to 14 places and must
    form a valid date.  Month or day ``00`` becomes ``01``.
    """
    text = str(value).strip().lower()
    if text in TIMESTAMP_KEYWORDS:
        return text

    digits = re.sub(r"[^0-9]", "", text)
    if not digits or len(digits) > 14:
        return None
    digits = digits.ljust(14, "0")

    if digits[4:6] == "00":
        digits = digits[:4] + "01" + digits[6:]
    if digits[6:8] == "00":
        digits = digits[:6] + "01" + digits[8:]

    try:
        datetime.strptime(digits, "%Y%m%d%H%M%S")
    except ValueError:
        return None
    return digits


def is_regex_valid(patterns: Iterable[str] | str) -> bool:
    if isinstance(patterns, str):
        patterns = [patterns]
    for pattern in patterns:
        if not pattern.strip():
            continue
        try:
            re.compile(pattern)
        except re.error:
            return False
    return True


def _unique(items: Iterable) -> list:
    seen, out = set(), []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Structured values
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class CategorySelector:
    """
    Category criteria: comparison ("=", "LIKE", "REGEXP") -> boolean operator
    ("AND", "OR") -> list of category groups.  Each AND member needs its own
    join; an OR group shares one.  ``""`` stands for "uncategorized".
    """

    groups: dict[str, dict[str, list[list[str]]]] = field(default_factory=dict)

    def add(self, comparison: str, operator: str, names: Iterable[str]) -> None:
        self.groups.setdefault(comparison, {}).setdefault(operator, []).append(list(names))

    def __iter__(self) -> Iterator[tuple[str, str, list[str]]]:
        for comparison, operators in self.groups.items():
            for operator, groups in operators.items():
                for group in groups:
                    yield comparison, operator, group

    def count(self) -> int:
        return sum(len(group) for _, _, group in self)

    def names(self) -> list[str]:
        return [name for _, _, group in self for name in group]

    def __bool__(self) -> bool:
        return self.count() > 0


@dataclass
class ComparisonList:
    """Values grouped by comparison ("=", "LIKE", "REGEXP"), e.g. notcategory or title filters."""

    by_comparison: dict[str, list[str]] = field(default_factory=dict)

    def add(self, comparison: str, values: Iterable[str]) -> None:
        self.by_comparison.setdefault(comparison, []).extend(values)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for comparison, values in self.by_comparison.items():
            for value in values:
                yield comparison, value

    def count(self) -> int:
        return sum(len(v) for v in self.by_comparison.values())

    def __bool__(self) -> bool:
        return self.count() > 0


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ParameterStore:
    """Resolved parameter values for one evaluation."""

    def __init__(self, values: Optional[dict[str, Any]] = None):
        self.values: dict[str, Any] = dict(values or {})
        self.selection_criteria_found = False
        self.open_references_conflict = False

    @classmethod
    def with_defaults(cls, settings: Settings) -> "ParameterStore":
        store = cls()
        for definition in REGISTRY.values():
            if definition.stores_default:
                store.set(definition.name, copy.deepcopy(definition.default))
        if not settings.allow_unlimited_results:
            store.set("count", settings.max_result_count)
        return store

    # ── Access ─────────────────────────────────────────────────────────────

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def items(self):
        return list(self.values.items())

    # ── Derived views ──────────────────────────────────────────────────────

    @property
    def open_references(self) -> bool:
        return bool(self.get("openreferences"))

    @property
    def goal_is_categories(self) -> bool:
        return self.get("goal") == "categories"

    @property
    def order_methods(self) -> list[str]:
        methods = self.get("ordermethod") or []
        return [methods] if isinstance(methods, str) else list(methods)

    @property
    def category(self) -> CategorySelector:
        value = self.get("category")
        if not isinstance(value, CategorySelector):
            value = CategorySelector()
            self.set("category", value)
        return value

    def comparison_list(self, name: str) -> ComparisonList:
        value = self.get(name)
        if not isinstance(value, ComparisonList):
            value = ComparisonList()
            self.set(name, value)
        return value

    def total_categories(self) -> int:
        total = 0
        if isinstance(self.get("category"), CategorySelector):
            total += self.get("category").count()
        if isinstance(self.get("notcategory"), ComparisonList):
            total += self.get("notcategory").count()
        return total

    def has_revision_window(self) -> bool:
        return any(self.get(name) is not None for name in (
            "allrevisionsbefore", "allrevisionssince", "firstrevisionsince", "lastrevisionbefore",
        ))

    def page_groups(self, name: str) -> list[list[Any]]:
        value = self.get(name)
        return value if isinstance(value, list) else []

    def as_dict(self) -> dict[str, Any]:
        return dict(self.values)


# -----------------------------------------------------------------------------

def sort_by_priority(parameters: dict[str, list[str]]) -> dict[str, list[str]]:
    """Move the priority parameters to the front, keeping the rest in input order."""
    first = {name: parameters[name] for name in PRIORITY if name in parameters}
    rest  = {name: opts for name, opts in parameters.items() if name not in first}
    return {**first, **rest}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Validator
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

Handler = Callable[["ParameterValidator", str], bool]

_HANDLERS: dict[str, Handler] = {}


def handler(*names: str) -> Callable[[Handler], Handler]:
    """Register a method as the custom handler for *names*."""
    def register(func: Handler) -> Handler:
        for name in names:
            _HANDLERS[name] = func
        return func
    return register


# -----------------------------------------------------------------------------

class ParameterValidator:

    def __init__(
        self,
        store: ParameterStore,
        settings: Settings,
        resolver: TitleResolver,
        *,
        arguments: Optional[dict[str, str]] = None,
        permissions: Iterable[str] = (),
        subcategories: Optional[dict[tuple[str, int], list[str]]] = None,
    ):
        self.store         = store
        self.settings      = settings
        self.resolver      = resolver
        self.arguments     = dict(arguments or {})
        self.permissions   = set(permissions)
        self.subcategories = subcategories or {}

    # ── Entry point ────────────────────────────────────────────────────────

    def validate(self, name: str, option: str) -> bool:
        """
        Coerce and store one raw option.  Returns False when the value was
        rejected; raises ParameterPermissionError when the caller may not
        use the parameter.
        """
        definition = REGISTRY.get(name)
        if definition is None:
            return False

        if definition.permission and definition.permission not in self.permissions:
            raise ParameterPermissionError(name, definition.permission)

        custom = _HANDLERS.get(name)
        if custom is not None:
            return custom(self, option)

        ok, value = self.coerce(definition, option)
        if not ok:
            return False

        self.store.set(name, value)
        if definition.set_criteria_found:
            self.store.selection_criteria_found = True
        if definition.open_ref_conflict:
            self.store.open_references_conflict = True
        return True

    # -------------------------------------------------------------------------

    def coerce(self, definition: ParameterDefinition, option: str) -> tuple[bool, Any]:
        """Run the generic coercion pipeline; returns (success, value)."""
        value: Any = option
        ok = True

        if definition.values is not None and str(option).lower() not in definition.values:
            ok = False
        elif not definition.preserve_case and not definition.page_name_list:
            value = str(value).lower()

        if definition.strip_html:
            value = strip_html_tags(value)

        if definition.integer:
            number = parse_integer(value)
            if number is None:
                if definition.default is not None:
                    number = int(definition.default)
                else:
                    ok = False
            value = number

        if definition.boolean:
            value = filter_boolean(value)
            if value is None:
                ok = False

        if definition.timestamp:
            value = normalize_timestamp(value)
            if value is None:
                ok = False

        if definition.page_name_list and ok:
            pages = self.page_name_list(value, definition.page_name_must_exist)
            if pages is None:
                ok = False
            else:
                value = [list(g) for g in self.store.page_groups(definition.name)] + [pages]

        if definition.pattern and ok:
            match = re.search(definition.pattern, str(value))
            if match:
                value = list(match.groups())
            else:
                ok = False

        if definition.db_format and isinstance(value, str):
            value = value.replace(" ", "_")

        return ok, value

    # -------------------------------------------------------------------------

    def page_name_list(self, text: str, must_exist: bool = True) -> Optional[list]:
        """Split a ``|`` list of page names; None if a name does not resolve."""
        pages: list = []
        for page in str(text).strip().split("|"):
            page = page.strip().rstrip("\\")
            if not page:
                continue
            if must_exist:
                title = self.resolver.new_from_text(page)
                if title is None:
                    return None
                pages.append(title)
            else:
                pages.append(page)
        return pages

    # ── Helpers used by handlers ───────────────────────────────────────────

    def _title(self, text: str) -> Optional[Title]:
        return self.resolver.new_from_text(text)

    def _conflict(self) -> None:
        self.store.open_references_conflict = True

    def _criteria(self) -> None:
        self.store.selection_criteria_found = True

    # ━━ Categories ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @handler("category")
    def _category(self, option: str) -> bool:
        option = option.strip()
        if not option:
            return False

        heading = not_heading = False
        if option.startswith("+"):
            heading = True
            option = option.lstrip("+")
        if option.startswith("-"):
            not_heading = True
            option = option.lstrip("-")

        # entities carry '&' which would read as AND
        option = html.unescape(option)

        if "|" in option:
            parts, operator = option.split("|"), "OR"
        else:
            parts, operator = option.split("&"), "AND"

        categories: dict[str, list[str]] = {}
        for part in parts:
            part = part.strip()
            if part in ("_none_", ""):
                self.store.set("includeuncat", True)
                categories.setdefault(operator, []).append("")
            elif part.startswith("*") and len(part) >= 2:
                depth = 2 if part.startswith("**") else 1
                title = self._title(part[depth:])
                if title is None:
                    continue
                expanded = list(self.subcategories.get((title.db_key, depth), [])) + [title.db_key]
                categories.setdefault("OR", []).extend(_unique(expanded))
            else:
                title = self._title(part)
                if title is not None:
                    categories.setdefault(operator, []).append(title.db_key)

        if not categories:
            return False

        selector = self.store.category
        names: list[str] = []
        for op, group in categories.items():
            selector.add("=", op, group)
            names.extend(group)

        if heading:
            self.store.set("catheadings", _unique(list(self.store.get("catheadings") or []) + names))
        if not_heading:
            self.store.set("catnotheadings", _unique(list(self.store.get("catnotheadings") or []) + names))

        self._conflict()
        return True

    # -------------------------------------------------------------------------

    @handler("categoryregexp")
    def _categoryregexp(self, option: str) -> bool:
        if not is_regex_valid(option):
            return False
        self.store.category.add("REGEXP", "AND", [option])
        self._conflict()
        return True

    @handler("categorymatch")
    def _categorymatch(self, option: str) -> bool:
        if "|" in option:
            matches, operator = option.split("|"), "OR"
        else:
            matches, operator = option.split("&"), "AND"
        self.store.category.add("LIKE", operator, [m.strip() for m in matches])
        self._conflict()
        return True

    @handler("notcategory")
    def _notcategory(self, option: str) -> bool:
        title = self._title(option)
        if title is None:
            return False
        self.store.comparison_list("notcategory").add("=", [title.db_key])
        self._conflict()
        return True

    @handler("notcategoryregexp")
    def _notcategoryregexp(self, option: str) -> bool:
        if not is_regex_valid(option):
            return False
        self.store.comparison_list("notcategory").add("REGEXP", [option])
        self._conflict()
        return True

    @handler("notcategorymatch")
    def _notcategorymatch(self, option: str) -> bool:
        self.store.comparison_list("notcategory").add("LIKE", option.split("|"))
        self._conflict()
        return True

    # ━━ Namespaces ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _namespace_ids(self, option: str, check_allowed: bool) -> Optional[list[int]]:
        allowed = self.settings.allowed_namespaces
        ids: list[int] = []
        for name in option.split("|"):
            name = name.strip()
            ns_id = self.resolver.namespace_id(name)
            if ns_id is None:
                return None
            if check_allowed and allowed is not None and name not in allowed:
                return None
            ids.append(ns_id)
        return ids

    @handler("namespace")
    def _namespace(self, option: str) -> bool:
        ids = self._namespace_ids(option, check_allowed=True)
        if ids is None:
            return False
        self.store.set("namespace", _unique(list(self.store.get("namespace") or []) + ids))
        self._criteria()
        return True

    @handler("notnamespace")
    def _notnamespace(self, option: str) -> bool:
        ids = self._namespace_ids(option, check_allowed=False)
        if ids is None:
            return False
        self.store.set("notnamespace", _unique(list(self.store.get("notnamespace") or []) + ids))
        self._criteria()
        return True

    # ━━ Titles ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @handler("title")
    def _title_param(self, option: str) -> bool:
        title = self._title(option)
        if title is None:
            return False

        self.store.comparison_list("title").add("=", [title.db_key])
        self.store.set("namespace", _unique(list(self.store.get("namespace") or []) + [title.namespace]))
        self.store.set("mode", "userformat")
        self.store.set("ordermethod", [])
        self._criteria()
        self._conflict()
        return True

    def _title_patterns(self, name: str, comparison: str, option: str) -> bool:
        matches = option.replace(" ", "\\_").split("|")
        if comparison == "REGEXP" and not is_regex_valid(matches):
            return False
        self.store.comparison_list(name).add(comparison, matches)
        self._criteria()
        return True

    @handler("titlematch")
    def _titlematch(self, option: str) -> bool:
        return self._title_patterns("title", "LIKE", option)

    @handler("titleregexp")
    def _titleregexp(self, option: str) -> bool:
        return self._title_patterns("title", "REGEXP", option)

    @handler("nottitlematch")
    def _nottitlematch(self, option: str) -> bool:
        return self._title_patterns("nottitle", "LIKE", option)

    @handler("nottitleregexp")
    def _nottitleregexp(self, option: str) -> bool:
        return self._title_patterns("nottitle", "REGEXP", option)

    # ━━ Ordering and result shaping ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @handler("openreferences")
    def _openreferences(self, option: str) -> bool:
        value = filter_boolean(option)
        if value is None:
            return False
        self.store.set("ordermethod", ["none"])
        self.store.set("openreferences", value)
        return True

    @handler("ordermethod")
    def _ordermethod(self, option: str) -> bool:
        methods = [m.strip() for m in option.lower().split(",")]
        if any(m not in ORDER_METHODS for m in methods):
            return False
        self.store.set("ordermethod", methods)
        if methods[0] != "none":
            self._conflict()
        return True

    @handler("ordercollation")
    def _ordercollation(self, option: str) -> bool:
        option = option.strip()
        if option.lower() == "bridge":
            self.store.set("ordersuitsymbols", True)
        elif option and _IDENTIFIER.match(option):
            self.store.set("ordercollation", option)
        else:
            return False
        return True

    @handler("distinct")
    def _distinct(self, option: str) -> bool:
        if option.strip().lower() == "strict":
            self.store.set("distinct", "strict")
            return True
        value = filter_boolean(option)
        if value is None:
            return False
        self.store.set("distinct", value)
        return True

    @handler("count")
    def _count(self, option: Any) -> bool:
        number = parse_integer(option)
        if number is None or number <= 0:
            return False
        if not self.settings.allow_unlimited_results and number > self.settings.max_result_count:
            return False
        self.store.set("count", number)
        return True

    @handler("scroll")
    def _scroll(self, option: str) -> bool:
        value = filter_boolean(option)
        self.store.set("scroll", value)
        if value is not True:
            return True

        find_title = self.arguments.get("DPL_findTitle", "")
        if find_title:
            title_gt = "=_" + find_title[:1].upper() + find_title[1:]
        else:
            from_title = self.arguments.get("DPL_fromTitle", "")
            title_gt = from_title[:1].upper() + from_title[1:]
        if title_gt:
            self.store.set("titlegt", title_gt.replace(" ", "_"))

        to_title = self.arguments.get("DPL_toTitle", "")
        if to_title:
            self.store.set("titlelt", (to_title[:1].upper() + to_title[1:]).replace(" ", "_"))

        self.store.set("scrolldir", self.arguments.get("DPL_scrollDir", ""))

        count = self.arguments.get("DPL_count")
        if count:
            self._count(count)
        return True

    # ━━ Presentation ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @handler("mode")
    def _mode(self, option: str) -> bool:
        option = option.strip().lower()
        if option not in REGISTRY["mode"].values:
            return False
        if option == "none":
            self.store.set("mode", "inline")
            self.store.set("inlinetext", "<br/>")
        elif option == "userformat":
            self.store.set("mode", "userformat")
            self.store.set("inlinetext", "")
        else:
            self.store.set("mode", option)
        return True

    @handler("format", "listseparators")
    def _format(self, option: str) -> bool:
        option = replace_new_lines(strip_html_tags(option))
        self.store.set("listseparators", option.split(",", 3))
        self.store.set("mode", "userformat")
        self.store.set("inlinetext", "")
        return True

    @handler("replaceintitle")
    def _replaceintitle(self, option: str) -> bool:
        parts = option.split(",", 1)
        if len(parts) < 2:
            return False
        parts[1] = strip_html_tags(parts[1])
        try:
            compile_php_pattern(parts[0]).sub(parts[1], "")
        except re.error:
            return False
        self.store.set("replaceintitle", parts)
        return True

    @handler("include", "includepage")
    def _include(self, option: str) -> bool:
        if not option:
            return False
        self.store.set("incpage", True)
        self.store.set("seclabels", option.split(","))
        return True

    @handler("includematch")
    def _includematch(self, option: str) -> bool:
        patterns = option.split(",")
        if not is_regex_valid(patterns):
            return False
        self.store.set("seclabelsmatch", patterns)
        return True

    @handler("includenotmatch")
    def _includenotmatch(self, option: str) -> bool:
        patterns = option.split(",")
        if not is_regex_valid(patterns):
            return False
        self.store.set("seclabelsnotmatch", patterns)
        return True

    @handler("debug")
    def _debug(self, option: str) -> bool:
        option = option.strip()
        if option not in REGISTRY["debug"].values:
            return False
        self.store.set("debug", int(option))
        return True


# -----------------------------------------------------------------------------

def compile_php_pattern(pattern: str) -> re.Pattern:
    """
    Compile a ``/regex/flags`` style pattern.  A pattern without delimiters
    is compiled as-is.
    """
    if len(pattern) >= 2 and pattern[0] in "/#~!@%":
        delimiter = pattern[0]
        end = pattern.rfind(delimiter)
        if end > 0:
            body, modifiers = pattern[1:end], pattern[end + 1:]
            flags = 0
            if "i" in modifiers:
                flags |= re.IGNORECASE
            if "s" in modifiers:
                flags |= re.DOTALL
            if "m" in modifiers:
                flags |= re.MULTILINE
            if "x" in modifiers:
                flags |= re.VERBOSE
            return re.compile(body, flags)
    return re.compile(pattern)


# -----------------------------------------------------------------------------

def subcategory_requests(resolver: TitleResolver, options: Iterable[str]) -> set[tuple[str, int]]:
    """
    The (category db key, depth) pairs named with ``*Cat`` / ``**Cat`` in raw
    ``category`` options, so their subcategories can be fetched up front.
    """
    wanted: set[tuple[str, int]] = set()
    for option in options:
        text = html.unescape(option.strip().lstrip("+").lstrip("-"))
        for part in re.split(r"[|&]", text):
            part = part.strip()
            if part.startswith("*") and len(part) >= 2:
                depth = 2 if part.startswith("**") else 1
                title = resolver.new_from_text(part[depth:])
                if title is not None:
                    wanted.add((title.db_key, depth))
    return wanted


# -----------------------------------------------------------------------------
