#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Result materializer
===================
Turns one result row into a ``Record``: title identity, the wikilink
inputs and whichever enrichments the parameters asked for (dates,
revision data, authors, categories, contribution size, heading key).

The heading counter belongs to one evaluation.  Every record that lands
under a heading increments that heading's count as it is built, so the
n-th record of a heading carries count n.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import html
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dpl.core.config import Settings
from .parameters import ParameterStore, compile_php_pattern
from .titles import NS_CATEGORY, NS_FILE, Title, TitleResolver


# -----------------------------------------------------------------------------

CONTRIBUTION_GLYPHS = "*" * 17

UNCATEGORIZED_LINK = "[[:Special:Uncategorizedpages|Uncategorized pages]]"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Record
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class Record:
    namespace:       int
    title:           str
    prefixed_title:  str
    page_id:         int = 0
    link:            str = ""
    title_text:      str = ""
    start_char:      str = ""

    external_link:   Optional[str] = None
    counter:         int = 0
    size:            Optional[int] = None
    sel_title:       Optional[str] = None
    sel_namespace:   Optional[int] = None
    image_sel_title: Optional[str] = None

    revision:        Optional[int] = None
    user:            Optional[str] = None
    user_link:       Optional[str] = None
    comment:         Optional[str] = None
    date:            Optional[str] = None
    user_date:       Optional[str] = None

    contribution:    int = 0
    contrib:         str = ""
    contributor:     Optional[str] = None

    category_links:  list[str] = field(default_factory=list)
    category_texts:  list[str] = field(default_factory=list)

    heading_key:     Optional[str] = None
    heading_link:    Optional[str] = None
    heading_count:   int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# -----------------------------------------------------------------------------

class HeadingCounter:
    """Running per-heading record counts, in first-seen order."""

    def __init__(self):
        self._counts: dict[str, int] = {}

    def increment(self, key: str) -> int:
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    def count(self, key: str) -> int:
        return self._counts.get(key, 0)

    def items(self) -> list[tuple[str, int]]:
        return list(self._counts.items())

    def __len__(self) -> int:
        return len(self._counts)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def parse_mw_timestamp(value: Any) -> Optional[datetime]:
    digits = "".join(ch for ch in str(value or "") if ch.isdigit())
    if len(digits) < 14:
        return None
    try:
        return datetime.strptime(digits[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def user_adjust(value: Any, zone: str = "UTC") -> Optional[str]:
    """Shift a UTC timestamp into the display zone, keeping the 14 digit form."""
    when = parse_mw_timestamp(value)
    if when is None:
        return None
    try:
        tz = ZoneInfo(zone)
    except ZoneInfoNotFoundError:
        tz = timezone.utc
    return when.astimezone(tz).strftime("%Y%m%d%H%M%S")


def _ordinal_suffix(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def php_date(fmt: str, when: datetime) -> str:
    """
    Format *when* with PHP ``date()`` letters.  A backslash makes the next
    character literal; unknown letters are copied through.
    """
    hour12 = when.hour % 12 or 12
    is_leap = when.year % 4 == 0 and (when.year % 100 != 0 or when.year % 400 == 0)
    iso_year, iso_week, iso_weekday = when.isocalendar()
    offset = when.utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset else 0
    sign = "+" if offset_minutes >= 0 else "-"
    offset_hm = f"{abs(offset_minutes) // 60:02d}{abs(offset_minutes) % 60:02d}"

    letters = {
        "d": lambda: f"{when.day:02d}",
        "D": lambda: when.strftime("%a"),
        "j": lambda: str(when.day),
        "l": lambda: when.strftime("%A"),
        "N": lambda: str(iso_weekday),
        "S": lambda: _ordinal_suffix(when.day),
        "w": lambda: str(iso_weekday % 7),
        "z": lambda: str(when.timetuple().tm_yday - 1),
        "W": lambda: f"{iso_week:02d}",
        "F": lambda: when.strftime("%B"),
        "m": lambda: f"{when.month:02d}",
        "M": lambda: when.strftime("%b"),
        "n": lambda: str(when.month),
        "t": lambda: str(_days_in_month(when.year, when.month)),
        "L": lambda: "1" if is_leap else "0",
        "o": lambda: str(iso_year),
        "Y": lambda: f"{when.year:04d}",
        "y": lambda: f"{when.year % 100:02d}",
        "a": lambda: "am" if when.hour < 12 else "pm",
        "A": lambda: "AM" if when.hour < 12 else "PM",
        "g": lambda: str(hour12),
        "G": lambda: str(when.hour),
        "h": lambda: f"{hour12:02d}",
        "H": lambda: f"{when.hour:02d}",
        "i": lambda: f"{when.minute:02d}",
        "s": lambda: f"{when.second:02d}",
        "u": lambda: f"{when.microsecond:06d}",
        "e": lambda: str(when.tzinfo or "UTC"),
        "T": lambda: when.strftime("%Z") or "UTC",
        "O": lambda: f"{sign}{offset_hm}",
        "P": lambda: f"{sign}{offset_hm[:2]}:{offset_hm[2:]}",
        "U": lambda: str(int(when.timestamp())),
        "c": lambda: when.strftime("%Y-%m-%dT%H:%M:%S") + f"{sign}{offset_hm[:2]}:{offset_hm[2:]}",
        "r": lambda: when.strftime("%a, %d %b %Y %H:%M:%S ") + f"{sign}{offset_hm}",
    }

    out: list[str] = []
    escaped = False
    for ch in fmt:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in letters:
            out.append(letters[ch]())
        else:
            out.append(ch)
    return "".join(out)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (datetime(year, month + 1, 1) - datetime(year, month, 1)).days


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Builder
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ArticleBuilder:
    """Materializes rows for one evaluation."""

    def __init__(
        self,
        store: ParameterStore,
        resolver: TitleResolver,
        settings: Settings,
        headings: Optional[HeadingCounter] = None,
        invoking_title: Optional[Title] = None,
    ):
        self.store          = store
        self.resolver       = resolver
        self.settings       = settings
        self.headings       = headings if headings is not None else HeadingCounter()
        self.invoking_title = invoking_title

    # -------------------------------------------------------------------------

    def row_title(self, row: dict[str, Any]) -> tuple[int, str]:
        """(namespace, db key) a row stands for in the active query mode."""
        if self.store.goal_is_categories:
            return NS_CATEGORY, str(row["cl_to"])
        if self.store.open_references:
            if self.store.get("imagecontainer"):
                return NS_FILE, str(row["il_to"])
            return int(row["pl_namespace"]), str(row["pl_title"])
        return int(row["page_namespace"]), str(row["page_title"])

    def build(self, row: dict[str, Any]) -> Optional[Record]:
        """The record for *row*, or None when the row is skipped."""
        namespace, page_title = self.row_title(row)

        if not self.store.get("includesubpages") and "/" in page_title:
            return None

        title = self.resolver.make(namespace, page_title, int(row.get("page_id") or 0))
        if self.store.get("skipthispage") and self._is_invoking_page(title):
            return None

        record = Record(
            namespace=namespace,
            title=title.text,
            prefixed_title=title.prefixed_text,
            page_id=int(row.get("page_id") or 0),
        )
        self._link(record, title, row)
        self._start_char(record, row, page_title)
        self._selection_data(record, row)

        if not self.store.goal_is_categories:
            self._revision_data(record, row)
            self._date(record, row)
            self._contribution(record, row)
            self._author(record, row)
            self._categories(record, row)
            self._heading(record, row)

        return record

    def _is_invoking_page(self, title: Title) -> bool:
        other = self.invoking_title
        return other is not None and other.namespace == title.namespace and other.db_key == title.db_key

    # ── Link ───────────────────────────────────────────────────────────────

    def title_text(self, title: Title) -> str:
        text = title.prefixed_text if self.store.get("shownamespace") is True else title.text

        replace = self.store.get("replaceintitle")
        if replace:
            text = compile_php_pattern(replace[0]).sub(replace[1], text)

        max_len = self.store.get("titlemaxlen")
        if max_len is not None and len(text) > int(max_len):
            text = text[:int(max_len)] + "..."
        return text

    def _link(self, record: Record, title: Title, row: dict[str, Any]) -> None:
        text = self.title_text(title)
        escaped = html.escape(text)
        record.title_text = text

        if self.store.get("showcurid") and row.get("page_id"):
            url = f"/index.php?title={quote(title.prefixed_db_key)}&curid={int(row['page_id'])}"
            record.link = f"[{url} {escaped}]"
            return

        colon = ":" if (self.store.get("escapelinks") and title.namespace in (NS_CATEGORY, NS_FILE)) else ""
        record.link = f"[[{colon}{title.prefixed_text}|{escaped}]]"

    def _start_char(self, record: Record, row: dict[str, Any], page_title: str) -> None:
        source = row.get("sortkey")
        source = str(source) if source not in (None, "") else page_title
        record.start_char = source[:1].upper()

    # ── Selection echoes ───────────────────────────────────────────────────

    def _selection_data(self, record: Record, row: dict[str, Any]) -> None:
        if row.get("el_to") is not None:
            record.external_link = row["el_to"]
        if row.get("page_counter") is not None:
            record.counter = int(row["page_counter"])
        if self.store.get("addpagesize") and row.get("page_len") is not None:
            record.size = int(row["page_len"])

        if self.store.page_groups("linksto") or self.store.page_groups("linksfrom"):
            if row.get("sel_title") is None:
                record.sel_title, record.sel_namespace = "unknown page", 0
            else:
                record.sel_title = str(row["sel_title"])
                record.sel_namespace = int(row.get("sel_ns") or 0)

        if self.store.page_groups("imageused"):
            image = row.get("image_sel_title")
            record.image_sel_title = str(image) if image is not None else "unknown image"

    # ── Revision, date, author ─────────────────────────────────────────────

    def _revision_data(self, record: Record, row: dict[str, Any]) -> None:
        if not self.store.has_revision_window():
            return
        record.revision = row.get("rev_id")
        record.user     = row.get("rev_user_text")
        record.date     = row.get("rev_timestamp")
        record.comment  = row.get("rev_comment")

    def _date(self, record: Record, row: dict[str, Any]) -> None:
        timestamp = None
        if self.store.get("addpagetoucheddate"):
            timestamp = row.get("page_touched")
        elif self.store.get("addfirstcategorydate"):
            timestamp = row.get("cl_timestamp")
        elif self.store.get("addeditdate"):
            timestamp = row.get("rev_timestamp") or row.get("page_touched")

        if timestamp is None:
            return

        record.date = user_adjust(timestamp, self.settings.display_timezone)
        date_format = self.store.get("userdateformat")
        if date_format:
            when = parse_mw_timestamp(timestamp)
            if when is not None:
                record.user_date = php_date(date_format, when)

    def _contribution(self, record: Record, row: dict[str, Any]) -> None:
        if not self.store.get("addcontribution"):
            return
        contribution = int(row.get("contribution") or 0)
        record.contribution = contribution
        record.contributor  = row.get("contributor")
        if contribution > 0:
            # round half up
            length = int(math.floor(math.log(contribution) + 0.5))
            record.contrib = CONTRIBUTION_GLYPHS[:max(length, 0)]

    def _author(self, record: Record, row: dict[str, Any]) -> None:
        if not any(self.store.get(name) for name in ("adduser", "addauthor", "addlasteditor")):
            return
        user = row.get("rev_user_text")
        if user is None:
            return
        record.user      = user
        record.user_link = f"[[User:{user}|{user}]]"

    def _categories(self, record: Record, row: dict[str, Any]) -> None:
        if not self.store.get("addcategories") or not row.get("cats"):
            return
        names = sorted(set(str(row["cats"]).split(" | ")))
        for name in names:
            text = name.replace("_", " ")
            record.category_links.append(f"[[:Category:{name}|{text}]]")
            record.category_texts.append(text)

    # ── Heading ────────────────────────────────────────────────────────────

    def _heading(self, record: Record, row: dict[str, Any]) -> None:
        methods = self.store.order_methods
        if not methods:
            return

        if methods[0] == "category":
            key = str(row.get("cl_to") or "")
            record.heading_key   = key
            record.heading_count = self.headings.increment(key)
            if key:
                record.heading_link = f"[[:Category:{key}|{key.replace('_', ' ')}]]"
            else:
                record.heading_link = UNCATEGORIZED_LINK

        elif methods[0] == "user":
            user = row.get("rev_user_text")
            if user is None:
                return
            record.heading_key   = str(user)
            record.heading_count = self.headings.increment(str(user))
            record.heading_link  = f"[[User:{user}|{user}]]"


# -----------------------------------------------------------------------------
