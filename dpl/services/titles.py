#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Title resolution
================
Turns user supplied page names ("Help:Some page", "category:Foo_bar") into
normalised ``Title`` handles carrying the namespace id, display text and
database key, and looks up article ids for titles that must exist.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.models import Page


# -----------------------------------------------------------------------------

NS_MAIN     = 0
NS_USER     = 2
NS_FILE     = 6
NS_TEMPLATE = 10
NS_CATEGORY = 14

DEFAULT_NAMESPACES: dict[int, str] = {
    0:  "",
    1:  "Talk",
    2:  "User",
    3:  "User_talk",
    4:  "Project",
    5:  "Project_talk",
    6:  "File",
    7:  "File_talk",
    8:  "MediaWiki",
    9:  "MediaWiki_talk",
    10: "Template",
    11: "Template_talk",
    12: "Help",
    13: "Help_talk",
    14: "Category",
    15: "Category_talk",
}

_INVALID_CHARS = re.compile(r"[\[\]{}|<>#\x00-\x1f\x7f]")
_WHITESPACE    = re.compile(r"[ _]+")

MAX_TITLE_LENGTH = 255


# -----------------------------------------------------------------------------

def _ns_key(name: str) -> str:
    return _WHITESPACE.sub(" ", name).strip().lower()


def _ucfirst(text: str) -> str:
    return text[:1].upper() + text[1:]


# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Title:
    """A resolved page title.  ``text`` uses spaces, ``db_key`` underscores."""

    namespace:  int
    text:       str
    ns_text:    str = ""
    article_id: int = 0

    @property
    def db_key(self) -> str:
        return self.text.replace(" ", "_")

    @property
    def prefixed_text(self) -> str:
        prefix = self.ns_text.replace("_", " ")
        return f"{prefix}:{self.text}" if prefix else self.text

    @property
    def prefixed_db_key(self) -> str:
        return self.prefixed_text.replace(" ", "_")

    def __str__(self) -> str:
        return self.prefixed_text


# -----------------------------------------------------------------------------

class TitleResolver:
    """Resolves page names against a namespace id -> name map."""

    def __init__(self, namespaces: Optional[dict[int, str]] = None):
        self.namespaces: dict[int, str] = dict(namespaces or DEFAULT_NAMESPACES)
        self._by_name: dict[str, int] = {
            _ns_key(name): ns_id for ns_id, name in self.namespaces.items()
        }
        self._by_name.setdefault("main", NS_MAIN)
        self._by_name.setdefault("(main)", NS_MAIN)

    # ── Namespaces ─────────────────────────────────────────────────────────

    def namespace_id(self, name: str) -> Optional[int]:
        """Namespace id for *name* (case-insensitive); "" is the main namespace."""
        return self._by_name.get(_ns_key(name))

    def namespace_name(self, ns_id: int) -> str:
        return self.namespaces.get(ns_id, "")

    # ── Titles ─────────────────────────────────────────────────────────────

    def make(self, namespace: int, text: str, article_id: int = 0) -> Title:
        """Build a Title for a row that already carries namespace and db key."""
        return Title(
            namespace=namespace,
            text=str(text).replace("_", " "),
            ns_text=self.namespace_name(namespace),
            article_id=article_id,
        )

    def new_from_text(self, text: str, default_namespace: int = NS_MAIN) -> Optional[Title]:
        """Parse a user supplied page name; None when it is not a valid title."""
        if text is None:
            return None

        name = _WHITESPACE.sub(" ", str(text)).strip()
        namespace = default_namespace

        if name.startswith(":"):
            name = name[1:].strip()
            namespace = NS_MAIN

        if ":" in name:
            prefix, rest = name.split(":", 1)
            ns_id = self._by_name.get(_ns_key(prefix))
            if ns_id is not None and prefix.strip():
                namespace = ns_id
                name = rest.strip()

        if not name or len(name) > MAX_TITLE_LENGTH or _INVALID_CHARS.search(name):
            return None

        return Title(
            namespace=namespace,
            text=_ucfirst(name),
            ns_text=self.namespace_name(namespace),
        )


# -----------------------------------------------------------------------------

async def attach_article_ids(db: AsyncSession, titles: Iterable[Title]) -> list[Title]:
    """Return *titles* with ``article_id`` filled in from the page table (0 if absent)."""
    titles = list(titles)
    if not titles:
        return titles

    keys = {(t.namespace, t.db_key) for t in titles}
    result = await db.execute(
        select(Page.page_namespace, Page.page_title, Page.page_id)
        .where(tuple_(Page.page_namespace, Page.page_title).in_(list(keys)))
    )
    ids = {(ns, title): page_id for ns, title, page_id in result.all()}
    return [replace(t, article_id=ids.get((t.namespace, t.db_key), 0)) for t in titles]


# -----------------------------------------------------------------------------
