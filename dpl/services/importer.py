#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
MediaWiki XML export importer
=============================
Loads pages and their full revision history from a ``Special:Export`` dump
into the wiki schema, then derives the link tables from the wikitext of the
latest revision:

    [[Target]] / [[:Category:X]]   -> pagelinks
    [[Category:X|sortkey]]          -> categorylinks
    [[File:X.png|...]]              -> imagelinks
    {{Template|...}}                -> templatelinks
    http(s)://...                   -> externallinks

Every revision also gets a recentchanges row carrying the old and new size,
so ``addcontribution`` has something to sum.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.models import (
    CategoryLink, ExternalLink, ImageLink, Page, PageLink,
    RecentChange, Revision, TemplateLink,
)
from .titles import NS_CATEGORY, NS_FILE, NS_MAIN, NS_TEMPLATE, TitleResolver


log = logging.getLogger(__name__)

_WIKILINK = re.compile(r"\[\[([^\[\]|]+)(?:\|([^\[\]]*))?\]\]")
_TEMPLATE = re.compile(r"\{\{\s*([^{}|]+?)\s*(?:\|[^{}]*)?\}\}")
_EXTERNAL = re.compile(r"https?://[^\s\[\]<>\"|]+")
_NOWIKI   = re.compile(r"<nowiki>.*?</nowiki>|<!--.*?-->", re.DOTALL | re.IGNORECASE)


# ── Data classes ──────────────────────────────────────────────────────────────

@dataclass
class MWRevision:
    timestamp:   str        # 14 digit UTC
    contributor: str
    comment:     str = ""
    minor:       bool = False
    text:        str = ""

    @property
    def length(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass
class MWPage:
    title:     str          # full title, may carry a namespace prefix
    ns:        int
    redirect:  bool = False
    revisions: list[MWRevision] = field(default_factory=list)

    @property
    def local_title(self) -> str:
        if self.ns != NS_MAIN and ":" in self.title:
            return self.title.split(":", 1)[1].strip()
        return self.title


@dataclass
class Links:
    pages:      set[tuple[int, str]] = field(default_factory=set)
    categories: dict[str, Optional[str]] = field(default_factory=dict)
    templates:  set[tuple[int, str]] = field(default_factory=set)
    images:     set[str] = field(default_factory=set)
    external:   list[str] = field(default_factory=list)


@dataclass
class ImportStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    revisions: int = 0


# ── XML parsing ───────────────────────────────────────────────────────────────

def _local(tag: str) -> str:
    """Tag name without its ``{namespace-uri}`` prefix."""
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if _local(child.tag) == name:
            return child
    return None


def _text(elem: ET.Element, name: str) -> str:
    child = _child(elem, name)
    return (child.text or "") if child is not None else ""


def _timestamp(value: str) -> str:
    """ISO 8601 export timestamp -> 14 digit MediaWiki timestamp."""
    when = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    return when.strftime("%Y%m%d%H%M%S")


def _revision(elem: ET.Element) -> MWRevision:
    contributor = "anonymous"
    contrib = _child(elem, "contributor")
    if contrib is not None:
        contributor = _text(contrib, "username") or _text(contrib, "ip") or contributor
    return MWRevision(
        timestamp=_timestamp(_text(elem, "timestamp")),
        contributor=contributor,
        comment=_text(elem, "comment"),
        minor=_child(elem, "minor") is not None,
        text=_text(elem, "text"),
    )


def parse_export(source: Union[str, Path, IO[bytes]]) -> Iterator[MWPage]:
    """Yield every page of an export, revisions oldest first."""
    for _event, elem in ET.iterparse(source, events=("end",)):
        if _local(elem.tag) != "page":
            continue
        title = _text(elem, "title").strip()
        if title:
            page = MWPage(
                title=title,
                ns=int(_text(elem, "ns") or 0),
                redirect=_child(elem, "redirect") is not None,
                revisions=sorted(
                    (_revision(r) for r in elem if _local(r.tag) == "revision"),
                    key=lambda r: r.timestamp,
                ),
            )
            if page.revisions:
                yield page
        elem.clear()


# ── Wikitext links ────────────────────────────────────────────────────────────

def parse_links(text: str, resolver: TitleResolver) -> Links:
    links = Links()
    text = _NOWIKI.sub("", text or "")

    for match in _WIKILINK.finditer(text):
        target = match.group(1).split("#", 1)[0].strip()
        if not target:
            continue
        title = resolver.new_from_text(target)
        if title is None:
            continue
        if target.startswith(":"):
            links.pages.add((title.namespace, title.db_key))
        elif title.namespace == NS_CATEGORY:
            links.categories.setdefault(title.db_key, match.group(2))
        elif title.namespace == NS_FILE:
            links.images.add(title.db_key)
        else:
            links.pages.add((title.namespace, title.db_key))

    for match in _TEMPLATE.finditer(text):
        name = match.group(1)
        # parser functions and magic words
        if name.startswith("#") or name.upper() == name:
            continue
        title = resolver.new_from_text(name, default_namespace=NS_TEMPLATE)
        if title is not None:
            links.templates.add((title.namespace, title.db_key))

    links.external = list(dict.fromkeys(_EXTERNAL.findall(text)))
    return links


def category_since(page: MWPage, resolver: TitleResolver) -> dict[str, str]:
    """Category -> timestamp of the revision that (last) added it."""
    since: dict[str, str] = {}
    for revision in page.revisions:
        current = parse_links(revision.text, resolver).categories
        since = {cat: since.get(cat, revision.timestamp) for cat in current}
    return since


# ── Database ──────────────────────────────────────────────────────────────────

async def _clear_page(db: AsyncSession, page_id: int) -> None:
    for model, column in (
        (CategoryLink, CategoryLink.cl_from),
        (PageLink,     PageLink.pl_from),
        (TemplateLink, TemplateLink.tl_from),
        (ImageLink,    ImageLink.il_from),
        (ExternalLink, ExternalLink.el_from),
        (Revision,     Revision.rev_page),
        (RecentChange, RecentChange.rc_cur_id),
    ):
        await db.execute(delete(model).where(column == page_id))


async def store_page(
    db: AsyncSession,
    mw: MWPage,
    resolver: TitleResolver,
    overwrite: bool = False,
) -> Optional[str]:
    """Write one page; returns "created", "updated" or None when skipped."""
    title = resolver.make(mw.ns, mw.local_title.replace(" ", "_"))
    result = await db.execute(
        select(Page).where(Page.page_namespace == title.namespace, Page.page_title == title.db_key)
    )
    page = result.scalar_one_or_none()

    if page is not None and not overwrite:
        return None

    outcome = "updated" if page is not None else "created"
    if page is None:
        page = Page(page_namespace=title.namespace, page_title=title.db_key)
        db.add(page)
        await db.flush()
    else:
        await _clear_page(db, page.page_id)

    parent, old_len = 0, 0
    for revision in mw.revisions:
        row = Revision(
            rev_page=page.page_id,
            rev_parent_id=parent,
            rev_user_text=revision.contributor,
            rev_comment=revision.comment,
            rev_timestamp=revision.timestamp,
            rev_minor_edit=int(revision.minor),
            rev_len=revision.length,
        )
        db.add(row)
        await db.flush()
        db.add(RecentChange(
            rc_cur_id=page.page_id,
            rc_user_text=revision.contributor,
            rc_timestamp=revision.timestamp,
            rc_old_len=old_len,
            rc_new_len=revision.length,
        ))
        parent, old_len = row.rev_id, revision.length

    latest = mw.revisions[-1]
    page.page_is_redirect = int(mw.redirect)
    page.page_latest      = parent
    page.page_len         = latest.length
    page.page_touched     = latest.timestamp

    links = parse_links(latest.text, resolver)
    since = category_since(mw, resolver)
    for category, sortkey in links.categories.items():
        db.add(CategoryLink(
            cl_from=page.page_id, cl_to=category,
            cl_sortkey=sortkey, cl_timestamp=since.get(category, latest.timestamp),
        ))
    for ns, target in links.pages:
        db.add(PageLink(pl_from=page.page_id, pl_namespace=ns, pl_title=target))
    for ns, target in links.templates:
        db.add(TemplateLink(tl_from=page.page_id, tl_namespace=ns, tl_title=target))
    for image in links.images:
        db.add(ImageLink(il_from=page.page_id, il_to=image))
    for url in links.external:
        db.add(ExternalLink(el_from=page.page_id, el_to=url))

    await db.flush()
    return outcome


async def import_export(
    db: AsyncSession,
    source: Union[str, Path, IO[bytes]],
    resolver: TitleResolver,
    *,
    skip_namespaces: frozenset[int] = frozenset(),
    overwrite: bool = False,
    limit: Optional[int] = None,
) -> ImportStats:
    stats = ImportStats()
    seen = 0
    for mw in parse_export(source):
        if mw.ns in skip_namespaces:
            continue
        if limit is not None and seen >= limit:
            break
        seen += 1

        outcome = await store_page(db, mw, resolver, overwrite=overwrite)
        if outcome is None:
            stats.skipped += 1
            continue
        setattr(stats, outcome, getattr(stats, outcome) + 1)
        stats.revisions += len(mw.revisions)

    log.info(
        "Imported %d pages (%d updated, %d skipped, %d revisions)",
        stats.created, stats.updated, stats.skipped, stats.revisions,
    )
    return stats


# -----------------------------------------------------------------------------
