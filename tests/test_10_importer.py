#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""Tests for the MediaWiki XML export importer."""
# -----------------------------------------------------------------------------

from __future__ import annotations

import io

import pytest
from sqlalchemy import select

from dpl.models import CategoryLink, Page, PageLink, RecentChange, Revision
from dpl.services.evaluation import evaluate
from dpl.services.importer import import_export, parse_export, parse_links
from dpl.services.titles import TitleResolver
from tests.conftest import NOW, titles


# -----------------------------------------------------------------------------

EXPORT = b"""<?xml version="1.0" encoding="utf-8"?>
<mediawiki xmlns="http://www.mediawiki.org/xml/export-0.10/" version="0.10" xml:lang="en">
  <page>
    <title>Apple</title>
    <ns>0</ns>
    <id>1</id>
    <revision>
      <id>10</id>
      <timestamp>2024-01-01T00:00:00Z</timestamp>
      <contributor><username>Alice</username><id>1</id></contributor>
      <text>Red. [[Category:Fruit]]</text>
    </revision>
    <revision>
      <id>11</id>
      <timestamp>2024-03-01T00:00:00Z</timestamp>
      <contributor><ip>10.0.0.1</ip></contributor>
      <minor/>
      <comment>tidy</comment>
      <text>Red and sweet. [[Category:Fruit]] [[Category:Red]] [[Banana]]</text>
    </revision>
  </page>
  <page>
    <title>Category:Fruit</title>
    <ns>14</ns>
    <id>2</id>
    <revision>
      <id>12</id>
      <timestamp>2024-01-02T00:00:00Z</timestamp>
      <contributor><username>Alice</username><id>1</id></contributor>
      <text>Things that grow on trees.</text>
    </revision>
  </page>
  <page>
    <title>Old apple</title>
    <ns>0</ns>
    <id>3</id>
    <redirect title="Apple" />
    <revision>
      <id>13</id>
      <timestamp>2024-01-03T00:00:00Z</timestamp>
      <contributor><username>Bob</username><id>2</id></contributor>
      <text>#REDIRECT [[Apple]]</text>
    </revision>
  </page>
</mediawiki>
"""

LATEST_APPLE = "Red and sweet. [[Category:Fruit]] [[Category:Red]] [[Banana]]"


async def _page(db, ns, title) -> Page:
    result = await db.execute(select(Page).where(Page.page_namespace == ns, Page.page_title == title))
    return result.scalar_one()


# ── Wikitext ──────────────────────────────────────────────────────────────────

def test_parse_links():
    text = (
        "See [[banana split|a treat]] and [[:Category:Fruit]].\n"
        "[[Category:Fruit|Apple]] [[Category:Red]]\n"
        "[[File:Apple.jpg|thumb]]\n"
        "{{Infobox fruit|color=red}} {{#if:x|y}} {{PAGENAME}}\n"
        "http://example.org/apple and <nowiki>[[Hidden]]</nowiki>"
    )
    links = parse_links(text, TitleResolver())
    assert links.pages == {(0, "Banana_split"), (14, "Fruit")}
    assert links.categories == {"Fruit": "Apple", "Red": None}
    assert links.images == {"Apple.jpg"}
    assert links.templates == {(10, "Infobox_fruit")}
    assert links.external == ["http://example.org/apple"]


def test_parse_links_empty():
    links = parse_links("", TitleResolver())
    assert not links.pages and not links.categories and not links.external


def test_parse_export():
    pages = list(parse_export(io.BytesIO(EXPORT)))
    assert [(p.title, p.ns) for p in pages] == [("Apple", 0), ("Category:Fruit", 14), ("Old apple", 0)]
    assert pages[1].local_title == "Fruit"
    assert pages[2].redirect

    apple = pages[0]
    assert [r.timestamp for r in apple.revisions] == ["20240101000000", "20240301000000"]
    assert apple.revisions[0].contributor == "Alice"
    assert apple.revisions[1].contributor == "10.0.0.1"
    assert apple.revisions[1].minor
    assert apple.revisions[1].comment == "tidy"


# ── Database ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_import_export(db_session, resolver):
    stats = await import_export(db_session, io.BytesIO(EXPORT), resolver)
    assert (stats.created, stats.updated, stats.skipped, stats.revisions) == (3, 0, 0, 4)

    apple = await _page(db_session, 0, "Apple")
    assert apple.page_len == len(LATEST_APPLE.encode("utf-8"))
    assert apple.page_touched == "20240301000000"
    assert apple.page_is_redirect == 0

    result = await db_session.execute(
        select(Revision).where(Revision.rev_page == apple.page_id).order_by(Revision.rev_timestamp)
    )
    revisions = result.scalars().all()
    assert [r.rev_user_text for r in revisions] == ["Alice", "10.0.0.1"]
    assert revisions[0].rev_parent_id == 0
    assert revisions[1].rev_parent_id == revisions[0].rev_id
    assert revisions[1].rev_minor_edit == 1
    assert apple.page_latest == revisions[1].rev_id

    result = await db_session.execute(
        select(CategoryLink.cl_to, CategoryLink.cl_timestamp)
        .where(CategoryLink.cl_from == apple.page_id)
        .order_by(CategoryLink.cl_to)
    )
    assert result.all() == [("Fruit", "20240101000000"), ("Red", "20240301000000")]

    result = await db_session.execute(
        select(PageLink.pl_namespace, PageLink.pl_title).where(PageLink.pl_from == apple.page_id)
    )
    assert result.all() == [(0, "Banana")]

    result = await db_session.execute(
        select(RecentChange.rc_old_len, RecentChange.rc_new_len)
        .where(RecentChange.rc_cur_id == apple.page_id)
        .order_by(RecentChange.rc_timestamp)
    )
    assert result.all() == [(0, len(b"Red. [[Category:Fruit]]")), (len(b"Red. [[Category:Fruit]]"), apple.page_len)]

    redirect = await _page(db_session, 0, "Old_apple")
    assert redirect.page_is_redirect == 1


@pytest.mark.asyncio
async def test_imported_pages_are_queryable(db_session, resolver, settings):
    await import_export(db_session, io.BytesIO(EXPORT), resolver)
    result = await evaluate(db_session, "category = Fruit", settings=settings, now=NOW)
    assert titles(result) == ["Apple"]

    result = await evaluate(db_session, "category = Fruit\nordermethod = lastedit\nadduser = true",
                            settings=settings, now=NOW)
    assert [r.user for r in result.records] == ["10.0.0.1"]


@pytest.mark.asyncio
async def test_reimport_skips_or_overwrites(db_session, resolver):
    await import_export(db_session, io.BytesIO(EXPORT), resolver)

    stats = await import_export(db_session, io.BytesIO(EXPORT), resolver)
    assert (stats.created, stats.skipped) == (0, 3)

    stats = await import_export(db_session, io.BytesIO(EXPORT), resolver, overwrite=True)
    assert stats.updated == 3

    apple = await _page(db_session, 0, "Apple")
    result = await db_session.execute(select(Revision).where(Revision.rev_page == apple.page_id))
    assert len(result.scalars().all()) == 2


@pytest.mark.asyncio
async def test_skip_namespaces_and_limit(db_session, resolver):
    stats = await import_export(
        db_session, io.BytesIO(EXPORT), resolver,
        skip_namespaces=frozenset({14}), limit=1,
    )
    assert stats.created == 1
    result = await db_session.execute(select(Page.page_title))
    assert result.scalars().all() == ["Apple"]


# -----------------------------------------------------------------------------
