#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Namespace service — seed, list and look up wiki namespaces.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.models import Namespace, Page
from .titles import DEFAULT_NAMESPACES, NS_MAIN, TitleResolver


log = logging.getLogger(__name__)

CONTENT_NAMESPACES = {NS_MAIN}


# -----------------------------------------------------------------------------

async def seed_namespaces(db: AsyncSession) -> int:
    """Insert the standard namespaces that are not present yet.  Returns the number added."""
    result = await db.execute(select(Namespace.ns_id))
    existing = set(result.scalars().all())

    added = 0
    for ns_id, name in DEFAULT_NAMESPACES.items():
        if ns_id in existing:
            continue
        db.add(Namespace(ns_id=ns_id, name=name, is_content=ns_id in CONTENT_NAMESPACES))
        added += 1

    if added:
        await db.flush()
        log.info("Seeded %d namespaces", added)
    return added


# -----------------------------------------------------------------------------

async def load_namespace_map(db: AsyncSession) -> dict[int, str]:
    """Namespace id -> name; falls back to the defaults on an unseeded database."""
    result = await db.execute(select(Namespace.ns_id, Namespace.name))
    rows = dict(result.all())
    return rows or dict(DEFAULT_NAMESPACES)


async def get_resolver(db: AsyncSession) -> TitleResolver:
    return TitleResolver(await load_namespace_map(db))


# -----------------------------------------------------------------------------

async def list_namespaces(db: AsyncSession) -> list[Namespace]:
    result = await db.execute(select(Namespace).order_by(Namespace.ns_id))
    return list(result.scalars().all())


# -----------------------------------------------------------------------------

async def get_namespace_by_name(db: AsyncSession, name: str) -> Namespace:
    resolver = await get_resolver(db)
    ns_id = resolver.namespace_id(name)
    ns = await db.get(Namespace, ns_id) if ns_id is not None else None
    if not ns:
        raise HTTPException(status_code=404, detail=f"Namespace '{name}' not found")
    return ns


# -----------------------------------------------------------------------------

async def get_page_count(db: AsyncSession, ns_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Page).where(Page.page_namespace == ns_id)
    )
    return result.scalar_one()


# -----------------------------------------------------------------------------
