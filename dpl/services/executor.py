#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query executor — runs a built query against the session.

Rows are streamed, not fetched in one go, so sampling and materialization
work in a single forward pass.  Every SQLAlchemy failure comes back as
``SqlExecutionError`` carrying the driver's message.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import bindparam, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.core.errors import SqlExecutionError
from dpl.models import CategoryLink, Page
from .query import QueryBuilder
from .titles import NS_CATEGORY


log = logging.getLogger(__name__)

MAX_SUBCATEGORY_DEPTH = 2


# -----------------------------------------------------------------------------

async def count_rows(db: AsyncSession, query: QueryBuilder) -> int:
    """Rows the query matches without LIMIT / OFFSET."""
    sql = query.count_sql()
    log.debug("Count SQL: %s", sql)
    try:
        result = await db.execute(text(sql), query.params)
        return int(result.scalar_one())
    except SQLAlchemyError as e:
        log.error("Count query failed: %s", e)
        raise SqlExecutionError.from_driver_error(e, sql) from e


# -----------------------------------------------------------------------------

async def stream_rows(db: AsyncSession, query: QueryBuilder) -> AsyncIterator[dict[str, Any]]:
    """Yield the result rows of *query* as dicts, one at a time."""
    sql = query.render()
    log.debug("Query SQL: %s", sql)
    try:
        result = await db.stream(text(sql), query.params)
        try:
            async for row in result.mappings():
                yield dict(row)
        finally:
            await result.close()
    except SQLAlchemyError as e:
        log.error("Query failed: %s", e)
        raise SqlExecutionError.from_driver_error(e, sql) from e


# -----------------------------------------------------------------------------

async def category_goal_rows(db: AsyncSession, query: QueryBuilder) -> list[dict[str, Any]]:
    """
    Distinct categories of every page the query selects: the page ids are
    collected with the accumulated filters, then their categories listed.
    """
    ids_sql = query.page_ids_sql()
    try:
        result = await db.execute(text(ids_sql), query.params)
        page_ids = [row[0] for row in result.all()]
    except SQLAlchemyError as e:
        log.error("Page id query failed: %s", e)
        raise SqlExecutionError.from_driver_error(e, ids_sql) from e

    if not page_ids:
        return []

    sql = query.category_goal_sql()
    statement = text(sql).bindparams(bindparam("page_ids", expanding=True))
    try:
        result = await db.execute(statement, {"page_ids": page_ids})
        return [dict(row) for row in result.mappings().all()]
    except SQLAlchemyError as e:
        log.error("Category query failed: %s", e)
        raise SqlExecutionError.from_driver_error(e, sql) from e


# -----------------------------------------------------------------------------

async def fetch_subcategories(db: AsyncSession, category: str, depth: int = 1) -> list[str]:
    """Db keys of the subcategories of *category*, down to *depth* levels."""
    depth = max(1, min(depth, MAX_SUBCATEGORY_DEPTH))
    found: list[str] = []
    level = [category]

    for _ in range(depth):
        if not level:
            break
        try:
            result = await db.execute(
                select(Page.page_title)
                .join(CategoryLink, CategoryLink.cl_from == Page.page_id)
                .where(CategoryLink.cl_to.in_(level), Page.page_namespace == NS_CATEGORY)
                .order_by(Page.page_title)
            )
        except SQLAlchemyError as e:
            raise SqlExecutionError.from_driver_error(e) from e
        titles = dict.fromkeys(result.scalars().all())
        level = [t for t in titles if t not in found and t != category]
        found.extend(level)

    return found


# -----------------------------------------------------------------------------
