#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Pytest fixtures for PyDPL tests.
Uses an in-memory SQLite database so no external services are needed.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dpl.core.config import Settings, get_settings
from dpl.core.database import Base, get_db, register_sqlite_functions
from dpl.main import create_app
from dpl.models import (
    CategoryLink, ExternalLink, HitCounter, ImageLink, Page, PageLink,
    RecentChange, Revision, TemplateLink,
)
from dpl.services.namespaces import get_resolver, seed_namespaces


# -----------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# -----------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(environment="testing", query_timeout_seconds=30.0)


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )
    register_sqlite_functions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session_factory(db_engine):
    """Shared sessionmaker — both client and db_session use this."""
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_namespaces(session)
        await session.commit()
    return factory


@pytest_asyncio.fixture(scope="function")
async def db_session(db_session_factory):
    """Direct DB session for test setup and evaluation."""
    async with db_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def resolver(db_session):
    return await get_resolver(db_session)


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, db_session_factory, settings):
    """HTTP test client wired to an isolated in-memory DB."""
    async def override_get_db():
        async with db_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# -----------------------------------------------------------------------------
# Helper functions for tests
# -----------------------------------------------------------------------------

CategoryEntry = Union[str, tuple]
LinkEntry     = Union[str, tuple[int, str]]


def _target(entry: LinkEntry) -> tuple[int, str]:
    if isinstance(entry, str):
        return 0, entry.replace(" ", "_")
    ns, title = entry
    return ns, title.replace(" ", "_")


async def add_page(
    db: AsyncSession,
    title: str,
    ns: int = 0,
    *,
    categories: Iterable[CategoryEntry] = (),
    links: Iterable[LinkEntry] = (),
    templates: Iterable[LinkEntry] = (),
    images: Iterable[str] = (),
    external: Iterable[str] = (),
    revisions: Iterable[tuple] = (("Alice", "20240101000000"),),
    changes: Iterable[tuple[str, int, int]] = (),
    redirect: bool = False,
    length: int = 100,
    counter: Optional[int] = None,
    touched: Optional[str] = None,
) -> Page:
    """
    Insert a page with its revisions and link rows.

    ``revisions`` are ``(user, timestamp[, minor])`` oldest first;
    ``categories`` are names or ``(name, sortkey, timestamp)``;
    ``changes`` are recentchanges ``(user, old_len, new_len)``.
    """
    revisions = list(revisions)
    page = Page(
        page_namespace=ns,
        page_title=title.replace(" ", "_"),
        page_is_redirect=int(redirect),
        page_len=length,
        page_touched=touched or revisions[-1][1],
    )
    db.add(page)
    await db.flush()

    parent = 0
    for user, timestamp, *rest in revisions:
        rev = Revision(
            rev_page=page.page_id,
            rev_parent_id=parent,
            rev_user_text=user,
            rev_comment=f"edit by {user}",
            rev_timestamp=timestamp,
            rev_minor_edit=int(bool(rest[0])) if rest else 0,
            rev_len=length,
        )
        db.add(rev)
        await db.flush()
        parent = rev.rev_id
    page.page_latest = parent

    for entry in categories:
        if isinstance(entry, str):
            name, sortkey, timestamp = entry, None, revisions[0][1]
        else:
            name, sortkey, timestamp = entry
        db.add(CategoryLink(
            cl_from=page.page_id, cl_to=name.replace(" ", "_"),
            cl_sortkey=sortkey, cl_timestamp=timestamp,
        ))
    for entry in links:
        target_ns, target = _target(entry)
        db.add(PageLink(pl_from=page.page_id, pl_namespace=target_ns, pl_title=target))
    for entry in templates:
        target_ns, target = _target(entry) if not isinstance(entry, str) else (10, entry.replace(" ", "_"))
        db.add(TemplateLink(tl_from=page.page_id, tl_namespace=target_ns, tl_title=target))
    for image in images:
        db.add(ImageLink(il_from=page.page_id, il_to=image.replace(" ", "_")))
    for url in external:
        db.add(ExternalLink(el_from=page.page_id, el_to=url))
    for user, old_len, new_len in changes:
        db.add(RecentChange(
            rc_cur_id=page.page_id, rc_user_text=user,
            rc_timestamp=revisions[-1][1], rc_old_len=old_len, rc_new_len=new_len,
        ))
    if counter is not None:
        db.add(HitCounter(page_id=page.page_id, page_counter=counter))

    await db.flush()
    return page


def titles(result) -> list[str]:
    return [r.title for r in result.records]


def codes(result) -> list[int]:
    return result.diagnostics.codes()


# -----------------------------------------------------------------------------
