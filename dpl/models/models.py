#!/usr/bin/env python
#
#
# ----------------------------------------------------------------------------
"""
ORM Models for the wiki content schema
=======================================

Tables
------
namespaces      — namespace id <-> canonical name
page            — one row per existing page
revision        — append-only edit history
categorylinks   — page -> category membership
pagelinks       — page -> linked title (target may not exist)
templatelinks   — page -> transcluded title
imagelinks      — page -> used file
externallinks   — page -> external URL
recentchanges   — recent edits with byte sizes
hit_counter     — page view counters

Views
-----
dpl_clview      — categorylinks plus a cl_to = '' row for every uncategorized page

Column names follow MediaWiki so queries read the same against either.
Timestamps are 14 digit strings (YYYYMMDDHHMMSS, UTC).
"""
# ----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    DDL, Boolean, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint, event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dpl.core.database import Base


# ----------------------------------------------------------------------------

def mw_timestamp(when: datetime | None = None) -> str:
    """Format *when* (default: now) as a MediaWiki 14 digit UTC timestamp."""
    when = when or datetime.now(tz=timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return when.strftime("%Y%m%d%H%M%S")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# namespaces
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Namespace(Base):
    """
    Wiki namespace — numeric id as stored in page.page_namespace plus the
    canonical name used as a title prefix ("" for the main namespace).
    """
    __tablename__ = "namespaces"

    ns_id:      Mapped[int]  = mapped_column(Integer, primary_key=True, autoincrement=False)
    name:       Mapped[str]  = mapped_column(String(128), unique=True, nullable=False, index=True)
    is_content: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# page
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Page(Base):
    __tablename__ = "page"
    __table_args__ = (
        UniqueConstraint("page_namespace", "page_title", name="uq_page_ns_title"),
    )

    page_id:          Mapped[int]  = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_namespace:   Mapped[int]  = mapped_column(Integer, nullable=False, default=0, index=True)
    page_title:       Mapped[str]  = mapped_column(String(255), nullable=False, index=True)
    page_is_redirect: Mapped[int]  = mapped_column(Integer, nullable=False, default=0)
    page_touched:     Mapped[str]  = mapped_column(String(14), nullable=False, default=mw_timestamp)
    page_latest:      Mapped[int]  = mapped_column(Integer, nullable=False, default=0)
    page_len:         Mapped[int]  = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    revisions:      Mapped[list["Revision"]]     = relationship(back_populates="page", cascade="all, delete-orphan")
    category_links: Mapped[list["CategoryLink"]] = relationship(back_populates="page", cascade="all, delete-orphan")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# revision  (append-only)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Revision(Base):
    __tablename__ = "revision"
    __table_args__ = (
        Index("ix_revision_page_timestamp", "rev_page", "rev_timestamp"),
    )

    rev_id:         Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rev_page:       Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), nullable=False, index=True)
    # 0 marks the page creation
    rev_parent_id:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rev_user:       Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rev_user_text:  Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    rev_comment:    Mapped[str] = mapped_column(Text, nullable=False, default="")
    rev_timestamp:  Mapped[str] = mapped_column(String(14), nullable=False, default=mw_timestamp)
    rev_minor_edit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rev_len:        Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    page: Mapped["Page"] = relationship(back_populates="revisions")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# link tables
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class CategoryLink(Base):
    __tablename__ = "categorylinks"
    __table_args__ = (
        Index("ix_categorylinks_to_sortkey", "cl_to", "cl_sortkey"),
    )

    cl_from:      Mapped[int]        = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), primary_key=True)
    cl_to:        Mapped[str]        = mapped_column(String(255), primary_key=True)
    cl_sortkey:   Mapped[str | None] = mapped_column(String(255), nullable=True)
    cl_timestamp: Mapped[str]        = mapped_column(String(14), nullable=False, default=mw_timestamp)

    page: Mapped["Page"] = relationship(back_populates="category_links")


class PageLink(Base):
    __tablename__ = "pagelinks"

    pl_from:      Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), primary_key=True)
    pl_namespace: Mapped[int] = mapped_column(Integer, primary_key=True)
    pl_title:     Mapped[str] = mapped_column(String(255), primary_key=True, index=True)


class TemplateLink(Base):
    __tablename__ = "templatelinks"

    tl_from:      Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), primary_key=True)
    tl_namespace: Mapped[int] = mapped_column(Integer, primary_key=True)
    tl_title:     Mapped[str] = mapped_column(String(255), primary_key=True, index=True)


class ImageLink(Base):
    __tablename__ = "imagelinks"

    il_from: Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), primary_key=True)
    il_to:   Mapped[str] = mapped_column(String(255), primary_key=True, index=True)


class ExternalLink(Base):
    __tablename__ = "externallinks"

    el_id:   Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    el_from: Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), nullable=False, index=True)
    el_to:   Mapped[str] = mapped_column(Text, nullable=False)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# activity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RecentChange(Base):
    __tablename__ = "recentchanges"

    rc_id:        Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rc_cur_id:    Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    rc_user_text: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    rc_timestamp: Mapped[str] = mapped_column(String(14), nullable=False, default=mw_timestamp)
    rc_old_len:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rc_new_len:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class HitCounter(Base):
    __tablename__ = "hit_counter"

    page_id:      Mapped[int] = mapped_column(Integer, ForeignKey("page.page_id", ondelete="CASCADE"), primary_key=True)
    page_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# dpl_clview
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

CATEGORY_VIEW = "dpl_clview"

CREATE_CATEGORY_VIEW_SQL = (
    f"CREATE VIEW {CATEGORY_VIEW} AS "
    "SELECT COALESCE(cl_from, page_id) AS cl_from, "
    "COALESCE(cl_to, '') AS cl_to, cl_sortkey "
    "FROM page LEFT OUTER JOIN categorylinks ON page.page_id = categorylinks.cl_from"
)

DROP_CATEGORY_VIEW_SQL = f"DROP VIEW IF EXISTS {CATEGORY_VIEW}"

# create_all runs on every startup; the view is rebuilt each time
event.listen(Base.metadata, "after_create", DDL(DROP_CATEGORY_VIEW_SQL))
event.listen(Base.metadata, "after_create", DDL(CREATE_CATEGORY_VIEW_SQL))
event.listen(Base.metadata, "before_drop", DDL(DROP_CATEGORY_VIEW_SQL))


# ----------------------------------------------------------------------------
