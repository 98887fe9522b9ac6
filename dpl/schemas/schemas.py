#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Pydantic v2 schemas for request validation and response serialisation.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from dpl.services.input_parser import URL_ARGUMENTS


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Queries
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class DplRequest(BaseModel):
    text: str = Field(..., max_length=20000)
    title: Optional[str] = Field(None, max_length=255)
    protected: bool = False
    arguments: dict[str, str] = Field(default_factory=dict)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("arguments")
    @classmethod
    def known_arguments(cls, v: dict[str, str]) -> dict[str, str]:
        unknown = sorted(set(v) - set(URL_ARGUMENTS) - {"DPL_scrollDir"})
        if unknown:
            raise ValueError(f"Unknown arguments: {', '.join(unknown)}")
        return v


# -----------------------------------------------------------------------------

class DiagnosticResponse(BaseModel):
    code: int
    name: str
    severity: int
    message: str


# -----------------------------------------------------------------------------

class RecordResponse(BaseModel):
    namespace: int
    title: str
    prefixed_title: str
    page_id: int = 0
    link: str = ""
    title_text: str = ""
    start_char: str = ""

    external_link: Optional[str] = None
    counter: int = 0
    size: Optional[int] = None
    sel_title: Optional[str] = None
    sel_namespace: Optional[int] = None
    image_sel_title: Optional[str] = None

    revision: Optional[int] = None
    user: Optional[str] = None
    user_link: Optional[str] = None
    comment: Optional[str] = None
    date: Optional[str] = None
    user_date: Optional[str] = None

    contribution: int = 0
    contrib: str = ""
    contributor: Optional[str] = None

    category_links: list[str] = Field(default_factory=list)
    category_texts: list[str] = Field(default_factory=list)

    heading_key: Optional[str] = None
    heading_link: Optional[str] = None
    heading_count: int = 0


# -----------------------------------------------------------------------------

class HeadingResponse(BaseModel):
    key: str
    link: str
    count: int


# -----------------------------------------------------------------------------

class DplResponse(BaseModel):
    ok: bool
    records: list[RecordResponse] = Field(default_factory=list)
    total_pages: int = 0
    pages: int = 0
    headings: list[HeadingResponse] = Field(default_factory=list)
    diagnostics: list[DiagnosticResponse] = Field(default_factory=list)
    header: str = ""
    footer: str = ""
    sql: Optional[str] = None
    variables: dict[str, str] = Field(default_factory=dict)
    presentation: dict[str, Any] = Field(default_factory=dict)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Parameters
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ParameterDefinitionResponse(BaseModel):
    name: str
    group: str
    kind: str
    default: Any = None
    values: Optional[list[str]] = None
    permission: Optional[str] = None
    set_criteria_found: bool = False
    open_ref_conflict: bool = False


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Namespaces
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class NamespaceResponse(BaseModel):
    ns_id: int
    name: str
    is_content: bool
    page_count: int = 0

    model_config = {"from_attributes": True}


# -----------------------------------------------------------------------------
