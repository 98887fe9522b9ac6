#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query router
============
POST   /api/v1/dpl                         — evaluate a query
GET    /api/v1/dpl/parameters              — list parameter definitions
GET    /api/v1/dpl/parameters/{name}       — get one parameter definition
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.core.config import Settings, get_settings
from dpl.core.database import get_db
from dpl.schemas import DplRequest, DplResponse, ParameterDefinitionResponse
from dpl.services import parameter_definitions as defs
from dpl.services.evaluation import evaluate


# -----------------------------------------------------------------------------

router = APIRouter(prefix="/dpl", tags=["dpl"])


# -----------------------------------------------------------------------------

def _definition(d: defs.ParameterDefinition) -> dict:
    return {
        "name":               d.name,
        "group":              d.group,
        "kind":               d.kind,
        "default":            d.default,
        "values":             list(d.values) if d.values else None,
        "permission":         d.permission,
        "set_criteria_found": d.set_criteria_found,
        "open_ref_conflict":  d.open_ref_conflict,
    }


# -----------------------------------------------------------------------------

@router.post("", response_model=DplResponse)
async def run_query(
    data: DplRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = await evaluate(
        db,
        data.text,
        title=data.title,
        protected=data.protected,
        arguments=data.arguments,
        permissions=data.permissions,
        settings=settings,
    )
    return {
        "ok":           not result.aborted,
        "records":      [r.as_dict() for r in result.records],
        "total_pages":  result.total_pages,
        "pages":        result.pages,
        "headings":     [h.as_dict() for h in result.headings],
        "diagnostics":  [d.as_dict() for d in result.diagnostics.reported()],
        "header":       result.header,
        "footer":       result.footer,
        "sql":          result.sql,
        "variables":    result.variables,
        "presentation": _jsonable(result.presentation),
    }


def _jsonable(values: dict) -> dict:
    """Structured store values (selectors, titles) are reported as text."""
    out = {}
    for key, value in values.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            out[key] = value
        elif isinstance(value, (list, tuple)):
            out[key] = [v if isinstance(v, (str, int, float, bool)) else str(v) for v in value]
        else:
            out[key] = str(value)
    return out


# -----------------------------------------------------------------------------

@router.get("/parameters", response_model=list[ParameterDefinitionResponse])
async def list_parameters(group: str | None = Query(None)):
    return [
        _definition(d) for d in defs.all_definitions()
        if group is None or d.group == group
    ]


# -----------------------------------------------------------------------------

@router.get("/parameters/{name}", response_model=ParameterDefinitionResponse)
async def get_parameter(name: str):
    definition = defs.get_definition(name.lower())
    if definition is None:
        raise HTTPException(status_code=404, detail=f"Parameter '{name}' not found")
    return _definition(definition)


# -----------------------------------------------------------------------------
