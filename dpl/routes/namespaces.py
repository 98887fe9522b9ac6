#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Namespaces router
=================
GET    /api/v1/namespaces                  — list namespaces
GET    /api/v1/namespaces/{name}           — get namespace
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dpl.core.database import get_db
from dpl.schemas import NamespaceResponse
from dpl.services import namespaces as ns_svc


# -----------------------------------------------------------------------------

router = APIRouter(prefix="/namespaces", tags=["namespaces"])


# -----------------------------------------------------------------------------

@router.get("", response_model=list[NamespaceResponse])
async def list_namespaces(db: AsyncSession = Depends(get_db)):
    results = []
    for ns in await ns_svc.list_namespaces(db):
        count = await ns_svc.get_page_count(db, ns.ns_id)
        results.append({
            "ns_id":      ns.ns_id,
            "name":       ns.name,
            "is_content": ns.is_content,
            "page_count": count,
        })
    return results


# -----------------------------------------------------------------------------

@router.get("/{name}", response_model=NamespaceResponse)
async def get_namespace(name: str, db: AsyncSession = Depends(get_db)):
    ns = await ns_svc.get_namespace_by_name(db, name)
    count = await ns_svc.get_page_count(db, ns.ns_id)
    return {
        "ns_id":      ns.ns_id,
        "name":       ns.name,
        "is_content": ns.is_content,
        "page_count": count,
    }


# -----------------------------------------------------------------------------
