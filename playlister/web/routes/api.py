"""
REST API Routes for Playlister.

Read-only inspection endpoints:
- /api/schema: Tables and columns of the applied schema
- /api/migrations: Migration ledger status
- /api/records/{type}: Records of one type
- /api/records/{type}/{id}: One record
- /api/records/{type}/{id}/{association}: Resolved association
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

from playlister.core import NotFoundError, UnknownAssociationTarget
from playlister.core.associations import RecordType
from playlister.core.db.records import Record

if TYPE_CHECKING:
    from playlister.core.catalog_db import CatalogDb

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])

# Reference set during route registration
_catalog: CatalogDb | None = None


def register_api_routes(app, catalog: CatalogDb) -> None:
    """
    Register API routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        catalog: Open CatalogDb to inspect
    """
    global _catalog
    _catalog = catalog
    app.include_router(router)


def _require_catalog() -> CatalogDb:
    if _catalog is None or not _catalog.is_open:
        raise HTTPException(status_code=503, detail="Catalogue not initialized")
    return _catalog


def _lookup_type(catalog: CatalogDb, name: str) -> RecordType:
    """Accept a type name ("Song", "song") or its table name ("songs")."""
    wanted = name.lower()
    for record_type in catalog.registry:
        if record_type.name.lower() == wanted or record_type.table == wanted:
            return record_type
    raise HTTPException(status_code=404, detail=f"Unknown record type: {name}")


def _record_dict(record: Record) -> dict[str, Any]:
    return {"type": record.record_type.name, **record.to_dict()}


# =============================================================================
# Schema / Migrations
# =============================================================================


@router.get("/api/schema")
async def get_schema() -> dict[str, Any]:
    """Tables and columns built from the applied migrations."""
    catalog = _require_catalog()
    tables = [
        {
            "name": table.name,
            "columns": [{"name": c.name, "type": c.type} for c in table.columns],
        }
        for table in sorted(catalog.schema.tables.values(), key=lambda t: t.name)
    ]
    return {"version": await catalog.schema_version(), "tables": tables}


@router.get("/api/migrations")
async def get_migrations() -> dict[str, Any]:
    catalog = _require_catalog()
    states = await catalog.migration_status()
    return {
        "count": len(states),
        "pending": sum(1 for s in states if not s.applied),
        "migrations": [
            {
                "version": s.version,
                "name": s.name,
                "applied": s.applied,
                "applied_at": s.applied_at,
            }
            for s in states
        ],
    }


# =============================================================================
# Records
# =============================================================================


@router.get("/api/records/{type_name}")
async def list_records(type_name: str, offset: int = 0, limit: int = 100) -> dict[str, Any]:
    """List records of one type.

    Query params:
        offset: Starting position (default: 0)
        limit: Maximum items to return (default: 100)
    """
    catalog = _require_catalog()
    record_type = _lookup_type(catalog, type_name)
    try:
        total = await catalog.records.count(record_type)
        rows = await catalog.records.all(record_type, limit=limit, offset=offset)
    except NotFoundError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return {"count": total, "records": [_record_dict(r) for r in rows]}


async def _get_record(catalog: CatalogDb, record_type: RecordType, record_id: int) -> Record:
    try:
        record = await catalog.records.find(record_type, record_id)
    except NotFoundError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail=f"{record_type.name} not found")
    return record


@router.get("/api/records/{type_name}/{record_id}")
async def get_record(type_name: str, record_id: int) -> dict[str, Any]:
    catalog = _require_catalog()
    record = await _get_record(catalog, _lookup_type(catalog, type_name), record_id)
    return {
        **_record_dict(record),
        "associations": sorted(record.record_type.associations),
    }


@router.get("/api/records/{type_name}/{record_id}/{association}")
async def get_association(type_name: str, record_id: int, association: str) -> dict[str, Any]:
    """Resolve one association of a record."""
    catalog = _require_catalog()
    record = await _get_record(catalog, _lookup_type(catalog, type_name), record_id)

    try:
        related = await catalog.associations.resolve(record, association)
    except UnknownAssociationTarget as e:
        logger.warning("Association %s.%s unresolvable: %s", type_name, association, e)
        raise HTTPException(status_code=503, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(related, list):
        return {
            "association": association,
            "count": len(related),
            "records": [_record_dict(r) for r in related],
        }
    return {
        "association": association,
        "record": _record_dict(related) if related is not None else None,
    }
