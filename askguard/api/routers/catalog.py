"""
GET /catalog, GET /db/tables, GET /db/columns -- metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from askguard.copilot.templates import INTENT_NAMES
from askguard.db import introspection
from askguard.governance.allowlist import load_allowlist
from askguard.governance.completion import describe_rules
from askguard.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class TableItem(BaseModel):
    name: str
    columns: list[str]


class CatalogResponse(BaseModel):
    tables: list[TableItem]
    joins: list[str]
    tenant_column: str
    max_limit: int
    time_functions: list[str]
    completion_rules: list[str]
    intents: list[str]


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return the allow-list: what the guard accepts and how completion is judged."""
    model = load_allowlist()
    return CatalogResponse(
        tables=[
            TableItem(name=name, columns=sorted(cols))
            for name, cols in model.tables.items()
        ],
        joins=[str(j) for j in model.joins],
        tenant_column=model.tenant_column,
        max_limit=model.max_limit,
        time_functions=sorted(model.time_functions),
        completion_rules=describe_rules(model.completion_rules).splitlines(),
        intents=list(INTENT_NAMES),
    )


@router.get("/db/tables")
def db_tables():
    """Tables present in the database, flagged by allow-list membership."""
    try:
        tables = introspection.list_tables()
    except Exception as exc:
        logger.exception("Listing tables failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})
    model = load_allowlist()
    return {
        "ok": True,
        "tables": tables,
        "allowed": [t for t in tables if model.is_allowed_table(t)],
    }


@router.get("/db/columns")
def db_columns(table: str | None = None):
    """Column metadata for one allow-listed table."""
    if not table:
        return JSONResponse(status_code=400,
                            content={"ok": False, "message": "Add ?table=your_table_name"})
    try:
        columns = introspection.list_columns(table)
    except introspection.UnknownTableError as exc:
        return JSONResponse(status_code=400, content={"ok": False, "message": str(exc)})
    except Exception as exc:
        logger.exception("Listing columns failed for %s", table)
        return JSONResponse(status_code=500, content={"ok": False, "message": str(exc)})
    return {"ok": True, "table": table.lower(), "columns": columns}
