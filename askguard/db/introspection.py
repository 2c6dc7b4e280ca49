"""
Database catalogue lookups for the metadata endpoints.

Results are served through the schema-metadata cache, so repeated calls
within the TTL do not touch the database.  Column listings are limited to
allow-listed tables.
"""
from __future__ import annotations

import re
from typing import Any

from sqlalchemy import inspect

from askguard.copilot.cache import get_schema_cache
from askguard.db.connection import get_engine
from askguard.governance.allowlist import load_allowlist
from askguard.core.logging import get_logger

logger = get_logger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z0-9_]+$")


class UnknownTableError(ValueError):
    """Table name is malformed or not allow-listed."""


def _load_tables() -> list[str]:
    names = sorted(inspect(get_engine()).get_table_names())
    logger.info("Loaded %d table names from the database", len(names))
    return names


def _load_columns(table: str) -> list[dict[str, Any]]:
    columns = inspect(get_engine()).get_columns(table)
    return [
        {
            "name": col["name"],
            "type": str(col["type"]),
            "nullable": bool(col.get("nullable", True)),
        }
        for col in columns
    ]


def list_tables() -> list[str]:
    """All table names in the configured database."""
    return get_schema_cache().get_or_load("tables", _load_tables)


def list_columns(table: str) -> list[dict[str, Any]]:
    """Column metadata for an allow-listed *table*.

    Raises
    ------
    UnknownTableError
        If *table* is not a plain identifier or is not allow-listed.
    """
    if not table or not _IDENT_RE.match(table):
        raise UnknownTableError(f"Invalid table name: {table!r}")
    name = table.lower()
    if not load_allowlist().is_allowed_table(name):
        raise UnknownTableError(f"Table not allowed: {name}")
    return get_schema_cache().get_or_load(f"columns:{name}", lambda: _load_columns(name))
