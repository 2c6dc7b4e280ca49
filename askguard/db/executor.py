"""
Read-only SQL executor.

Statements that passed the guard and the tenant-scope check run through
`execute_readonly`, which:
  1. Opens a READ ONLY transaction (MySQL-enforced)
  2. Caps execution time (MAX_EXECUTION_TIME, milliseconds)
  3. Converts Decimal/date/datetime/bytes to JSON-safe Python types

The SQL text is executed exactly as validated; nothing is rewritten here.
"""
from __future__ import annotations

import datetime
import decimal
from typing import Any

from sqlalchemy import text

from askguard.db.connection import readonly_connection
from askguard.core.config import get_settings
from askguard.core.logging import get_logger

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    if isinstance(val, (bytes, bytearray)):
        return val.decode("utf-8", errors="replace")
    return val


def execute_readonly(
    sql: str,
    timeout_ms: int | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only SELECT and return rows as serialisable dicts.

    Database errors propagate to the caller.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().db_query_timeout_ms
    logger.info("Executing SQL (%d chars)", len(sql))

    with readonly_connection() as conn:
        conn.execute(text(f"SET SESSION MAX_EXECUTION_TIME = {int(timeout_ms)}"))
        # passed to the driver verbatim: no bind-parameter or %-format processing
        result = conn.execution_options(no_parameters=True).exec_driver_sql(sql)
        columns = list(result.keys())
        rows = [
            {col: _serialise_value(val) for col, val in zip(columns, row)}
            for row in result.fetchall()
        ]

    logger.info("Returned %d rows", len(rows))
    return rows
