"""
Answer summarizer -- turns result rows into a short business answer.

Works in both ``mock`` mode (deterministic, no API key needed) and LLM
mode (calls the configured provider).  Both apply the per-table completion
policy, restate the period in ISO dates, and say "No data found." when
there are no rows.
"""
from __future__ import annotations

import json
from typing import Any

from askguard.copilot.models import DateRange
from askguard.governance.completion import coerce_number, describe_rules, is_completed, is_failed
from askguard.governance.sql_guard import extract_tables
from askguard.core.logging import get_logger

logger = get_logger(__name__)

NO_DATA = "No data found."
_ROWS_CHAR_LIMIT = 30_000
_TIME_KEYS = ("check_time", "recorded_at", "created_time", "start_time", "end_time", "created_at")


def _period_phrase(date_range: DateRange | None) -> str:
    if date_range is None:
        return ""
    if date_range.days == 1:
        return f" on {date_range.describe()}"
    return f" for {date_range.describe()}"


def _humanise(column: str) -> str:
    return column.replace("_", " ").strip()


def _count_answer(column: str, value: float, tenant_id: int, period: str) -> str:
    n = int(value) if float(value).is_integer() else value
    what = _humanise(column)
    if n == 0:
        return f"No {what} for restaurant {tenant_id}{period}."
    return f"Yes, {n} {what} for restaurant {tenant_id}{period}."


def _latest_time(rows: list[dict[str, Any]]) -> str | None:
    for key in _TIME_KEYS:
        values = [str(r[key]) for r in rows if r.get(key) is not None]
        if values:
            return max(values)
    return None


def summarize_mock(
    question: str,
    sql: str,
    rows: list[dict[str, Any]],
    tenant_id: int,
    date_range: DateRange | None = None,
) -> str:
    """Deterministic summary (no LLM call)."""
    if not rows:
        return NO_DATA

    period = _period_phrase(date_range)

    if len(rows) == 1 and len(rows[0]) == 1:
        column, value = next(iter(rows[0].items()))
        num = coerce_number(value)
        if num is not None:
            return _count_answer(column, num, tenant_id, period)

    tables = extract_tables(sql)
    primary = tables[0] if tables else ""
    completed = failed = unknown = 0
    for row in rows:
        done = is_completed(primary, row)
        if done is None:
            unknown += 1
        elif done:
            completed += 1
        elif is_failed(primary, row):
            failed += 1

    source = ", ".join(dict.fromkeys(tables)) or "the query"
    parts = [f"Found {len(rows)} row{'s' if len(rows) != 1 else ''} from {source} "
             f"for restaurant {tenant_id}{period}."]
    if unknown < len(rows):
        tally = f"{completed} completed"
        if failed:
            tally += f", {failed} failed"
        pending = len(rows) - completed - failed - unknown
        if pending:
            tally += f", {pending} not completed"
        if unknown:
            tally += f", {unknown} with unknown status"
        parts.append(tally + ".")
    latest = _latest_time(rows)
    if latest:
        parts.append(f"Most recent: {latest}.")
    return " ".join(parts)


def _build_prompt(
    question: str,
    sql: str,
    rows: list[dict[str, Any]],
    tenant_id: int,
    date_range: DateRange | None,
) -> str:
    rows_json = json.dumps(rows, default=str)[:_ROWS_CHAR_LIMIT]
    period = ""
    if date_range is not None:
        period = f"Period: {date_range.describe()} (ISO dates, inclusive).\n"
    return (
        f"Question: {question}\n"
        f"Restaurant: {tenant_id}\n"
        f"SQL: {sql}\n"
        f"{period}"
        f"Rows: {rows_json}\n\n"
        "Write a concise, business-friendly answer.\n\n"
        "Completion rules:\n"
        f"{describe_rules()}\n\n"
        'If the SQL is a COUNT, answer naturally (e.g. "Yes, 12 ...").\n'
        "If rows include a time column (check_time, recorded_at, ...), include it.\n"
        'If there are no rows, say "No data found."\n'
        "If a period is given, restate it using ISO dates, e.g. "
        '"for 2025-09-01 to 2025-09-07".\n'
        "If counts are all zero, say no checks were logged for those tables in that "
        f"period for restaurant {tenant_id}."
    )


def summarize_llm(
    question: str,
    sql: str,
    rows: list[dict[str, Any]],
    tenant_id: int,
    date_range: DateRange | None = None,
    provider: str | None = None,
) -> str:
    """Summary from the configured LLM provider.

    Falls back to the mock summary if the LLM call fails.
    """
    from askguard.copilot.llm_client import call_llm

    if not rows:
        return NO_DATA

    prompt = _build_prompt(question, sql, rows, tenant_id, date_range)
    try:
        return call_llm(prompt, provider=provider)
    except Exception as exc:
        logger.warning("LLM summary failed, falling back to mock: %s", exc)
        return summarize_mock(question, sql, rows, tenant_id, date_range)


def summarize(
    question: str,
    sql: str,
    rows: list[dict[str, Any]],
    tenant_id: int,
    date_range: DateRange | None = None,
    mode: str = "mock",
) -> str:
    """Public API -- dispatches to mock or LLM-based summary.

    Parameters
    ----------
    mode : str
        ``"mock"`` for the deterministic summary, otherwise the LLM
        provider name (``openai`` / ``anthropic``).
    """
    if mode == "mock":
        return summarize_mock(question, sql, rows, tenant_id, date_range)
    return summarize_llm(question, sql, rows, tenant_id, date_range, provider=mode)
