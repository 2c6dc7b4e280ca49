"""
Template synthesizer -- deterministic SQL for the questions people ask most.

A question is matched against an ordered list of intents (case-insensitive
substring keywords, first match wins).  Each intent has one fixed SQL shape
with two slots: the tenant id (an ``int``) and the date window (ISO dates
from the resolver, or the intent's default window).  Nothing from the
question text is ever interpolated.

No match → ``None``; the ask handler then falls through to the LLM.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from askguard.copilot.date_range import utc_today
from askguard.copilot.models import DateRange, Provenance, SqlStatement
from askguard.governance.allowlist import load_allowlist
from askguard.core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_LIMIT = 1000


# ── SQL fragments ────────────────────────────────────────

def _window(column: str, rng: DateRange) -> str:
    # MySQL reads the bare dates as midnight in the session time_zone (DB_TIME_ZONE)
    return (
        f"{column} >= UNIX_TIMESTAMP('{rng.start_iso}')\n"
        f"  AND {column} < UNIX_TIMESTAMP('{rng.end_iso}')"
    )


def _assemble(select: list[str], from_: str, where: list[str], order_by: str | None = None) -> str:
    lines = ["SELECT " + ",\n       ".join(select), f"FROM {from_}"]
    lines.append("WHERE " + "\n  AND ".join(where))
    if order_by:
        lines.append(f"ORDER BY {order_by}")
    return "\n".join(lines)


_DAILY_CHECK_DONE = "(d.is_completed = 1 OR d.status = 1)"


# ── Builders ─────────────────────────────────────────────
# Each returns the statement body without LIMIT.

def _named_checks(kind: str) -> Callable[[int, DateRange, bool], str]:
    def build(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
        return _assemble(
            select=[f"COUNT(*) AS completed_{kind}_checks"],
            from_="daily_check d\nJOIN template t ON d.qid = t.id",
            where=[
                f"d.restaurant_id = {tenant_id}",
                f"t.name LIKE '%{kind}%'",
                _DAILY_CHECK_DONE,
                _window("d.date", rng),
            ],
        )
    return build


def _outstanding_checks(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
    return _assemble(
        select=["d.id", "d.note", "d.status", "d.is_completed", "FROM_UNIXTIME(d.date) AS check_time"],
        from_="daily_check d",
        where=[
            f"d.restaurant_id = {tenant_id}",
            "COALESCE(d.is_completed, 0) <> 1",
            "COALESCE(d.status, 0) <> 1",
            _window("d.date", rng),
        ],
        order_by="d.id DESC",
    )


def _completed_check_count(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
    return _assemble(
        select=["COUNT(*) AS completed_checks"],
        from_="daily_check d",
        where=[f"d.restaurant_id = {tenant_id}", _DAILY_CHECK_DONE, _window("d.date", rng)],
    )


def _completed_checks(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
    return _assemble(
        select=["d.id", "d.note", "d.status", "d.is_completed", "FROM_UNIXTIME(d.date) AS check_time"],
        from_="daily_check d",
        where=[f"d.restaurant_id = {tenant_id}", _DAILY_CHECK_DONE, _window("d.date", rng)],
        order_by="d.id DESC",
    )


# Temperature-like sources: (table, alias, reading column, time column)
_PROBE_SOURCES: dict[str, tuple[str, str, str, str]] = {
    "core_temperature": ("core_temperature", "c", "c.temperature", "c.created_at"),
    "hot_holding": ("hot_holding", "h", "h.temperature", "h.created_at"),
    "temperature": ("temperature", "s", "s.temp_calc AS temperature", "s.date"),
}


def _probe_block(source: str, tenant_id: int, rng: DateRange, failed_only: bool) -> str:
    table, alias, reading, ts = _PROBE_SOURCES[source]
    where = [f"{alias}.restaurant_id = {tenant_id}"]
    if failed_only:
        where.append(f"{alias}.status = 0")
    where.append(_window(ts, rng))
    return _assemble(
        select=[f"{alias}.id", reading, f"{alias}.status", f"FROM_UNIXTIME({ts}) AS recorded_at"],
        from_=f"{table} {alias}",
        where=where,
    )


def _probe_readings(source: str) -> Callable[[int, DateRange, bool], str]:
    def build(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
        body = _probe_block(source, tenant_id, rng, failed_only)
        return f"{body}\nORDER BY recorded_at DESC"
    return build


def _temperature_rollup(tenant_id: int, rng: DateRange, failed_only: bool) -> str:
    blocks = [_probe_block(s, tenant_id, rng, failed_only) for s in _PROBE_SOURCES]
    return "\nUNION ALL\n".join(blocks) + "\nORDER BY recorded_at DESC"


# ── Intent table ─────────────────────────────────────────

@dataclass(frozen=True)
class Intent:
    name: str
    # every group must match; a group matches when any of its keywords occurs
    keywords: tuple[tuple[str, ...], ...]
    build: Callable[[int, DateRange, bool], str]
    default_days: int = 1
    failure_filter: bool = False


_INTENTS: tuple[Intent, ...] = (
    Intent("opening_checks", (("opening",),), _named_checks("opening")),
    Intent("closing_checks", (("closing",),), _named_checks("closing")),
    Intent(
        "outstanding_checks",
        (("outstanding", "pending", "incomplete", "not completed", "not done"),),
        _outstanding_checks,
    ),
    Intent(
        "weekly_completed_checks",
        (("completed", "done"), ("week",)),
        _completed_check_count,
        default_days=7,
    ),
    Intent("hot_holding_readings", (("hot hold", "hot-hold"),), _probe_readings("hot_holding"),
           failure_filter=True),
    Intent("core_temperature_readings", (("core temp",),), _probe_readings("core_temperature"),
           failure_filter=True),
    Intent("fridge_readings", (("fridge", "freezer"),), _probe_readings("temperature"),
           failure_filter=True),
    Intent("temperature_rollup", (("temperature",),), _temperature_rollup,
           failure_filter=True),
    Intent("completed_checks", (("completed", "done"),), _completed_checks),
)

INTENT_NAMES: tuple[str, ...] = tuple(i.name for i in _INTENTS)


def match_intent(question: str) -> Intent | None:
    """First intent whose keyword groups all occur in *question*."""
    q = question.lower()
    for intent in _INTENTS:
        if all(any(kw in q for kw in group) for group in intent.keywords):
            return intent
    return None


def _default_window(intent: Intent, now: datetime | None) -> DateRange:
    """Window ending tomorrow (UTC) covering ``default_days`` days."""
    today = utc_today(now)
    label = "today" if intent.default_days == 1 else f"last {intent.default_days} days"
    return DateRange(
        start=today - timedelta(days=intent.default_days - 1),
        end=today + timedelta(days=1),
        label=label,
    )


# ── Public API ───────────────────────────────────────────

def synthesize(
    question: str,
    tenant_id: int,
    date_range: DateRange | None = None,
    now: datetime | None = None,
) -> SqlStatement | None:
    """Build the template statement for *question*, or None when no intent matches.

    Raises
    ------
    ValueError
        If *tenant_id* is not a non-negative ``int``.
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id < 0:
        raise ValueError(f"tenant_id must be a non-negative int, got {tenant_id!r}")
    if not question or not isinstance(question, str):
        return None

    intent = match_intent(question)
    if intent is None:
        logger.info("No template intent for question=%s", question[:80])
        return None

    rng = date_range or _default_window(intent, now)
    failed_only = intent.failure_filter and "fail" in question.lower()
    limit = min(TEMPLATE_LIMIT, load_allowlist().max_limit)

    sql = f"{intent.build(tenant_id, rng, failed_only)}\nLIMIT {limit}"
    logger.info("Template[%s] SQL:\n%s", intent.name, sql)
    return SqlStatement(text=sql, provenance=Provenance.TEMPLATE, intent=intent.name)
