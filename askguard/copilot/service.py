"""
Ask service -- orchestrates tenant -> dates -> SQL -> guard -> scope -> execute -> summarize.

  1. Resolve the restaurant once (question text, caller value, configured default)
  2. Resolve the date range from the question
  3. Template synthesis; only when no intent matches, ask the LLM for SQL
  4. Validate with the SQL guard; a rejected LLM statement gets one retry
     through the template path, otherwise the request ends in a guard rejection
  5. Tenant-scope check; failure always ends the request (no retry)
  6. Execute read-only and summarize

Guard and scope outcomes are returned on the result, not raised.  Only
programming / configuration problems raise (``ValueError``,
``TenantResolutionError``, LLM provider errors).
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from askguard.copilot.date_range import resolve_date_range
from askguard.copilot.models import DateRange, Provenance, SqlStatement
from askguard.copilot.sql_generator import generate_sql
from askguard.copilot.summarizer import summarize
from askguard.copilot.templates import synthesize
from askguard.copilot.tenant import TenantResolution, resolve_tenant_id
from askguard.governance.allowlist import load_allowlist
from askguard.governance.sql_guard import ValidationVerdict, validate_sql
from askguard.governance.tenant_scope import tenant_scope_ok
from askguard.db.executor import execute_readonly
from askguard.core.config import get_settings
from askguard.core.logging import audit_event, get_logger

logger = get_logger(__name__)

GUARD_REJECTED = "Generated SQL rejected by guard."
EXECUTION_FAILED = "execution failed"


def _scope_error() -> str:
    column = load_allowlist().tenant_column
    return f"SQL must include a {column} filter for the resolved restaurant."


@dataclass
class AskResult:
    question: str
    tenant: TenantResolution
    date_range: DateRange | None = None
    statement: SqlStatement | None = None
    verdict: ValidationVerdict | None = None
    scope_ok: bool | None = None
    rows: list[dict[str, Any]] = field(default_factory=list)
    answer: str = ""
    executed: bool = False
    # failure kind: "guard" | "scope" | "execution"
    failure: str | None = None
    error: str | None = None
    reason: str | None = None
    sql_attempt: str | None = None
    detail: str | None = None
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        return self.failure is None

    @property
    def tenant_id(self) -> int:
        return self.tenant.tenant_id

    @property
    def sql(self) -> str:
        return self.statement.text if self.statement is not None else ""

    @property
    def provenance(self) -> Provenance | None:
        return self.statement.provenance if self.statement is not None else None


def _provider(mode: str | None) -> str:
    return (mode or get_settings().llm_provider).lower()


def _select_statement(
    question: str,
    tenant_id: int,
    date_range: DateRange | None,
    provider: str,
    now: datetime | None,
) -> tuple[SqlStatement, ValidationVerdict]:
    """Steps 3-4: pick a statement and validate it (with the single retry)."""
    stmt = synthesize(question, tenant_id, date_range, now=now)
    if stmt is None:
        stmt = generate_sql(question, tenant_id, date_range, provider=provider)

    verdict = validate_sql(stmt.text)
    if verdict.ok or stmt.provenance is not Provenance.EXTERNAL:
        return stmt, verdict

    logger.info("External SQL rejected (%s) -- retrying template path", verdict.reason)
    retry = synthesize(question, tenant_id, now=now)
    if retry is not None:
        retry_verdict = validate_sql(retry.text)
        if retry_verdict.ok:
            return retry, retry_verdict
    return stmt, verdict


def ask(
    question: str,
    tenant_id: object = None,
    mode: str | None = None,
    execute: bool = True,
    now: datetime | None = None,
) -> AskResult:
    """End-to-end: question -> scoped, validated SQL -> rows -> answer.

    Parameters
    ----------
    question : str
        Natural-language question (untrusted).
    tenant_id : int, optional
        Restaurant id supplied by the caller; a restaurant named in the
        question takes precedence.
    mode : str, optional
        LLM provider for generation and summary -- "mock", "openai" or
        "anthropic".  Defaults to ``LLM_PROVIDER``.
    execute : bool
        If False, stop after the scope check (dry-run).

    Raises
    ------
    ValueError
        If *question* is empty.
    TenantResolutionError
        If no restaurant id can be resolved.
    """
    if not isinstance(question, str) or not question.strip():
        raise ValueError("Question is required")

    t0 = time.perf_counter()
    provider = _provider(mode)
    tenant = resolve_tenant_id(question, tenant_id)
    logger.info("Ask | question=%s | restaurant=%d (%s) | mode=%s | execute=%s",
                question[:120], tenant.tenant_id, tenant.source, provider, execute)

    date_range = resolve_date_range(question, now)
    result = AskResult(question=question, tenant=tenant, date_range=date_range)

    stmt, verdict = _select_statement(question, tenant.tenant_id, date_range, provider, now)
    result.statement = stmt
    result.verdict = verdict

    if not verdict.ok:
        audit_event("guard_rejected", tenant_id=tenant.tenant_id,
                    provenance=stmt.provenance.value, reason=verdict.reason, sql=stmt.text)
        result.failure = "guard"
        result.error = GUARD_REJECTED
        result.reason = verdict.reason
        result.sql_attempt = stmt.text
        return _finish(result, t0)

    result.scope_ok = tenant_scope_ok(stmt.text, tenant.tenant_id)
    if not result.scope_ok:
        audit_event("tenant_scope_failed", tenant_id=tenant.tenant_id,
                    provenance=stmt.provenance.value, sql=stmt.text)
        result.failure = "scope"
        result.error = _scope_error()
        result.sql_attempt = stmt.text
        return _finish(result, t0)

    if not execute:
        return _finish(result, t0)

    try:
        result.rows = execute_readonly(stmt.text)
    except Exception as exc:
        logger.exception("SQL execution failed")
        result.failure = "execution"
        result.error = EXECUTION_FAILED
        result.detail = str(exc)
        result.sql_attempt = stmt.text
        return _finish(result, t0)

    result.executed = True
    result.answer = summarize(question, stmt.text, result.rows, tenant.tenant_id,
                              date_range, mode=provider)
    return _finish(result, t0)


def explain(
    question: str,
    tenant_id: object = None,
    mode: str | None = None,
    now: datetime | None = None,
) -> AskResult:
    """Dry run: the statement, guard verdict and scope verdict, never executed.

    Unlike ``ask`` the scope verdict is reported even for a statement the
    guard rejected, so both outcomes are visible.
    """
    if not isinstance(question, str) or not question.strip():
        raise ValueError("Question is required")

    t0 = time.perf_counter()
    tenant = resolve_tenant_id(question, tenant_id)
    date_range = resolve_date_range(question, now)
    stmt, verdict = _select_statement(question, tenant.tenant_id, date_range, _provider(mode), now)

    result = AskResult(question=question, tenant=tenant, date_range=date_range,
                       statement=stmt, verdict=verdict)
    result.scope_ok = tenant_scope_ok(stmt.text, tenant.tenant_id)
    if not verdict.ok:
        result.failure = "guard"
        result.error = GUARD_REJECTED
        result.reason = verdict.reason
        result.sql_attempt = stmt.text
    elif not result.scope_ok:
        result.failure = "scope"
        result.error = _scope_error()
        result.sql_attempt = stmt.text
    return _finish(result, t0)


def _finish(result: AskResult, t0: float) -> AskResult:
    result.latency_ms = int((time.perf_counter() - t0) * 1000)
    logger.info("Ask done | restaurant=%d | success=%s | rows=%d | %dms",
                result.tenant_id, result.success, len(result.rows), result.latency_ms)
    return result
