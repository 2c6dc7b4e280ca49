"""
External SQL generator -- asks the LLM for a statement when no template
intent matches.

The system prompt is rendered from the allow-list (tables, columns, joins,
row ceiling) and the completion rules, so the model is told exactly what
the guard will accept.  The reply is taken as-is apart from removing a
markdown code fence and appending ``LIMIT`` when none is present; in
particular nothing is done to make it pass the guard.
"""
from __future__ import annotations

import re

from askguard.copilot.llm_client import call_llm
from askguard.copilot.models import DateRange, Provenance, SqlStatement
from askguard.governance.allowlist import load_allowlist, AllowList
from askguard.governance.completion import describe_rules
from askguard.core.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def build_system_prompt(tenant_id: int, model: AllowList | None = None) -> str:
    """System prompt describing the allowed schema and the tenant filter."""
    if model is None:
        model = load_allowlist()

    tables = "\n".join(
        f"  - {name}({', '.join(sorted(cols))})" for name, cols in model.tables.items()
    )
    joins = "\n".join(f"  - {j}" for j in model.joins) or "  (none)"
    time_fns = ", ".join(sorted(model.time_functions))
    col = model.tenant_column

    return (
        "You are a MySQL assistant for a read-only analytics API.\n\n"
        "Only these tables and columns may be used:\n"
        f"{tables}\n\n"
        "The only permitted joins (JOIN ... ON a.x = b.y):\n"
        f"{joins}\n\n"
        "Rules:\n"
        "- Return exactly one SELECT statement and nothing else: no comments, no semicolon.\n"
        "- No subqueries, no comma joins, no CTEs.\n"
        "- SELECT-list items are plain columns, COUNT(*), an aggregate of a column, "
        f"or {time_fns}(column).\n"
        "- Time columns hold Unix epoch seconds; compare them with UNIX_TIMESTAMP('YYYY-MM-DD').\n"
        f"- Every query block must include WHERE {col} = {tenant_id} joined to the other "
        "conditions with AND (never OR).\n"
        f"- Always end with LIMIT {model.max_limit} or less.\n\n"
        "Completion status depends on the table:\n"
        f"{describe_rules(model.completion_rules)}\n"
    )


def _build_user_prompt(question: str, date_range: DateRange | None) -> str:
    prompt = f'Question: "{question}"\n'
    if date_range is not None:
        prompt += (
            f"Period: {date_range.start_iso} (inclusive) to {date_range.end_iso} (exclusive).\n"
        )
    return prompt + "Return a single SELECT with a LIMIT."


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence from an LLM reply."""
    text = text.strip()
    m = _FENCE_RE.match(text)
    return m.group(1).strip() if m else text


def generate_sql(
    question: str,
    tenant_id: int,
    date_range: DateRange | None = None,
    provider: str | None = None,
) -> SqlStatement:
    """Ask the LLM for SQL answering *question* for *tenant_id*.

    The result has ``external`` provenance and must still go through the
    guard and the tenant-scope check.
    """
    model = load_allowlist()
    reply = call_llm(
        _build_user_prompt(question, date_range),
        system=build_system_prompt(tenant_id, model),
        provider=provider,
    )
    stmt = SqlStatement(text=strip_fences(reply), provenance=Provenance.EXTERNAL)
    stmt = stmt.with_limit(model.max_limit)
    logger.info("External SQL:\n%s", stmt.text)
    return stmt
