"""
Per-table completion policy.

Status columns mean different things in different tables (a cleaning task
is done at ``status = 2``, a temperature probe passes at ``status = 1``).
The rules live in the allow-list YAML under ``completion_rules``; this
module evaluates them against a single result row.

Verdicts are tri-state: ``True`` (completed), ``False`` (not completed),
``None`` (unknown).  Missing or non-numeric values are always unknown,
never ``False`` -- an absent status must not be reported as a failure.
"""
from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from askguard.governance.allowlist import load_allowlist, CompletionRule


def coerce_number(value: Any) -> float | None:
    """Numeric value of *value*, or None when it has none.

    Accepts ints, floats, Decimals, bools and numeric strings; ``None``,
    empty / whitespace strings, NaN and other text give ``None``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        if isinstance(value, (int, float, Decimal)):
            num = float(value)
        elif isinstance(value, (str, bytes)):
            text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
            text = text.strip()
            if not text:
                return None
            num = float(Decimal(text))
        else:
            return None
    except (InvalidOperation, ValueError, OverflowError):
        # sNaN, undecodable bytes, non-numeric text
        return None
    return None if math.isnan(num) or math.isinf(num) else num


def _match(when: Mapping[str, frozenset[int]], row: Mapping[str, Any]) -> bool | None:
    """True if any column holds an accepted value; None if none is numeric."""
    saw_value = False
    for column, accepted in when.items():
        num = coerce_number(row.get(column))
        if num is None:
            continue
        saw_value = True
        if num in accepted:
            return True
    return False if saw_value else None


def _rule_for(table: str, rules: Mapping[str, CompletionRule] | None) -> CompletionRule | None:
    if rules is None:
        rules = load_allowlist().completion_rules
    return rules.get(table.lower()) if table else None


def is_completed(
    table: str,
    row: Mapping[str, Any],
    rules: Mapping[str, CompletionRule] | None = None,
) -> bool | None:
    """Completion verdict for *row* of *table* (None = unknown / no policy)."""
    rule = _rule_for(table, rules)
    if rule is None or not rule.completed_when:
        return None
    return _match(rule.completed_when, row)


def is_failed(
    table: str,
    row: Mapping[str, Any],
    rules: Mapping[str, CompletionRule] | None = None,
) -> bool | None:
    """Failure verdict, only for tables whose rule defines ``failed_when``."""
    rule = _rule_for(table, rules)
    if rule is None or not rule.failed_when:
        return None
    return _match(rule.failed_when, row)


def describe_rules(rules: Mapping[str, CompletionRule] | None = None) -> str:
    """Render the completion rules as bullet points for LLM prompts."""
    if rules is None:
        rules = load_allowlist().completion_rules
    lines = []
    for table, rule in rules.items():
        completed = " OR ".join(
            f"{col} = {'/'.join(str(v) for v in sorted(vals))}"
            for col, vals in rule.completed_when.items()
        )
        line = f"- {table}: completed when {completed}"
        if rule.failed_when:
            failed = " OR ".join(
                f"{col} = {'/'.join(str(v) for v in sorted(vals))}"
                for col, vals in rule.failed_when.items()
            )
            line += f"; failed when {failed}"
        if rule.description:
            line += f" ({rule.description})"
        lines.append(line)
    return "\n".join(lines)
