"""
Loads, parses, and caches the guard allow-list YAML into immutable objects.

The allow-list is the single source of truth for:
  - allowed tables and the columns each may project
  - allowed join shapes (table.column = table.column)
  - forbidden keywords and the LIMIT ceiling
  - the tenant column every statement must predicate on
  - per-table completion rules

It is loaded once per process and shared read-only; nothing mutates it at
runtime.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from askguard.core.config import get_settings

_DEFAULT_PATH = Path(__file__).resolve().parents[2] / "guard_config" / "allowlist.yml"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class JoinShape:
    left_table: str
    left_column: str
    right_table: str
    right_column: str

    def matches(self, a_table: str, a_column: str, b_table: str, b_column: str) -> bool:
        """True when ``a = b`` is this join, written in either order."""
        forward = (a_table, a_column, b_table, b_column)
        backward = (b_table, b_column, a_table, a_column)
        me = (self.left_table, self.left_column, self.right_table, self.right_column)
        return forward == me or backward == me

    def __str__(self) -> str:
        return f"{self.left_table}.{self.left_column} = {self.right_table}.{self.right_column}"


@dataclass(frozen=True)
class CompletionRule:
    table: str
    description: str = ""
    completed_when: Mapping[str, frozenset[int]] = field(default_factory=dict)
    failed_when: Mapping[str, frozenset[int]] = field(default_factory=dict)


@dataclass(frozen=True)
class AllowList:
    """Fully parsed guard configuration."""

    version: int
    tenant_column: str
    max_limit: int
    tables: Mapping[str, frozenset[str]]
    joins: tuple[JoinShape, ...]
    forbidden_keywords: tuple[str, ...]
    time_functions: frozenset[str]
    completion_rules: Mapping[str, CompletionRule]

    # ── Convenience look-ups ─────────────────────────

    def is_allowed_table(self, name: str) -> bool:
        return name.lower() in self.tables

    def columns_for(self, table: str) -> frozenset[str]:
        return self.tables.get(table.lower(), frozenset())

    def find_join(self, a_table: str, a_column: str, b_table: str, b_column: str) -> JoinShape | None:
        for j in self.joins:
            if j.matches(a_table, a_column, b_table, b_column):
                return j
        return None

    def get_table_names(self) -> list[str]:
        return sorted(self.tables)


# ── Parsing ──────────────────────────────────────────────

def _split_ref(ref: str) -> tuple[str, str]:
    table, _, column = ref.strip().lower().partition(".")
    if not table or not column:
        raise ValueError(f"Join side must be 'table.column', got {ref!r}")
    return table, column


def _parse_join(raw: dict[str, Any]) -> JoinShape:
    lt, lc = _split_ref(raw["left"])
    rt, rc = _split_ref(raw["right"])
    return JoinShape(left_table=lt, left_column=lc, right_table=rt, right_column=rc)


def _parse_value_map(raw: dict[str, Any] | None) -> Mapping[str, frozenset[int]]:
    if not raw:
        return MappingProxyType({})
    return MappingProxyType({
        col.lower(): frozenset(int(v) for v in values)
        for col, values in raw.items()
    })


def _parse_rule(table: str, raw: dict[str, Any]) -> CompletionRule:
    return CompletionRule(
        table=table,
        description=raw.get("description", ""),
        completed_when=_parse_value_map(raw.get("completed_when")),
        failed_when=_parse_value_map(raw.get("failed_when")),
    )


def _parse_allowlist(raw_yaml: dict[str, Any]) -> AllowList:
    tables = {
        name.lower(): frozenset(c.lower() for c in cols)
        for name, cols in (raw_yaml.get("tables") or {}).items()
    }
    if not tables:
        raise ValueError("Allow-list defines no tables")

    tenant_column = raw_yaml.get("tenant_column")
    if not tenant_column:
        raise ValueError("Allow-list must name a tenant_column")

    rules = {
        name.lower(): _parse_rule(name.lower(), cfg or {})
        for name, cfg in (raw_yaml.get("completion_rules") or {}).items()
    }
    return AllowList(
        version=raw_yaml.get("version", 1),
        tenant_column=tenant_column.lower(),
        max_limit=int(raw_yaml.get("max_limit", 1000)),
        tables=MappingProxyType(tables),
        joins=tuple(_parse_join(j) for j in raw_yaml.get("joins") or []),
        forbidden_keywords=tuple(k.upper() for k in raw_yaml.get("forbidden_keywords") or []),
        time_functions=frozenset(f.upper() for f in raw_yaml.get("time_functions") or []),
        completion_rules=MappingProxyType(rules),
    )


def parse_allowlist(text: str) -> AllowList:
    """Parse allow-list YAML text (used by tests and alternate deployments)."""
    return _parse_allowlist(yaml.safe_load(text) or {})


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_allowlist() -> AllowList:
    """Load and cache the allow-list from YAML."""
    configured = get_settings().allowlist_path
    path = Path(configured) if configured else _DEFAULT_PATH
    with open(path) as f:
        raw = yaml.safe_load(f)
    return _parse_allowlist(raw or {})
