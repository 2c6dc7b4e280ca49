"""
Deterministic SQL guard (non-LLM).

This is the security boundary for every statement, whether it came from a
template or from the language model.  It works purely on the SQL text and
the allow-list and fails closed: anything it cannot positively recognise
is rejected.

Checks performed (first failure wins):
  1. Non-empty, starts with SELECT, single statement: no ';', no comment
     introducers ('--', '/*', '*/', '#'), no backslash escapes
  2. No forbidden keyword as a whole word anywhere, quoted text included
  3. Tokenizes cleanly; no subqueries; UNION blocks each start with SELECT
  4. Every FROM / JOIN table is allow-listed (no qualified names, derived
     tables or comma joins); at least one table is present
  5. Every SELECT-list item resolves to an allowed column of a table in
     its block (COUNT(*) and time-conversion calls special-cased)
  6. Every JOIN ... ON a.x = b.y matches an allowed join shape
  7. A trailing numeric LIMIT is present and within the ceiling
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from askguard.governance.allowlist import load_allowlist, AllowList
from askguard.governance.sql_lexer import (
    RESERVED,
    SqlSyntaxError,
    Token,
    TokenType,
    matching_paren,
    split_clauses,
    split_top_level,
    split_union,
    tokenize,
)
from askguard.core.logging import get_logger

logger = get_logger(__name__)

_TERMINATORS = (";", "--", "/*", "*/", "#", "\\")

_WS_RE = re.compile(r"\s+")
# ASCII digits, short enough to convert
_ROW_COUNT_RE = re.compile(r"[0-9]{1,18}")


class ValidationVerdict(BaseModel):
    """The guard's sole output.  ``reason`` is diagnostic only."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    reason: str | None = None

    @classmethod
    def accept(cls) -> "ValidationVerdict":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: str) -> "ValidationVerdict":
        return cls(ok=False, reason=reason)


class _Rejected(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# ── Block structure ──────────────────────────────────────

@dataclass
class _Join:
    table: str
    on: list[Token]


@dataclass
class _Block:
    select: list[Token]
    tables: list[str] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)
    joins: list[_Join] = field(default_factory=list)
    limit: list[Token] | None = None


def _read_table_ref(tokens: list[Token], i: int, block: _Block) -> int:
    """Consume ``table [[AS] alias]`` at *i*; return the next index."""
    if i >= len(tokens):
        raise _Rejected("missing table name")
    tok = tokens[i]
    if tok.type is TokenType.LPAREN:
        raise _Rejected("derived tables not allowed")
    if not tok.is_identifier or (tok.type is TokenType.WORD and tok.upper in RESERVED):
        raise _Rejected(f"expected table name near '{tok}'")
    table = tok.name
    i += 1
    if i < len(tokens) and tokens[i].type is TokenType.DOT:
        qualified = "".join(str(t) for t in tokens[i - 1:i + 2])
        raise _Rejected(f"table not allowed: {qualified.lower()}")

    alias = None
    if i < len(tokens) and tokens[i].is_word("AS"):
        i += 1
        if i >= len(tokens) or not tokens[i].is_identifier:
            raise _Rejected(f"expected alias after AS for {table}")
        alias = tokens[i].name
        i += 1
    elif (
        i < len(tokens)
        and tokens[i].is_identifier
        and not (tokens[i].type is TokenType.WORD and tokens[i].upper in RESERVED)
    ):
        alias = tokens[i].name
        i += 1

    block.tables.append(table)
    for name in {table, alias or table}:
        known = block.aliases.get(name)
        if known is not None and known != table:
            raise _Rejected(f"ambiguous alias: {name}")
        block.aliases[name] = table
    return i


def _parse_from(tokens: list[Token], block: _Block) -> None:
    i = _read_table_ref(tokens, 0, block)
    while i < len(tokens):
        tok = tokens[i]
        if tok.type is TokenType.COMMA:
            raise _Rejected("comma joins not allowed")
        if tok.is_word("INNER"):
            i += 1
        elif tok.is_word("LEFT", "RIGHT"):
            i += 1
            if i < len(tokens) and tokens[i].is_word("OUTER"):
                i += 1
        if i >= len(tokens) or not tokens[i].is_word("JOIN"):
            near = tokens[i] if i < len(tokens) else tok
            raise _Rejected(f"unsupported FROM clause near '{near}'")
        i = _read_table_ref(tokens, i + 1, block)
        if i >= len(tokens) or not tokens[i].is_word("ON"):
            raise _Rejected(f"join without ON condition: {block.tables[-1]}")
        i += 1
        start = i
        while i < len(tokens) and not tokens[i].is_word("JOIN", "INNER", "LEFT", "RIGHT"):
            if tokens[i].type is TokenType.COMMA:
                raise _Rejected("comma joins not allowed")
            i += 1
        block.joins.append(_Join(table=block.tables[-1], on=tokens[start:i]))


def _parse_blocks(sql: str) -> list[_Block]:
    try:
        tokens = tokenize(sql)
        raw_blocks = split_union(tokens)
    except SqlSyntaxError as exc:
        raise _Rejected(f"unparseable SQL: {exc}") from exc

    blocks: list[_Block] = []
    for raw in raw_blocks:
        if not raw[0].is_word("SELECT"):
            raise _Rejected("not SELECT")
        if any(t.is_word("SELECT") for t in raw[1:]):
            raise _Rejected("subqueries not allowed")
        try:
            clauses = split_clauses(raw)
        except SqlSyntaxError as exc:
            raise _Rejected(f"unparseable SQL: {exc}") from exc

        block = _Block(select=clauses["SELECT"], limit=clauses.get("LIMIT"))
        if clauses.get("FROM"):
            _parse_from(clauses["FROM"], block)
        blocks.append(block)
    return blocks


# ── Individual checks ────────────────────────────────────

def _check_shape(sql: str) -> str:
    """Check 1.  Returns the whitespace-normalised text."""
    q = _WS_RE.sub(" ", sql).strip()
    if not q:
        raise _Rejected("empty")
    if not q.upper().startswith("SELECT "):
        raise _Rejected("not SELECT")
    if any(t in q for t in _TERMINATORS):
        raise _Rejected("contains terminators/comments")
    return q


def _check_keywords(q: str, allowlist: AllowList) -> None:
    """Check 2.  Scans raw text, so quoted aliases and strings are included."""
    for kw in allowlist.forbidden_keywords:
        if re.search(rf"\b{re.escape(kw)}\b", q, re.IGNORECASE):
            raise _Rejected(f"disallowed keyword: {kw}")


def _check_tables(blocks: list[_Block], allowlist: AllowList) -> None:
    seen: list[str] = []
    for block in blocks:
        if not block.tables:
            raise _Rejected("no tables")
        seen.extend(block.tables)
    unknown = [t for t in seen if not allowlist.is_allowed_table(t)]
    if unknown:
        raise _Rejected(f"table not allowed: {', '.join(unknown)}")


def _strip_alias(item: list[Token]) -> list[Token]:
    if len(item) >= 3 and item[-2].is_word("AS"):
        if item[-1].is_identifier or item[-1].type is TokenType.STRING:
            return item[:-2]
        raise _Rejected(f"bad alias '{item[-1]}'")
    if len(item) >= 2 and item[-1].is_identifier and not (
        item[-1].type is TokenType.WORD and item[-1].upper in RESERVED
    ):
        if item[-2].type in (TokenType.RPAREN, TokenType.WORD, TokenType.QUOTED_IDENT):
            return item[:-1]
    return item


def _column_allowed(ref: list[Token], block: _Block, allowlist: AllowList) -> bool:
    if len(ref) == 1 and ref[0].is_identifier:
        column = ref[0].name
        return any(column in allowlist.columns_for(t) for t in block.tables)
    if (
        len(ref) == 3
        and ref[0].is_identifier
        and ref[1].type is TokenType.DOT
        and ref[2].is_identifier
    ):
        table = block.aliases.get(ref[0].name)
        return table is not None and ref[2].name in allowlist.columns_for(table)
    return False


def _time_call_allowed(inner: list[Token], block: _Block, allowlist: AllowList) -> bool:
    i = 0
    while i < len(inner):
        tok = inner[i]
        if tok.is_identifier:
            if i + 1 < len(inner) and inner[i + 1].type is TokenType.LPAREN:
                return False  # nested function call
            if i + 2 < len(inner) and inner[i + 1].type is TokenType.DOT:
                if not _column_allowed(inner[i:i + 3], block, allowlist):
                    return False
                i += 3
                continue
            if not _column_allowed([tok], block, allowlist):
                return False
        elif tok.type in (TokenType.LPAREN, TokenType.RPAREN, TokenType.DOT):
            return False
        i += 1
    return True


def _select_item_allowed(item: list[Token], block: _Block, allowlist: AllowList) -> bool:
    expr = _strip_alias(item)
    if not expr:
        return False

    is_call = (
        len(expr) >= 3
        and expr[0].type is TokenType.WORD
        and expr[1].type is TokenType.LPAREN
        and matching_paren(expr, 1) == len(expr) - 1
    )
    if not is_call:
        return _column_allowed(expr, block, allowlist)

    func = expr[0].upper
    inner = expr[2:-1]
    if func == "COUNT" and len(inner) == 1 and inner[0].type is TokenType.STAR:
        return True
    if func in allowlist.time_functions:
        return bool(inner) and _time_call_allowed(inner, block, allowlist)
    if inner and inner[0].is_word("DISTINCT"):
        inner = inner[1:]
    return _column_allowed(inner, block, allowlist)


def _check_projection(blocks: list[_Block], allowlist: AllowList) -> None:
    for block in blocks:
        select = block.select
        if select and select[0].is_word("DISTINCT", "ALL"):
            select = select[1:]
        if len(select) == 1 and select[0].type is TokenType.STAR:
            continue
        items = split_top_level(select, TokenType.COMMA)
        bad = [
            " ".join(str(t) for t in item) or "<empty>"
            for item in items
            if not _select_item_allowed(item, block, allowlist)
        ]
        if bad:
            raise _Rejected(f"unknown select col(s): {', '.join(bad)}")


def _check_joins(blocks: list[_Block], allowlist: AllowList) -> None:
    for block in blocks:
        for join in block.joins:
            on = join.on
            shaped = (
                len(on) == 7
                and on[0].is_identifier and on[1].type is TokenType.DOT and on[2].is_identifier
                and on[3].type is TokenType.OPERATOR and on[3].value == "="
                and on[4].is_identifier and on[5].type is TokenType.DOT and on[6].is_identifier
            )
            if not shaped:
                text = " ".join(str(t) for t in on)
                raise _Rejected(f"join condition must be table.col = table.col: {text}")
            left_table = block.aliases.get(on[0].name)
            right_table = block.aliases.get(on[4].name)
            if left_table is None or right_table is None:
                raise _Rejected(f"unknown join qualifier in {on[0]}.{on[2]} = {on[4]}.{on[6]}")
            if allowlist.find_join(left_table, on[2].name, right_table, on[6].name) is None:
                raise _Rejected(
                    f"join not allowed: {left_table}.{on[2].name}={right_table}.{on[6].name}"
                )


def _limit_rows(limit: list[Token]) -> int:
    ints = [t for t in limit if t.type is TokenType.NUMBER and _ROW_COUNT_RE.fullmatch(t.value)]
    if len(limit) == 1 and len(ints) == 1:
        return int(limit[0].value)
    if len(limit) == 3 and len(ints) == 2:
        if limit[1].type is TokenType.COMMA:
            return int(limit[2].value)
        if limit[1].is_word("OFFSET"):
            return int(limit[0].value)
    raise _Rejected("non-numeric LIMIT")


def _check_limit(blocks: list[_Block], allowlist: AllowList) -> None:
    if blocks[-1].limit is None:
        raise _Rejected("missing LIMIT")
    for block in blocks:
        if block.limit is None:
            continue
        rows = _limit_rows(block.limit)
        if rows > allowlist.max_limit:
            raise _Rejected(f"LIMIT exceeds bound ({rows} > {allowlist.max_limit})")


# ── Public API ───────────────────────────────────────────

def validate_sql(sql: object, allowlist: AllowList | None = None) -> ValidationVerdict:
    """Validate *sql* against the allow-list.

    Never raises for malformed input; every failure is ``ok=False`` with a
    reason naming the failing check.
    """
    if not isinstance(sql, str):
        return ValidationVerdict.reject("empty")
    if allowlist is None:
        allowlist = load_allowlist()

    try:
        q = _check_shape(sql)
        _check_keywords(q, allowlist)
        blocks = _parse_blocks(q)
        _check_tables(blocks, allowlist)
        _check_projection(blocks, allowlist)
        _check_joins(blocks, allowlist)
        _check_limit(blocks, allowlist)
    except _Rejected as rej:
        logger.warning("SQL guard rejected (%s): %s", rej.reason, sql[:200])
        return ValidationVerdict.reject(rej.reason)

    return ValidationVerdict.accept()


def is_safe_sql(sql: object, allowlist: AllowList | None = None) -> bool:
    return validate_sql(sql, allowlist).ok


def extract_tables(sql: str) -> list[str]:
    """Tables named after FROM / JOIN, in order; empty when unparseable."""
    try:
        return [t for block in _parse_blocks(_WS_RE.sub(" ", sql).strip()) for t in block.tables]
    except _Rejected:
        return []
