"""
Tenant-scope enforcement -- the last check before a statement is executed.

Independent of the SQL guard (it shares only the tokenizer): a statement
can be perfectly well-formed and still read another restaurant's rows.
A statement is scoped to tenant *N* when, in every query block:

  * a WHERE clause exists and has no top-level OR / XOR;
  * one of its top-level AND-conjuncts is exactly
    ``[q.]restaurant_id = N`` or ``[q.]restaurant_id IN (N[, N ...])``,
    where ``q`` (if present) names the block's FROM table or its alias;

and, anywhere in the statement, every comparison on the tenant column uses
only ``=`` / ``IN`` against the literal *N*.
"""
from __future__ import annotations

import re

from askguard.governance.allowlist import load_allowlist, AllowList
from askguard.governance.sql_lexer import (
    RESERVED,
    SqlSyntaxError,
    Token,
    TokenType,
    iter_depth,
    split_clauses,
    split_union,
    tokenize,
)
from askguard.core.logging import get_logger

logger = get_logger(__name__)

# Words that may follow a column to form a predicate other than = / IN.
_PREDICATE_WORDS = frozenset({
    "NOT", "LIKE", "BETWEEN", "IS", "REGEXP", "RLIKE", "SOUNDS", "MEMBER",
})

_DIGITS_RE = re.compile(r"[0-9]+")


def _literal_is(tok: Token, tenant_id: int) -> bool:
    if tok.type is TokenType.NUMBER:
        text = tok.value
    elif tok.type is TokenType.STRING:
        text = tok.value[1:-1]
    else:
        return False
    # ASCII digits only; compared as text so huge literals never reach int()
    if not _DIGITS_RE.fullmatch(text):
        return False
    return (text.lstrip("0") or "0") == str(tenant_id)


def _in_list_ok(tokens: list[Token], start: int, tenant_id: int) -> tuple[bool, int]:
    """Check ``( lit [, lit]* )`` at *start*; return (ok, index after ')')."""
    if start >= len(tokens) or tokens[start].type is not TokenType.LPAREN:
        return False, start
    i = start + 1
    expect_literal = True
    while i < len(tokens):
        tok = tokens[i]
        if expect_literal:
            if not _literal_is(tok, tenant_id):
                return False, i
        elif tok.type is TokenType.RPAREN:
            return True, i + 1
        elif tok.type is not TokenType.COMMA:
            return False, i
        expect_literal = not expect_literal
        i += 1
    return False, i


def _column_at(tokens: list[Token], i: int, column: str) -> bool:
    tok = tokens[i]
    return tok.is_identifier and tok.name == column and not (
        i + 1 < len(tokens) and tokens[i + 1].type in (TokenType.DOT, TokenType.LPAREN)
    )


def _every_use_pinned(tokens: list[Token], column: str, tenant_id: int) -> bool:
    """Every comparison touching the tenant column targets *tenant_id* only."""
    for i in range(len(tokens)):
        if not _column_at(tokens, i, column):
            continue
        prev = tokens[i - 1] if i else None
        if prev is not None and prev.type is TokenType.DOT:
            prev = tokens[i - 3] if i >= 3 else None
        if prev is not None and (
            prev.type is TokenType.OPERATOR or prev.is_word(*_PREDICATE_WORDS, "IN")
        ):
            return False  # tenant column on the right-hand side

        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if nxt is None:
            continue
        if nxt.type is TokenType.OPERATOR:
            if nxt.value != "=" or i + 2 >= len(tokens) or not _literal_is(tokens[i + 2], tenant_id):
                return False
        elif nxt.is_word("IN"):
            ok, _ = _in_list_ok(tokens, i + 2, tenant_id)
            if not ok:
                return False
        elif nxt.is_word(*_PREDICATE_WORDS):
            return False
    return True


def _from_names(from_clause: list[Token]) -> set[str]:
    """Name and alias of the block's first (FROM) table."""
    if not from_clause or not from_clause[0].is_identifier:
        return set()
    names = {from_clause[0].name}
    rest = from_clause[1:]
    if rest and rest[0].is_word("AS"):
        rest = rest[1:]
    if rest and rest[0].is_identifier and not (
        rest[0].type is TokenType.WORD and rest[0].upper in RESERVED
    ):
        names.add(rest[0].name)
    return names


def _conjuncts(where: list[Token]) -> list[list[Token]] | None:
    """Split WHERE on top-level AND; None when a top-level OR/XOR is present."""
    parts: list[list[Token]] = [[]]
    pending_between = False
    for depth, tok in iter_depth(where):
        if depth == 0:
            if tok.is_word("OR", "XOR"):
                return None
            if tok.is_word("BETWEEN"):
                pending_between = True
            elif tok.is_word("AND"):
                if pending_between:
                    pending_between = False
                else:
                    parts.append([])
                    continue
        parts[-1].append(tok)
    return parts


def _is_scope_predicate(conj: list[Token], column: str, owners: set[str], tenant_id: int) -> bool:
    i = 0
    if len(conj) >= 3 and conj[1].type is TokenType.DOT:
        if not conj[0].is_identifier or conj[0].name not in owners:
            return False
        i = 2
    if i >= len(conj) or not _column_at(conj, i, column):
        return False
    rest = conj[i + 1:]
    if len(rest) == 2 and rest[0].type is TokenType.OPERATOR and rest[0].value == "=":
        return _literal_is(rest[1], tenant_id)
    if rest and rest[0].is_word("IN"):
        ok, end = _in_list_ok(rest, 1, tenant_id)
        return ok and end == len(rest)
    return False


def tenant_scope_ok(sql: object, tenant_id: object, allowlist: AllowList | None = None) -> bool:
    """True when *sql* is pinned to *tenant_id* in every query block.

    Never raises for malformed input.
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int):
        return False
    if not isinstance(sql, str) or not sql.strip():
        return False
    if allowlist is None:
        allowlist = load_allowlist()
    column = allowlist.tenant_column

    try:
        tokens = tokenize(sql)
        blocks = [split_clauses(b) for b in split_union(tokens)]
    except SqlSyntaxError as exc:
        logger.warning("Tenant scope check could not tokenize SQL: %s", exc)
        return False

    if not _every_use_pinned(tokens, column, tenant_id):
        logger.warning("Tenant column %s compared against something other than %d", column, tenant_id)
        return False

    for clauses in blocks:
        where = clauses.get("WHERE")
        if not where:
            logger.warning("Query block without WHERE clause -- not tenant scoped")
            return False
        conjuncts = _conjuncts(where)
        if conjuncts is None:
            logger.warning("Top-level OR in WHERE clause -- tenant predicate not binding")
            return False
        owners = _from_names(clauses.get("FROM", []))
        if not any(_is_scope_predicate(c, column, owners, tenant_id) for c in conjuncts):
            logger.warning("No %s predicate for tenant %d in query block", column, tenant_id)
            return False
    return True
