"""
Small tokenizer and clause splitter for the restricted SELECT subset.

This is not a SQL parser.  It turns text into a flat list of tokens over a
finite set of types and offers three structural helpers used by the guard
and the tenant-scope check:

  tokenize       -- text → tokens; anything outside the token set is an error
  split_union    -- tokens → query blocks separated by top-level UNION [ALL]
  split_clauses  -- one block → {SELECT, FROM, WHERE, GROUP, HAVING, ORDER, LIMIT}

Keywords are not a separate token type: a WORD token is compared
case-insensitively via ``Token.is_word``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator


class SqlSyntaxError(ValueError):
    """Raised when text falls outside the recognised token set or clause shape."""


class TokenType(Enum):
    WORD = auto()           # bare identifier or keyword
    QUOTED_IDENT = auto()   # `backticked` identifier (value holds the inner name)
    STRING = auto()         # 'single' or "double" quoted literal (value keeps quotes)
    NUMBER = auto()
    OPERATOR = auto()       # = <> != < > <= >= + - / %
    STAR = auto()
    COMMA = auto()
    DOT = auto()
    LPAREN = auto()
    RPAREN = auto()


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    pos: int

    @property
    def upper(self) -> str:
        return self.value.upper()

    def is_word(self, *names: str) -> bool:
        return self.type is TokenType.WORD and (not names or self.upper in names)

    @property
    def is_identifier(self) -> bool:
        return self.type in (TokenType.WORD, TokenType.QUOTED_IDENT)

    @property
    def name(self) -> str:
        """Lower-cased identifier name (backticks already removed)."""
        return self.value.lower()

    def __str__(self) -> str:
        if self.type is TokenType.QUOTED_IDENT:
            return f"`{self.value}`"
        return self.value


# Words that end a table reference or select item and so can never be an alias.
RESERVED = frozenset({
    "SELECT", "DISTINCT", "ALL", "FROM", "WHERE", "GROUP", "HAVING", "ORDER", "BY",
    "LIMIT", "OFFSET", "UNION", "JOIN", "INNER", "LEFT", "RIGHT", "OUTER", "CROSS",
    "NATURAL", "STRAIGHT_JOIN", "ON", "USING", "AS", "AND", "OR", "XOR", "NOT",
    "WINDOW", "FOR", "INTO", "LOCK", "PROCEDURE",
})

CLAUSE_ORDER = ("SELECT", "FROM", "WHERE", "GROUP", "HAVING", "ORDER", "LIMIT")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<quoted_ident>`[^`]*`)
  | (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
  | (?P<number>[0-9]+(?:\.[0-9]+)?)
  | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
  | (?P<operator><=|>=|<>|!=|=|<|>|\+|-|/|%)
  | (?P<star>\*)
  | (?P<comma>,)
  | (?P<dot>\.)
  | (?P<lparen>\()
  | (?P<rparen>\))
    """,
    re.VERBOSE,
)

_GROUP_TYPES = {
    "quoted_ident": TokenType.QUOTED_IDENT,
    "string": TokenType.STRING,
    "number": TokenType.NUMBER,
    "word": TokenType.WORD,
    "operator": TokenType.OPERATOR,
    "star": TokenType.STAR,
    "comma": TokenType.COMMA,
    "dot": TokenType.DOT,
    "lparen": TokenType.LPAREN,
    "rparen": TokenType.RPAREN,
}


def tokenize(sql: str) -> list[Token]:
    """Split *sql* into tokens.

    Raises
    ------
    SqlSyntaxError
        On any character outside the token set (``@``, ``|``, ``\\``, ``?``,
        ...), an unterminated quote, or unbalanced parentheses.
    """
    tokens: list[Token] = []
    pos = 0
    depth = 0
    while pos < len(sql):
        m = _TOKEN_RE.match(sql, pos)
        if m is None:
            raise SqlSyntaxError(f"unexpected character {sql[pos]!r} at offset {pos}")
        kind = m.lastgroup
        text = m.group()
        if kind != "ws":
            ttype = _GROUP_TYPES[kind]
            value = text[1:-1] if ttype is TokenType.QUOTED_IDENT else text
            if ttype is TokenType.QUOTED_IDENT and not value.strip():
                raise SqlSyntaxError(f"empty quoted identifier at offset {pos}")
            if ttype is TokenType.LPAREN:
                depth += 1
            elif ttype is TokenType.RPAREN:
                depth -= 1
                if depth < 0:
                    raise SqlSyntaxError(f"unbalanced ')' at offset {pos}")
            tokens.append(Token(ttype, value, pos))
        pos = m.end()
    if depth:
        raise SqlSyntaxError("unbalanced '('")
    return tokens


def iter_depth(tokens: list[Token]) -> Iterator[tuple[int, Token]]:
    """Yield ``(depth, token)``; a parenthesis reports the depth outside it."""
    depth = 0
    for tok in tokens:
        if tok.type is TokenType.RPAREN:
            depth -= 1
        yield depth, tok
        if tok.type is TokenType.LPAREN:
            depth += 1


def split_top_level(tokens: list[Token], ttype: TokenType) -> list[list[Token]]:
    """Split on depth-0 tokens of *ttype* (typically COMMA)."""
    parts: list[list[Token]] = [[]]
    for depth, tok in iter_depth(tokens):
        if depth == 0 and tok.type is ttype:
            parts.append([])
        else:
            parts[-1].append(tok)
    return parts


def matching_paren(tokens: list[Token], open_idx: int) -> int:
    """Index of the ``)`` closing the ``(`` at *open_idx*, or -1."""
    depth = 0
    for i in range(open_idx, len(tokens)):
        if tokens[i].type is TokenType.LPAREN:
            depth += 1
        elif tokens[i].type is TokenType.RPAREN:
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_union(tokens: list[Token]) -> list[list[Token]]:
    """Split a statement into query blocks on top-level ``UNION [ALL|DISTINCT]``."""
    blocks: list[list[Token]] = [[]]
    skip_modifier = False
    for depth, tok in iter_depth(tokens):
        if skip_modifier:
            skip_modifier = False
            if tok.is_word("ALL", "DISTINCT"):
                continue
        if depth == 0 and tok.is_word("UNION"):
            blocks.append([])
            skip_modifier = True
            continue
        blocks[-1].append(tok)
    if any(not b for b in blocks):
        raise SqlSyntaxError("malformed UNION")
    return blocks


def split_clauses(block: list[Token]) -> dict[str, list[Token]]:
    """Split one query block into its clauses (keyword tokens excluded).

    Clauses must appear at most once and in canonical order; ``GROUP`` and
    ``ORDER`` must be followed by ``BY``.
    """
    if not block or not block[0].is_word("SELECT"):
        raise SqlSyntaxError("query block must start with SELECT")

    clauses: dict[str, list[Token]] = {}
    current = ""
    last_rank = -1
    expect_by = False
    for depth, tok in iter_depth(block):
        if expect_by:
            if not tok.is_word("BY"):
                raise SqlSyntaxError(f"expected BY after {current}")
            expect_by = False
            continue
        if depth == 0 and tok.is_word(*CLAUSE_ORDER):
            name = tok.upper
            rank = CLAUSE_ORDER.index(name)
            if name in clauses or rank <= last_rank:
                raise SqlSyntaxError(f"unexpected {name} clause")
            clauses[name] = []
            current = name
            last_rank = rank
            expect_by = name in ("GROUP", "ORDER")
            continue
        clauses[current].append(tok)
    if expect_by:
        raise SqlSyntaxError(f"expected BY after {current}")
    return clauses
