"""
OpsGuard SQL Structure

A deliberately small tokenizer, parser and formatter for the statements
the authorization gate has to reason about. It does not try to validate
SQL; it only recovers the structure the gate needs:

- the leading statement keyword and its operation class (READ / WRITE)
- every table reference with its alias
- whether the statement nests queries (subqueries, CTEs, set operations)
- the top-level filter clause, or the point where one would go
- for INSERT, the column list and the closing offset of every VALUES row

Rewrites are assembled from these offsets, so literals and identifiers are
copied through byte-for-byte and a predicate is always conjoined with the
whole existing filter rather than spliced into the middle of it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from opsguard.core.models import QueryOperation


class SqlSyntaxError(ValueError):
    """Raised when the text cannot be tokenized (e.g. unterminated literal)."""

    def __init__(self, construct: str, position: int):
        super().__init__(f"{construct} at offset {position}")
        self.construct = construct
        self.position = position


class TokenType(str, Enum):
    WORD = "WORD"
    QUOTED_IDENT = "QUOTED_IDENT"
    STRING = "STRING"
    NUMBER = "NUMBER"
    PARAM = "PARAM"
    PUNCT = "PUNCT"
    COMMENT = "COMMENT"
    SEMICOLON = "SEMICOLON"


@dataclass(frozen=True, slots=True)
class Token:
    type: TokenType
    text: str
    start: int
    end: int
    depth: int

    @property
    def upper(self) -> str:
        return self.text.upper() if self.type == TokenType.WORD else ""

    @property
    def identifier(self) -> str:
        """Identifier value with quoting removed, lowercased."""
        if self.type == TokenType.QUOTED_IDENT:
            return self.text[1:-1].replace('""', '"').lower()
        return self.text.lower()


_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")
_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_NAMED_PARAM_RE = re.compile(r"[:@$][A-Za-z0-9_]+")
_MULTI_PUNCT = ("<=", ">=", "<>", "!=", "==", "||", "::", "->>", "->")

_CLOSERS = {'"': '"', "`": "`", "[": "]"}


def tokenize(text: str) -> list[Token]:
    """Split SQL text into tokens, tracking parenthesis depth.

    Raises:
        SqlSyntaxError: On an unterminated string literal or quoted identifier.
    """
    tokens: list[Token] = []
    depth = 0
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if text.startswith("--", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            tokens.append(Token(TokenType.COMMENT, "--", i, end, depth))
            i = end
            continue

        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            tokens.append(Token(TokenType.COMMENT, "/*", i, end, depth))
            i = end
            continue

        if text.startswith("*/", i):
            tokens.append(Token(TokenType.COMMENT, "*/", i, i + 2, depth))
            i += 2
            continue

        if ch == "'":
            j = i + 1
            while True:
                j = text.find("'", j)
                if j == -1:
                    raise SqlSyntaxError("unterminated literal", i)
                if text.startswith("''", j):
                    j += 2
                    continue
                break
            tokens.append(Token(TokenType.STRING, text[i : j + 1], i, j + 1, depth))
            i = j + 1
            continue

        if ch in _CLOSERS:
            closer = _CLOSERS[ch]
            j = i + 1
            while True:
                j = text.find(closer, j)
                if j == -1:
                    raise SqlSyntaxError("unterminated identifier", i)
                if closer == '"' and text.startswith('""', j):
                    j += 2
                    continue
                break
            tokens.append(Token(TokenType.QUOTED_IDENT, text[i : j + 1], i, j + 1, depth))
            i = j + 1
            continue

        if ch == ";":
            tokens.append(Token(TokenType.SEMICOLON, ";", i, i + 1, depth))
            i += 1
            continue

        if ch == "?":
            j = i + 1
            while j < n and text[j].isdigit():
                j += 1
            tokens.append(Token(TokenType.PARAM, text[i:j], i, j, depth))
            i = j
            continue

        if ch in ":@$" and not text.startswith("::", i):
            m = _NAMED_PARAM_RE.match(text, i)
            if m:
                tokens.append(Token(TokenType.PARAM, m.group(), i, m.end(), depth))
                i = m.end()
                continue

        m = _WORD_RE.match(text, i)
        if m:
            tokens.append(Token(TokenType.WORD, m.group(), i, m.end(), depth))
            i = m.end()
            continue

        m = _NUMBER_RE.match(text, i)
        if m:
            tokens.append(Token(TokenType.NUMBER, m.group(), i, m.end(), depth))
            i = m.end()
            continue

        if ch == "(":
            tokens.append(Token(TokenType.PUNCT, "(", i, i + 1, depth))
            depth += 1
            i += 1
            continue

        if ch == ")":
            depth = max(depth - 1, 0)
            tokens.append(Token(TokenType.PUNCT, ")", i, i + 1, depth))
            i += 1
            continue

        op = next((p for p in _MULTI_PUNCT if text.startswith(p, i)), ch)
        tokens.append(Token(TokenType.PUNCT, op, i, i + len(op), depth))
        i += len(op)

    return tokens


# ─── Parsed Structure ────────────────────────────────────────

READ_KEYWORDS = frozenset({"SELECT"})
WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "REPLACE", "MERGE", "UPSERT"})

# Keywords that end a table reference (cannot be an alias)
_NON_ALIAS = frozenset({
    "WHERE", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "CROSS", "OUTER", "NATURAL",
    "ON", "USING", "GROUP", "ORDER", "HAVING", "LIMIT", "OFFSET", "SET", "VALUES",
    "UNION", "INTERSECT", "EXCEPT", "RETURNING", "WINDOW", "FETCH", "FOR", "SELECT",
    "DEFAULT", "AS", "FROM", "INDEXED", "NOT", "LATERAL",
})

# Clauses that may follow the filter clause, in the order they can appear
_AFTER_FILTER = frozenset({
    "GROUP", "HAVING", "WINDOW", "ORDER", "LIMIT", "OFFSET", "FETCH", "FOR",
    "RETURNING", "UNION", "INTERSECT", "EXCEPT",
})

_SET_OPERATIONS = frozenset({"UNION", "INTERSECT", "EXCEPT"})


@dataclass(frozen=True, slots=True)
class TableRef:
    """A table named in a FROM / JOIN / UPDATE / INTO position."""
    name: str
    alias: str | None = None
    schema: str | None = None

    @property
    def qualifier(self) -> str:
        return self.alias or self.name


@dataclass(slots=True)
class InsertShape:
    """Column list and VALUES rows of an INSERT statement."""
    columns: list[str] = field(default_factory=list)
    columns_close: int | None = None
    row_closes: list[int] = field(default_factory=list)
    has_select_source: bool = False
    has_default_values: bool = False
    tail_keywords: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ParsedStatement:
    """Structural view of a single SQL statement."""
    text: str
    tokens: list[Token]
    keyword: str = ""
    operation: QueryOperation | None = None
    tables: list[TableRef] = field(default_factory=list)
    has_cte: bool = False
    has_subquery: bool = False
    has_set_operation: bool = False
    conflict_clause: str | None = None
    select_into: bool = False
    where_keyword_end: int | None = None
    where_end: int | None = None
    filter_insert_at: int = 0
    assigned_columns: list[str] = field(default_factory=list)
    insert: InsertShape | None = None

    @property
    def has_filter(self) -> bool:
        return self.where_keyword_end is not None

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]


def strip_terminator(text: str) -> str:
    """Drop surrounding whitespace and one trailing statement separator."""
    text = text.strip()
    if text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def parse(query: str) -> ParsedStatement:
    """Parse one statement. A single trailing `;` is dropped first.

    Raises:
        SqlSyntaxError: If the text cannot be tokenized.
    """
    text = strip_terminator(query)
    tokens = tokenize(text)
    stmt = ParsedStatement(text=text, tokens=tokens, filter_insert_at=len(text))

    words = [t for t in tokens if t.type == TokenType.WORD]
    if not words or tokens[0].type != TokenType.WORD:
        return stmt

    stmt.keyword = tokens[0].upper
    stmt.has_cte = stmt.keyword == "WITH"
    stmt.operation = _classify(stmt.keyword, tokens)
    stmt.has_set_operation = any(
        t.upper in _SET_OPERATIONS for t in tokens if t.depth == 0
    )
    stmt.has_subquery = any(
        t.upper in ("SELECT", "WITH") for t in tokens if t.depth > 0
    )
    if len(tokens) > 2 and tokens[1].upper == "OR":
        stmt.conflict_clause = f"OR {tokens[2].upper}"
    stmt.select_into = stmt.keyword == "SELECT" and any(
        t.upper == "INTO" for t in tokens if t.depth == 0
    )

    _collect_tables(stmt)
    _locate_filter(stmt)
    if stmt.keyword == "UPDATE":
        _collect_assignments(stmt)
    if stmt.keyword == "INSERT":
        stmt.insert = _insert_shape(tokens)
    return stmt


def _classify(keyword: str, tokens: list[Token]) -> QueryOperation | None:
    if keyword in READ_KEYWORDS:
        return QueryOperation.READ
    if keyword in WRITE_KEYWORDS:
        return QueryOperation.WRITE
    if keyword == "WITH":
        top = {t.upper for t in tokens if t.depth == 0}
        if top & WRITE_KEYWORDS:
            return QueryOperation.WRITE
        if "SELECT" in top:
            return QueryOperation.READ
    return None


def _subquery_depths(tokens: list[Token]) -> set[int]:
    """Depths of parenthesised groups that open with SELECT or WITH."""
    depths = set()
    for idx, tok in enumerate(tokens[:-1]):
        if tok.text == "(" and tokens[idx + 1].upper in ("SELECT", "WITH"):
            depths.add(tok.depth + 1)
    return depths


def _collect_tables(stmt: ParsedStatement) -> None:
    tokens = stmt.tokens
    query_depths = {0} | _subquery_depths(tokens)
    idx = 0
    while idx < len(tokens):
        tok = tokens[idx]
        word = tok.upper
        if tok.depth not in query_depths or word not in ("FROM", "JOIN", "UPDATE", "INTO"):
            idx += 1
            continue

        idx += 1
        if word == "UPDATE" and idx < len(tokens) and tokens[idx].upper == "OR":
            idx += 2

        # FROM accepts a comma-separated list; the others name one table
        while idx < len(tokens):
            ref, idx = _read_table_ref(tokens, idx)
            if ref is not None:
                stmt.tables.append(ref)
            if (
                word == "FROM"
                and idx < len(tokens)
                and tokens[idx].text == ","
                and tokens[idx].depth == tok.depth
            ):
                idx += 1
                continue
            break


def _read_table_ref(tokens: list[Token], idx: int) -> tuple[TableRef | None, int]:
    if idx >= len(tokens):
        return None, idx
    tok = tokens[idx]
    if tok.type not in (TokenType.WORD, TokenType.QUOTED_IDENT) or tok.upper in _NON_ALIAS:
        # Derived table or function call: not a named table
        return None, idx

    parts = [tok.identifier]
    idx += 1
    while (
        idx + 1 < len(tokens)
        and tokens[idx].text == "."
        and tokens[idx + 1].type in (TokenType.WORD, TokenType.QUOTED_IDENT)
    ):
        parts.append(tokens[idx + 1].identifier)
        idx += 2

    alias = None
    if idx < len(tokens) and tokens[idx].upper == "AS":
        idx += 1
    if idx < len(tokens):
        nxt = tokens[idx]
        if nxt.type == TokenType.QUOTED_IDENT or (
            nxt.type == TokenType.WORD and nxt.upper not in _NON_ALIAS
        ):
            alias = nxt.identifier
            idx += 1

    schema = ".".join(parts[:-1]) or None
    return TableRef(name=parts[-1], alias=alias, schema=schema), idx


def _locate_filter(stmt: ParsedStatement) -> None:
    """Find the top-level WHERE clause or the point a new one belongs."""
    tokens = stmt.tokens
    start = next(
        (i for i, t in enumerate(tokens) if t.depth == 0 and t.upper in ("FROM", "UPDATE")),
        None,
    )
    if start is None:
        return

    idx = start + 1
    while idx < len(tokens):
        tok = tokens[idx]
        if tok.depth == 0 and tok.upper == "WHERE":
            stmt.where_keyword_end = tok.end
            end = next(
                (t.start for t in tokens[idx + 1:] if t.depth == 0 and t.upper in _AFTER_FILTER),
                len(stmt.text),
            )
            stmt.where_end = end
            return
        if tok.depth == 0 and tok.upper in _AFTER_FILTER:
            stmt.filter_insert_at = tok.start
            return
        idx += 1


def _collect_assignments(stmt: ParsedStatement) -> None:
    """Record every column an UPDATE assigns, including row-value targets.

    `SET (a, b) = (...)` lists its targets one level down, so a group that
    opens right after SET or a comma contributes every identifier in it.
    """
    tokens = stmt.tokens
    in_set = False
    prev: Token | None = None
    idx = 0
    while idx < len(tokens):
        tok = tokens[idx]
        if tok.depth != 0:
            idx += 1
            continue
        if tok.upper == "SET":
            in_set = True
        elif in_set and tok.upper in ("WHERE", "FROM", "RETURNING"):
            break
        elif in_set and tok.text == "(" and prev is not None and (prev.upper == "SET" or prev.text == ","):
            idx += 1
            while idx < len(tokens) and not (tokens[idx].depth == 0 and tokens[idx].text == ")"):
                inner = tokens[idx]
                if inner.type in (TokenType.WORD, TokenType.QUOTED_IDENT):
                    stmt.assigned_columns.append(inner.identifier)
                idx += 1
        elif (
            in_set
            and tok.type in (TokenType.WORD, TokenType.QUOTED_IDENT)
            and idx + 1 < len(tokens)
            and tokens[idx + 1].text == "="
        ):
            stmt.assigned_columns.append(tok.identifier)
        if idx < len(tokens):
            prev = tokens[idx]
        idx += 1


def _insert_shape(tokens: list[Token]) -> InsertShape:
    shape = InsertShape()
    into = next((i for i, t in enumerate(tokens) if t.upper == "INTO" and t.depth == 0), None)
    if into is None:
        return shape

    idx = into + 1
    _, idx = _read_table_ref(tokens, idx)

    if idx < len(tokens) and tokens[idx].text == "(":
        idx += 1
        while idx < len(tokens) and not (tokens[idx].text == ")" and tokens[idx].depth == 0):
            tok = tokens[idx]
            if tok.type in (TokenType.WORD, TokenType.QUOTED_IDENT) and tok.depth == 1:
                shape.columns.append(tok.identifier)
            idx += 1
        if idx < len(tokens):
            shape.columns_close = tokens[idx].start
            idx += 1

    if idx < len(tokens) and tokens[idx].upper == "DEFAULT":
        shape.has_default_values = True
        return shape
    if idx < len(tokens) and tokens[idx].upper in ("SELECT", "WITH"):
        shape.has_select_source = True
        return shape
    if idx >= len(tokens) or tokens[idx].upper != "VALUES":
        return shape

    idx += 1
    while idx < len(tokens):
        tok = tokens[idx]
        if tok.depth == 0 and tok.text == ")":
            shape.row_closes.append(tok.start)
        elif tok.depth == 0 and tok.type == TokenType.WORD:
            shape.tail_keywords = [t.upper for t in tokens[idx:] if t.type == TokenType.WORD and t.depth == 0]
            break
        idx += 1
    return shape


# ─── Formatting ──────────────────────────────────────────────

def sql_literal(value: str) -> str:
    """Render an actor id as a SQL literal: digits as integers, else quoted."""
    if value.isdigit():
        return str(int(value))
    return "'" + value.replace("'", "''") + "'"


def with_predicate(stmt: ParsedStatement, predicate: str) -> str:
    """Return the statement text with `predicate` conjoined to its filter.

    An existing filter is parenthesised as a whole before conjoining, so a
    top-level OR inside it cannot widen the result past the predicate.
    """
    text = stmt.text
    if stmt.has_filter:
        head = text[: stmt.where_keyword_end]
        condition = text[stmt.where_keyword_end : stmt.where_end].strip()
        tail = text[stmt.where_end :].strip()
        rewritten = f"{head} ({condition}) AND {predicate}"
    else:
        head = text[: stmt.filter_insert_at].rstrip()
        tail = text[stmt.filter_insert_at :].strip()
        rewritten = f"{head} WHERE {predicate}"
    return f"{rewritten} {tail}" if tail else rewritten


def with_insert_column(stmt: ParsedStatement, column: str, value: str) -> str:
    """Return an INSERT with `column` appended to the column list and every row."""
    shape = stmt.insert
    if shape is None or shape.columns_close is None or not shape.row_closes:
        raise ValueError("statement is not an INSERT ... (columns) VALUES (...)")

    text = stmt.text
    cuts = [(shape.columns_close, f", {column}")] + [(pos, f", {value}") for pos in shape.row_closes]
    pieces = []
    last = 0
    for pos, insertion in cuts:
        pieces.append(text[last:pos].rstrip())
        pieces.append(insertion)
        last = pos
    pieces.append(text[last:])
    return "".join(pieces)
