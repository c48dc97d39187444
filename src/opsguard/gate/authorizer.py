"""
OpsGuard Query Authorization Gate

Decides whether a model-proposed SQL statement may run for a role, and
rewrites it so that it is scoped to the calling actor.

Checks run in a fixed order:
  1. Tokenize; keywords are compared uppercased, literals are untouched
  2. Denylist (schema changes, stacked statements, comments): any role
  3. Role lookup
  4. Statement operation against the role's allowed operations
  5. Table references against the role's allowed tables (scoped roles)
  6. Scoping predicate bound to the actor id (scoped roles)

authorize() is a pure function of (query, role, actor_id): the same inputs
always produce the same verdict and rewritten text.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from opsguard.core.models import ErrorKind, QueryOperation, Role
from opsguard.gate.policy import (
    CATALOG_TABLES,
    DEFAULT_POLICIES,
    QueryPolicy,
    validate_policies,
)
from opsguard.gate.sql import (
    ParsedStatement,
    SqlSyntaxError,
    TokenType,
    parse,
    sql_literal,
    with_insert_column,
    with_predicate,
)
from opsguard.logging import get_logger

logger = get_logger("opsguard.gate")

DENYLISTED_KEYWORDS = frozenset({
    "DROP", "TRUNCATE", "ALTER", "CREATE", "GRANT", "REVOKE",
    "ATTACH", "DETACH", "PRAGMA", "VACUUM", "REINDEX",
})


@dataclass(frozen=True)
class AuthorizationVerdict:
    """Outcome of one authorization decision. Not persisted."""

    allowed: bool
    rewritten_query: str | None = None
    reason: str | None = None
    error_kind: ErrorKind | None = None
    operation: QueryOperation | None = None
    applied_predicate: str | None = None
    tables: tuple[str, ...] = ()


def _deny(kind: ErrorKind, reason: str) -> AuthorizationVerdict:
    return AuthorizationVerdict(allowed=False, reason=reason, error_kind=kind)


def find_unsafe_construct(stmt: ParsedStatement) -> str | None:
    """Return the first denylisted construct in a parsed statement, if any."""
    for tok in stmt.tokens:
        if tok.type == TokenType.COMMENT:
            return tok.text
        if tok.type == TokenType.SEMICOLON:
            return "multiple statements"
        if tok.upper in DENYLISTED_KEYWORDS:
            return tok.upper
    if stmt.select_into:
        return "SELECT INTO"
    return None


class QueryAuthorizationGate:
    """Validates and rewrites SQL against the per-role policy table."""

    def __init__(self, policies: Mapping[Role, QueryPolicy] | None = None):
        self._policies = validate_policies(policies if policies is not None else DEFAULT_POLICIES)

    @property
    def policies(self) -> dict[Role, QueryPolicy]:
        return dict(self._policies)

    def policy_for(self, role: Role | str) -> QueryPolicy | None:
        try:
            return self._policies.get(Role(role))
        except ValueError:
            return None

    def authorize(self, query: str, role: Role | str, actor_id: str) -> AuthorizationVerdict:
        """Decide whether `query` may run for `role` on behalf of `actor_id`.

        Returns:
            AuthorizationVerdict with the rewritten query when allowed, or
            the reason and error kind when denied.
        """
        stmt, verdict = self._parse_safely(query)
        if verdict is not None:
            return verdict

        policy = self.policy_for(role)
        if policy is None:
            return _deny(ErrorKind.UNAUTHORIZED, f"unknown role: {role}")
        role = Role(role)

        if stmt.operation is None:
            return _deny(ErrorKind.UNAUTHORIZED, f"unrecognized statement: {stmt.keyword or 'empty'}")
        if stmt.operation not in policy.allowed_operations:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"operation {stmt.operation.value} is not allowed for role {role.value}",
            )
        if policy.allowed_statements is not None and stmt.keyword not in policy.allowed_statements:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"{stmt.keyword} statements are not allowed for role {role.value}",
            )

        tables = tuple(stmt.table_names)
        if policy.unrestricted:
            return AuthorizationVerdict(
                allowed=True,
                rewritten_query=stmt.text,
                operation=stmt.operation,
                tables=tables,
            )

        denial = self._check_scoped_shape(stmt, policy, role, actor_id)
        if denial is not None:
            return denial

        column = policy.scoping_predicate.column
        literal = sql_literal(actor_id.strip())

        if stmt.keyword == "INSERT":
            return self._scope_insert(stmt, column, literal, role, tables)

        if column in stmt.assigned_columns:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"column {column} cannot be assigned by role {role.value}",
            )

        qualify = len(stmt.tables) > 1 or stmt.tables[0].alias is not None
        predicates: list[str] = []
        for ref in stmt.tables:
            rendered = policy.scoping_predicate.render(literal, ref.qualifier if qualify else None)
            if rendered not in predicates:
                predicates.append(rendered)
        predicate = " AND ".join(predicates)

        return AuthorizationVerdict(
            allowed=True,
            rewritten_query=with_predicate(stmt, predicate),
            operation=stmt.operation,
            applied_predicate=predicate,
            tables=tables,
        )

    def authorize_catalog_read(self, query: str) -> AuthorizationVerdict:
        """Authorize a fixed read of public reference tables.

        Used only for queries written by tool handlers themselves, never for
        model-authored SQL. No predicate is injected.
        """
        stmt, verdict = self._parse_safely(query)
        if verdict is not None:
            return verdict
        if stmt.keyword != "SELECT" or stmt.has_cte or stmt.has_subquery or stmt.has_set_operation:
            return _deny(ErrorKind.UNAUTHORIZED, "catalog reads must be a single plain SELECT")
        if not stmt.tables:
            return _deny(ErrorKind.UNAUTHORIZED, "no table reference")
        outside = [t.name for t in stmt.tables if t.schema or t.name not in CATALOG_TABLES]
        if outside:
            return _deny(ErrorKind.UNAUTHORIZED, f"table {outside[0]} is not catalog data")
        return AuthorizationVerdict(
            allowed=True,
            rewritten_query=stmt.text,
            operation=QueryOperation.READ,
            tables=tuple(stmt.table_names),
        )

    # ─── Internals ────────────────────────────────────────────

    @staticmethod
    def _parse_safely(query: str) -> tuple[ParsedStatement | None, AuthorizationVerdict | None]:
        try:
            stmt = parse(query)
        except SqlSyntaxError as e:
            return None, _deny(ErrorKind.UNSAFE_QUERY, f"unsafe construct: {e.construct}")
        unsafe = find_unsafe_construct(stmt)
        if unsafe is not None:
            logger.info("Denylisted construct rejected", extra={"error_kind": ErrorKind.UNSAFE_QUERY})
            return None, _deny(ErrorKind.UNSAFE_QUERY, f"unsafe construct: {unsafe}")
        return stmt, None

    @staticmethod
    def _check_scoped_shape(
        stmt: ParsedStatement, policy: QueryPolicy, role: Role, actor_id: str
    ) -> AuthorizationVerdict | None:
        if not actor_id or not actor_id.strip():
            return _deny(ErrorKind.UNAUTHORIZED, "missing actor id")
        if stmt.has_cte or stmt.has_subquery or stmt.has_set_operation:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"nested queries are not allowed for role {role.value}",
            )
        if stmt.conflict_clause:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"{stmt.conflict_clause} is not allowed for role {role.value}",
            )
        if not stmt.tables:
            return _deny(ErrorKind.UNAUTHORIZED, "no table reference")
        for ref in stmt.tables:
            if ref.schema:
                return _deny(
                    ErrorKind.UNAUTHORIZED,
                    f"schema-qualified table {ref.schema}.{ref.name} is not allowed",
                )
            if not policy.allows_table(ref.name):
                return _deny(
                    ErrorKind.UNAUTHORIZED,
                    f"table {ref.name} is not allowed for role {role.value}",
                )
        return None

    @staticmethod
    def _scope_insert(
        stmt: ParsedStatement,
        column: str,
        literal: str,
        role: Role,
        tables: tuple[str, ...],
    ) -> AuthorizationVerdict:
        shape = stmt.insert
        if shape is None or shape.has_select_source or shape.has_default_values:
            return _deny(ErrorKind.UNAUTHORIZED, "INSERT must use an explicit VALUES list")
        if shape.columns_close is None or not shape.row_closes:
            return _deny(ErrorKind.UNAUTHORIZED, "INSERT must name its columns and use VALUES")
        if column in shape.columns:
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"column {column} cannot be supplied by role {role.value}",
            )
        if shape.tail_keywords and shape.tail_keywords[0] != "RETURNING":
            return _deny(
                ErrorKind.UNAUTHORIZED,
                f"INSERT ... {shape.tail_keywords[0]} is not allowed for role {role.value}",
            )
        return AuthorizationVerdict(
            allowed=True,
            rewritten_query=with_insert_column(stmt, column, literal),
            operation=QueryOperation.WRITE,
            applied_predicate=f"{column} = {literal}",
            tables=tables,
        )
