"""
OpsGuard Query Policies

Static per-role data access policy. One entry per role:

  owner, admin   -> every table, READ + WRITE, no scoping
  supplier       -> purchase_orders, delivery_tracking, products
                    SELECT / UPDATE scoped by supplier_id
  driver         -> delivery_tracking
                    SELECT / UPDATE scoped by driver_id
  customer       -> client_orders
                    SELECT / INSERT scoped by user_id

Every non-privileged role must name a finite, non-empty table set and a
scoping predicate; validate_policies() refuses a table that does not.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from opsguard.core.models import PRIVILEGED_ROLES, QueryOperation, Role
from opsguard.exceptions import ConfigurationError

ALL_TABLES: Literal["*"] = "*"

# Public reference data readable by fixed, handler-authored catalog queries
CATALOG_TABLES = frozenset({"products"})


@dataclass(frozen=True)
class ScopingPredicate:
    """Equality filter binding a column to the calling actor's id."""

    column: str

    def render(self, literal: str, qualifier: str | None = None) -> str:
        target = f"{qualifier}.{self.column}" if qualifier else self.column
        return f"{target} = {literal}"


@dataclass(frozen=True)
class QueryPolicy:
    allowed_tables: frozenset[str] | Literal["*"]
    allowed_operations: frozenset[QueryOperation]
    # None allows any statement keyword whose operation is allowed
    allowed_statements: frozenset[str] | None = None
    scoping_predicate: ScopingPredicate | None = None

    @property
    def unrestricted(self) -> bool:
        return self.allowed_tables == ALL_TABLES

    def allows_table(self, name: str) -> bool:
        return self.unrestricted or name.lower() in self.allowed_tables


_READ_WRITE = frozenset({QueryOperation.READ, QueryOperation.WRITE})

DEFAULT_POLICIES: dict[Role, QueryPolicy] = {
    Role.OWNER: QueryPolicy(allowed_tables=ALL_TABLES, allowed_operations=_READ_WRITE),
    Role.ADMIN: QueryPolicy(allowed_tables=ALL_TABLES, allowed_operations=_READ_WRITE),
    Role.SUPPLIER: QueryPolicy(
        allowed_tables=frozenset({"purchase_orders", "delivery_tracking", "products"}),
        allowed_operations=_READ_WRITE,
        allowed_statements=frozenset({"SELECT", "UPDATE"}),
        scoping_predicate=ScopingPredicate("supplier_id"),
    ),
    Role.DRIVER: QueryPolicy(
        allowed_tables=frozenset({"delivery_tracking"}),
        allowed_operations=_READ_WRITE,
        allowed_statements=frozenset({"SELECT", "UPDATE"}),
        scoping_predicate=ScopingPredicate("driver_id"),
    ),
    Role.CUSTOMER: QueryPolicy(
        allowed_tables=frozenset({"client_orders"}),
        allowed_operations=_READ_WRITE,
        allowed_statements=frozenset({"SELECT", "INSERT"}),
        scoping_predicate=ScopingPredicate("user_id"),
    ),
}


def validate_policies(policies: Mapping[Role, QueryPolicy]) -> dict[Role, QueryPolicy]:
    """Check the policy table invariant and return a copy of it.

    Raises:
        ConfigurationError: If a non-privileged role has an unrestricted or
            empty table set, or no scoping predicate.
    """
    for role, policy in policies.items():
        if role in PRIVILEGED_ROLES:
            continue
        if policy.unrestricted or not policy.allowed_tables:
            raise ConfigurationError(
                f"Role '{role.value}' must list a finite, non-empty set of tables",
                details={"role": role.value},
            )
        if policy.scoping_predicate is None:
            raise ConfigurationError(
                f"Role '{role.value}' must define a scoping predicate",
                details={"role": role.value},
            )
    return dict(policies)
