"""Tests for the Query Authorization Gate.

Covers:
- Scoping predicate injection for every non-privileged role
- Denylisted constructs rejected for every role
- Table / operation / statement checks
- INSERT scoping and scope-column protection
- Determinism of the rewrite
"""

import pytest

from opsguard.core.models import ErrorKind, QueryOperation, Role
from opsguard.exceptions import ConfigurationError
from opsguard.gate.authorizer import QueryAuthorizationGate
from opsguard.gate.policy import ALL_TABLES, DEFAULT_POLICIES, QueryPolicy, ScopingPredicate

ALL_ROLES = list(Role)

SCOPED_CASES = [
    (Role.SUPPLIER, "3", "SELECT * FROM purchase_orders", "supplier_id = 3"),
    (Role.DRIVER, "7", "SELECT * FROM delivery_tracking", "driver_id = 7"),
    (Role.CUSTOMER, "21", "SELECT * FROM client_orders", "user_id = 21"),
]


@pytest.fixture
def gate():
    return QueryAuthorizationGate()


# ─── Scoping ─────────────────────────────────────────────────


class TestScoping:
    @pytest.mark.parametrize("role,actor_id,query,predicate", SCOPED_CASES)
    def test_predicate_appended_without_filter(self, gate, role, actor_id, query, predicate):
        verdict = gate.authorize(query, role, actor_id)
        assert verdict.allowed
        assert verdict.rewritten_query == f"{query} WHERE {predicate}"
        assert verdict.applied_predicate == predicate

    def test_driver_delivery_lookup(self, gate):
        verdict = gate.authorize("SELECT * FROM delivery_tracking WHERE id = 42", Role.DRIVER, "7")
        assert verdict.allowed
        assert verdict.rewritten_query == (
            "SELECT * FROM delivery_tracking WHERE (id = 42) AND driver_id = 7"
        )
        assert verdict.operation == QueryOperation.READ

    def test_or_filter_cannot_escape_scope(self, gate):
        verdict = gate.authorize(
            "SELECT * FROM delivery_tracking WHERE id = 42 OR 1 = 1", Role.DRIVER, "7"
        )
        assert verdict.allowed
        assert verdict.rewritten_query.endswith("WHERE (id = 42 OR 1 = 1) AND driver_id = 7")

    def test_predicate_placed_before_order_by(self, gate):
        verdict = gate.authorize(
            "select id from delivery_tracking order by created_at desc limit 5", Role.DRIVER, "7"
        )
        assert verdict.rewritten_query == (
            "select id from delivery_tracking WHERE driver_id = 7 order by created_at desc limit 5"
        )

    def test_join_scopes_every_table(self, gate):
        verdict = gate.authorize(
            "SELECT po.id, p.name FROM purchase_orders po JOIN products p ON p.id = po.product_id",
            Role.SUPPLIER,
            "3",
        )
        assert verdict.allowed
        assert verdict.applied_predicate == "po.supplier_id = 3 AND p.supplier_id = 3"

    def test_alias_qualifies_predicate(self, gate):
        verdict = gate.authorize("SELECT d.id FROM delivery_tracking d", Role.DRIVER, "7")
        assert verdict.rewritten_query == "SELECT d.id FROM delivery_tracking d WHERE d.driver_id = 7"

    def test_update_is_scoped(self, gate):
        verdict = gate.authorize(
            "UPDATE delivery_tracking SET status = 'delivered' WHERE id = 41", Role.DRIVER, "7"
        )
        assert verdict.allowed
        assert verdict.operation == QueryOperation.WRITE
        assert verdict.rewritten_query.endswith("WHERE (id = 41) AND driver_id = 7")

    def test_non_numeric_actor_is_quoted(self, gate):
        verdict = gate.authorize("SELECT * FROM client_orders", Role.CUSTOMER, "cus_o'neil")
        assert verdict.rewritten_query.endswith("WHERE user_id = 'cus_o''neil'")

    def test_trailing_semicolon_is_dropped(self, gate):
        verdict = gate.authorize("SELECT * FROM client_orders;", Role.CUSTOMER, "21")
        assert verdict.rewritten_query == "SELECT * FROM client_orders WHERE user_id = 21"

    def test_same_inputs_same_rewrite(self, gate):
        query = "SELECT * FROM delivery_tracking WHERE status = 'assigned'"
        first = gate.authorize(query, Role.DRIVER, "7")
        second = gate.authorize(query, Role.DRIVER, "7")
        assert first.rewritten_query == second.rewritten_query
        assert first == second


# ─── Privileged Roles ───────────────────────────────────────


class TestPrivileged:
    @pytest.mark.parametrize("role", [Role.OWNER, Role.ADMIN])
    def test_full_access_without_predicate(self, gate, role):
        verdict = gate.authorize("SELECT * FROM users", role, "1")
        assert verdict.allowed
        assert verdict.rewritten_query == "SELECT * FROM users"
        assert verdict.applied_predicate is None

    def test_owner_may_write(self, gate):
        verdict = gate.authorize("UPDATE products SET price = 3 WHERE id = 1", Role.OWNER, "1")
        assert verdict.allowed
        assert verdict.operation == QueryOperation.WRITE


# ─── Denylist ────────────────────────────────────────────────


class TestDenylist:
    @pytest.mark.parametrize("role", ALL_ROLES)
    def test_drop_table_rejected_for_every_role(self, gate, role):
        verdict = gate.authorize("DROP TABLE users", role, "1")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNSAFE_QUERY
        assert "DROP" in verdict.reason

    @pytest.mark.parametrize(
        "query,construct",
        [
            ("SELECT * FROM delivery_tracking; DELETE FROM users", "multiple statements"),
            ("SELECT * FROM delivery_tracking -- sneaky", "--"),
            ("SELECT * FROM delivery_tracking /* x */", "/*"),
            ("ALTER TABLE users ADD COLUMN x", "ALTER"),
            ("PRAGMA table_info(users)", "PRAGMA"),
            ("ATTACH DATABASE 'x.db' AS x", "ATTACH"),
            ("SELECT * INTO copy FROM users", "SELECT INTO"),
            ("SELECT * FROM t WHERE a = 'open", "unterminated literal"),
        ],
    )
    @pytest.mark.parametrize("role", [Role.OWNER, Role.DRIVER])
    def test_unsafe_constructs(self, gate, role, query, construct):
        verdict = gate.authorize(query, role, "7")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNSAFE_QUERY
        assert construct in verdict.reason

    def test_keyword_inside_literal_is_allowed(self, gate):
        verdict = gate.authorize(
            "SELECT * FROM delivery_tracking WHERE notes = 'drop at back door'", Role.DRIVER, "7"
        )
        assert verdict.allowed


# ─── Table / Operation Checks ───────────────────────────────


class TestUnauthorized:
    def test_table_outside_policy(self, gate):
        verdict = gate.authorize("SELECT * FROM delivery_tracking", Role.CUSTOMER, "21")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED
        assert "delivery_tracking" in verdict.reason

    def test_joined_table_outside_policy(self, gate):
        verdict = gate.authorize(
            "SELECT * FROM delivery_tracking d JOIN users u ON u.id = d.driver_id", Role.DRIVER, "7"
        )
        assert not verdict.allowed
        assert "users" in verdict.reason

    def test_table_name_in_literal_does_not_count(self, gate):
        verdict = gate.authorize(
            "SELECT * FROM users WHERE email = 'delivery_tracking'", Role.DRIVER, "7"
        )
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED

    def test_statement_not_allowed_for_role(self, gate):
        verdict = gate.authorize("DELETE FROM client_orders", Role.CUSTOMER, "21")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED
        assert "DELETE" in verdict.reason

    def test_customer_cannot_update(self, gate):
        verdict = gate.authorize("UPDATE client_orders SET status = 'x'", Role.CUSTOMER, "21")
        assert not verdict.allowed

    def test_subquery_refused_for_scoped_role(self, gate):
        verdict = gate.authorize(
            "SELECT * FROM delivery_tracking WHERE id IN (SELECT id FROM delivery_tracking)",
            Role.DRIVER,
            "7",
        )
        assert not verdict.allowed
        assert "nested" in verdict.reason

    def test_union_refused_for_scoped_role(self, gate):
        verdict = gate.authorize(
            "SELECT id FROM delivery_tracking UNION SELECT id FROM delivery_tracking",
            Role.DRIVER,
            "7",
        )
        assert not verdict.allowed

    def test_schema_qualified_refused(self, gate):
        verdict = gate.authorize("SELECT * FROM main.delivery_tracking", Role.DRIVER, "7")
        assert not verdict.allowed
        assert "schema-qualified" in verdict.reason

    def test_unknown_role(self, gate):
        verdict = gate.authorize("SELECT 1 FROM products", "janitor", "1")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED

    def test_missing_actor(self, gate):
        verdict = gate.authorize("SELECT * FROM delivery_tracking", Role.DRIVER, "  ")
        assert not verdict.allowed
        assert "actor" in verdict.reason

    def test_unrecognized_statement(self, gate):
        verdict = gate.authorize("EXPLAIN SELECT * FROM delivery_tracking", Role.DRIVER, "7")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED

    def test_scope_column_assignment_refused(self, gate):
        verdict = gate.authorize(
            "UPDATE delivery_tracking SET driver_id = 9 WHERE id = 41", Role.DRIVER, "7"
        )
        assert not verdict.allowed
        assert "driver_id" in verdict.reason

    @pytest.mark.parametrize("query", [
        "UPDATE delivery_tracking SET (driver_id, status) = (9, 'assigned') WHERE id = 41",
        "UPDATE delivery_tracking SET status = 'assigned', (\"driver_id\") = (9) WHERE id = 41",
        "UPDATE delivery_tracking SET (status, DRIVER_ID) = ('assigned', 9)",
    ])
    def test_row_value_scope_column_assignment_refused(self, gate, query):
        verdict = gate.authorize(query, Role.DRIVER, "7")
        assert not verdict.allowed
        assert verdict.error_kind == ErrorKind.UNAUTHORIZED
        assert "driver_id" in verdict.reason

    def test_row_value_assignment_of_other_columns_allowed(self, gate):
        verdict = gate.authorize(
            "UPDATE delivery_tracking SET (status, notes) = ('delivered', 'left at door') WHERE id = 41",
            Role.DRIVER,
            "7",
        )
        assert verdict.allowed
        assert verdict.rewritten_query.endswith("WHERE (id = 41) AND driver_id = 7")


# ─── INSERT ──────────────────────────────────────────────────


class TestInsert:
    def test_scope_column_added(self, gate):
        verdict = gate.authorize(
            "INSERT INTO client_orders (status, total_amount) VALUES ('pending', 12.5)",
            Role.CUSTOMER,
            "21",
        )
        assert verdict.allowed
        assert verdict.rewritten_query == (
            "INSERT INTO client_orders (status, total_amount, user_id) VALUES ('pending', 12.5, 21)"
        )

    def test_supplying_scope_column_refused(self, gate):
        verdict = gate.authorize(
            "INSERT INTO client_orders (user_id, status) VALUES (22, 'pending')",
            Role.CUSTOMER,
            "21",
        )
        assert not verdict.allowed
        assert "user_id" in verdict.reason

    def test_insert_select_refused(self, gate):
        verdict = gate.authorize(
            "INSERT INTO client_orders (status) SELECT status FROM client_orders",
            Role.CUSTOMER,
            "21",
        )
        assert not verdict.allowed

    def test_insert_without_columns_refused(self, gate):
        verdict = gate.authorize("INSERT INTO client_orders VALUES (1, 21)", Role.CUSTOMER, "21")
        assert not verdict.allowed

    def test_conflict_clause_refused(self, gate):
        verdict = gate.authorize(
            "INSERT OR REPLACE INTO client_orders (id, status) VALUES (101, 'x')",
            Role.CUSTOMER,
            "21",
        )
        assert not verdict.allowed
        assert "OR REPLACE" in verdict.reason


# ─── Catalog Reads ──────────────────────────────────────────


class TestCatalogRead:
    def test_products_allowed_without_predicate(self, gate):
        verdict = gate.authorize_catalog_read("SELECT id, name FROM products WHERE is_active = 1")
        assert verdict.allowed
        assert verdict.rewritten_query == "SELECT id, name FROM products WHERE is_active = 1"

    def test_other_tables_refused(self, gate):
        verdict = gate.authorize_catalog_read("SELECT * FROM users")
        assert not verdict.allowed

    def test_writes_refused(self, gate):
        verdict = gate.authorize_catalog_read("UPDATE products SET price = 0")
        assert not verdict.allowed


# ─── Policy Table ───────────────────────────────────────────


class TestPolicies:
    def test_default_policies_cover_every_role(self):
        assert set(DEFAULT_POLICIES) == set(Role)

    def test_scoped_role_without_predicate_rejected(self):
        policies = dict(DEFAULT_POLICIES)
        policies[Role.DRIVER] = QueryPolicy(
            allowed_tables=frozenset({"delivery_tracking"}),
            allowed_operations=frozenset({QueryOperation.READ}),
        )
        with pytest.raises(ConfigurationError, match="scoping predicate"):
            QueryAuthorizationGate(policies)

    def test_scoped_role_with_all_tables_rejected(self):
        policies = dict(DEFAULT_POLICIES)
        policies[Role.CUSTOMER] = QueryPolicy(
            allowed_tables=ALL_TABLES,
            allowed_operations=frozenset({QueryOperation.READ}),
            scoping_predicate=ScopingPredicate("user_id"),
        )
        with pytest.raises(ConfigurationError):
            QueryAuthorizationGate(policies)

    def test_custom_policy_read_only(self):
        policies = dict(DEFAULT_POLICIES)
        policies[Role.DRIVER] = QueryPolicy(
            allowed_tables=frozenset({"delivery_tracking"}),
            allowed_operations=frozenset({QueryOperation.READ}),
            scoping_predicate=ScopingPredicate("driver_id"),
        )
        gate = QueryAuthorizationGate(policies)
        verdict = gate.authorize("UPDATE delivery_tracking SET status = 'x'", Role.DRIVER, "7")
        assert not verdict.allowed
        assert "WRITE" in verdict.reason
