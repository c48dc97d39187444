"""Shared test fixtures for the OpsGuard test suite."""

import asyncio
import sqlite3

import pytest

from opsguard.audit.recorder import AuditRecorder
from opsguard.config import EngineSettings
from opsguard.core.models import ActorContext, Role
from opsguard.gate.authorizer import QueryAuthorizationGate
from opsguard.notify.sender import LogMailSender
from opsguard.providers.base import ContentBlock, LLMProvider, LLMResponse
from opsguard.storage.datastore import Datastore
from opsguard.storage.repository import AuditRepository
from opsguard.tools import ToolExecutor, ToolRegistry
from opsguard.tools.builtin import register_builtin_tools

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL,
    role TEXT NOT NULL
);
CREATE TABLE products (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT,
    price REAL NOT NULL,
    stock_quantity INTEGER NOT NULL DEFAULT 0,
    min_stock_level INTEGER NOT NULL DEFAULT 0,
    supplier_id INTEGER,
    is_active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE purchase_orders (
    id INTEGER PRIMARY KEY,
    supplier_id INTEGER NOT NULL,
    product_id INTEGER,
    quantity INTEGER,
    total_amount REAL,
    status TEXT,
    notes TEXT,
    created_at TEXT
);
CREATE TABLE delivery_drivers (
    id INTEGER PRIMARY KEY,
    name TEXT,
    is_active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE delivery_tracking (
    id INTEGER PRIMARY KEY,
    order_id INTEGER,
    driver_id INTEGER,
    supplier_id INTEGER,
    status TEXT,
    pickup_address TEXT,
    delivery_address TEXT,
    delivery_fee REAL DEFAULT 0,
    notes TEXT,
    created_at TEXT,
    delivered_at TEXT
);
CREATE TABLE client_orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    status TEXT,
    total_amount REAL,
    delivery_address TEXT,
    items TEXT,
    created_at TEXT
);
"""

SEED = """
INSERT INTO users (id, email, role) VALUES
    (1, 'owner@example.com', 'owner'),
    (3, 'supplier3@example.com', 'supplier'),
    (7, 'driver7@example.com', 'driver'),
    (9, 'driver9@example.com', 'driver'),
    (21, 'customer21@example.com', 'customer'),
    (22, 'customer22@example.com', 'customer');
INSERT INTO products (id, name, category, price, stock_quantity, min_stock_level, supplier_id, is_active) VALUES
    (1, 'Everything Bagel', 'bagels', 2.50, 40, 10, 3, 1),
    (2, 'Sesame Bagel', 'bagels', 2.25, 0, 10, 3, 1),
    (3, 'Cream Cheese', 'spreads', 4.00, 5, 8, 4, 1),
    (4, 'Retired Muffin', 'pastry', 3.00, 10, 0, 4, 0);
INSERT INTO purchase_orders (id, supplier_id, product_id, quantity, total_amount, status, created_at) VALUES
    (1, 3, 1, 100, 150.0, 'pending', '2026-10-01T08:00:00+00:00'),
    (2, 4, 3, 20, 60.0, 'pending', '2026-10-02T08:00:00+00:00');
INSERT INTO delivery_drivers (id, name, is_active) VALUES (7, 'Dana', 1), (9, 'Sam', 1);
INSERT INTO delivery_tracking (id, order_id, driver_id, supplier_id, status, pickup_address, delivery_address, delivery_fee, created_at) VALUES
    (41, 100, 7, 3, 'assigned', '1 Bakery Row', '5 Elm St', 6.5, '2026-10-18T09:00:00+00:00'),
    (42, 101, 9, 3, 'assigned', '1 Bakery Row', '9 Oak St', 7.0, '2026-10-18T10:00:00+00:00'),
    (43, 102, 7, 4, 'in_transit', '1 Bakery Row', '2 Pine St', 5.0, '2026-10-18T11:00:00+00:00');
INSERT INTO client_orders (id, user_id, status, total_amount, delivery_address, items, created_at) VALUES
    (100, 21, 'pending', 12.5, '5 Elm St', '[]', '2026-10-18T08:00:00+00:00'),
    (101, 22, 'pending', 9.0, '9 Oak St', '[]', '2026-10-18T08:30:00+00:00'),
    (102, 21, 'delivered', 20.0, '2 Pine St', '[]', '2026-10-17T08:00:00+00:00');
"""


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "ops.db"
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA)
    conn.executescript(SEED)
    conn.commit()
    conn.close()
    return str(path)


@pytest.fixture
def datastore(db_path):
    return Datastore(db_path)


@pytest.fixture
def recorder(tmp_path):
    repo = AuditRepository(str(tmp_path / "audit.db"))
    yield AuditRecorder(repo)
    repo.close()


@pytest.fixture
def gate():
    return QueryAuthorizationGate()


@pytest.fixture
def registry():
    reg = ToolRegistry()
    register_builtin_tools(reg)
    return reg


@pytest.fixture
def mailer():
    return LogMailSender()


@pytest.fixture
def executor(registry, gate, datastore, recorder, mailer):
    return ToolExecutor(registry, gate, datastore, recorder, notifier=mailer, default_timeout=5.0)


@pytest.fixture
def settings(db_path, tmp_path):
    return EngineSettings(
        provider="openai",
        database_url=db_path,
        audit_database_url=str(tmp_path / "audit.db"),
        llm_timeout_seconds=2.0,
        tool_timeout_seconds=2.0,
    )


@pytest.fixture
def driver7():
    return ActorContext(actor_id="7", role=Role.DRIVER)


@pytest.fixture
def customer21():
    return ActorContext(actor_id="21", role=Role.CUSTOMER)


@pytest.fixture
def supplier3():
    return ActorContext(actor_id="3", role=Role.SUPPLIER)


@pytest.fixture
def owner1():
    return ActorContext(actor_id="1", role=Role.OWNER)


# ─── Scripted LLM ────────────────────────────────────────────

def text_reply(text: str) -> LLMResponse:
    return LLMResponse(content=[ContentBlock(type="text", text=text)], stop_reason="end_turn")


def tool_reply(*calls: tuple[str, dict | str], text: str = "") -> LLMResponse:
    content = [ContentBlock(type="text", text=text)] if text else []
    for i, (name, args) in enumerate(calls):
        content.append(
            ContentBlock(type="tool_use", tool_name=name, tool_input=args, tool_use_id=f"call_{i}")
        )
    return LLMResponse(content=content, stop_reason="tool_use")


class ScriptedProvider(LLMProvider):
    """Replays canned responses; the last one repeats when the script runs out."""

    def __init__(self, replies: list[LLMResponse], delay: float = 0.0):
        super().__init__()
        self.replies = list(replies)
        self.delay = delay
        self.calls: list[list] = []
        self.tools_seen: list[list[dict] | None] = []

    async def _create_message_impl(self, transcript, *, tools=None, max_tokens=1000, temperature=None):
        self.calls.append(list(transcript))
        self.tools_seen.append(tools)
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]
