from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ledgersync.exceptions import GatewayError, SubscriptionError
from ledgersync.realtime.feed import OnChange, OnStatus, SubscriptionState
from ledgersync.routing import RoutingConfig
from ledgersync.state.store import CacheStore


class FakeGateway:
    """In-memory backend. A table with a gate blocks until the gate is set."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.calls: dict[str, int] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.failing: set[str] = set()
        self.ping_error: Exception | None = None
        self.pings = 0

    async def fetch_all(self, table: str) -> list[dict[str, Any]]:
        self.calls[table] = self.calls.get(table, 0) + 1
        gate = self.gates.get(table)
        if gate is not None:
            await gate.wait()
        if table in self.failing:
            raise GatewayError(f"HTTP 503 from {table}", status_code=503, table=table)
        return [dict(row) for row in self.tables.get(table, [])]

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error


class FakeHandle:
    def __init__(self, table: str, on_change: OnChange, on_status: OnStatus) -> None:
        self.table = table
        self.on_change = on_change
        self.on_status = on_status


class FakeFeed:
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.subscribe_calls: list[str] = []
        self.unsubscribe_calls: list[str] = []
        self.connected = True
        self.disconnects = 0
        self.fail_tables: set[str] = set()
        self.disconnect_error: Exception | None = None

    async def subscribe(self, table: str, on_change: OnChange, on_status: OnStatus) -> FakeHandle:
        self.subscribe_calls.append(table)
        # Yield like a real network round-trip would.
        await asyncio.sleep(0)
        if table in self.fail_tables:
            raise SubscriptionError("channel refused", table=table)
        handle = FakeHandle(table, on_change, on_status)
        self.handles.append(handle)
        on_status(SubscriptionState.ACTIVE)
        return handle

    async def unsubscribe(self, handle: FakeHandle) -> None:
        self.unsubscribe_calls.append(handle.table)
        if handle in self.handles:
            self.handles.remove(handle)

    def is_connected(self) -> bool:
        return self.connected

    async def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = False
        if self.disconnect_error is not None:
            raise self.disconnect_error

    def open_tables(self) -> list[str]:
        return [handle.table for handle in self.handles]

    def emit(self, table: str, payload: dict[str, Any]) -> None:
        for handle in list(self.handles):
            if handle.table == table:
                handle.on_change(payload)

    def set_state(self, table: str, state: SubscriptionState) -> None:
        for handle in list(self.handles):
            if handle.table == table:
                handle.on_status(state)


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProbe:
    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.calls = 0

    async def check(self) -> bool:
        self.calls += 1
        return self.reachable


async def instant_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


SAMPLE_TABLES: dict[str, list[dict[str, Any]]] = {
    "agencies": [
        {"id": "ag1", "name": "Agence Plateau", "partner_id": "p1", "solde_principal": 150000},
        {"id": "ag2", "name": "Agence Cocody", "partner_id": "p2", "solde_principal": 0},
    ],
    "users": [
        {"id": "u1", "name": "Awa Kone", "role": "agent", "agency_id": "ag1"},
        {"id": "u2", "name": "Moussa Traore", "role": "partner", "agencyId": "ag2"},
        {"id": 3, "name": "Admin", "role": "admin", "email": ""},
    ],
    "transactions": [
        {"id": "t1", "agent_id": "u1", "montant_total": 5000, "statut": "en_attente", "date": "2026-03-01T09:00:00Z"},
        {"id": "t2", "agent_id": "u1", "montant_total": 12000, "statut": "validee", "date": "2026-03-02T10:30:00Z"},
        {"id": "t3", "agent_id": "u2", "montant_total": 800, "statut": "en_attente", "date": None},
    ],
    "contracts": [
        {"id": "c1", "partner_id": "p1", "status": "active"},
        {"id": "c2", "partner_id": "p1", "status": "expired"},
        {"id": "c3", "partner_id": "p2", "status": "active"},
    ],
}


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(SAMPLE_TABLES)


@pytest.fixture
def store(gateway: FakeGateway) -> CacheStore:
    return CacheStore(gateway)


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1000.0)


@pytest.fixture
def routing() -> RoutingConfig:
    """Two watched tables and three views: transactions->[A, B], users->[B, C]."""
    return RoutingConfig.model_validate(
        {
            "tables": {
                "transactions": {"entity": "transaction", "invalidates": ["transactions", "users", "agencies"]},
                "users": {"entity": "user", "invalidates": ["users"]},
            },
            "events": {
                "transactionChanged": ["transactions", "users"],
                "userChanged": ["users"],
                "transactionValidated": ["transactions"],
            },
            "views": {
                "transactions": ["view-a", "view-b"],
                "users": ["view-b", "view-c"],
            },
            "data_kinds": {
                "transactions": ["transactions"],
                "users": ["users"],
            },
        }
    )
