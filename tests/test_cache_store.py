from __future__ import annotations

import asyncio

import pytest
from conftest import FakeGateway

from ledgersync.exceptions import UnknownCacheKindError
from ledgersync.models import Agency, Transaction, User
from ledgersync.state.kinds import CacheKindSpec, IndexSpec
from ledgersync.state.store import CacheStore


@pytest.mark.asyncio
async def test_first_read_fetches_and_second_read_is_served_from_cache(
    store: CacheStore, gateway: FakeGateway
) -> None:
    first = await store.get("transactions")
    second = await store.get("transactions")

    assert gateway.calls["transactions"] == 1
    assert first is second
    assert [t.id for t in first] == ["t1", "t2", "t3"]
    assert all(isinstance(t, Transaction) for t in first)


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_fetch(store: CacheStore, gateway: FakeGateway) -> None:
    gate = asyncio.Event()
    gateway.gates["transactions"] = gate

    tasks = [asyncio.create_task(store.get("transactions")) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert gateway.calls["transactions"] == 1
    assert results[0] is results[1] is results[2]


@pytest.mark.asyncio
async def test_fetch_completing_after_invalidation_is_not_cached(store: CacheStore, gateway: FakeGateway) -> None:
    gate = asyncio.Event()
    gateway.gates["transactions"] = gate

    stale_read = asyncio.create_task(store.get("transactions"))
    await asyncio.sleep(0)
    store.invalidate("transactions")
    gateway.tables["transactions"] = [{"id": "t9", "montant_total": 1}]
    gate.set()

    # The waiter still gets an answer, but the cache stays empty.
    await stale_read
    assert not store.is_populated("transactions")

    fresh = await store.get("transactions")
    assert [t.id for t in fresh] == ["t9"]
    assert store.is_populated("transactions")


@pytest.mark.asyncio
async def test_read_after_invalidation_during_fetch_starts_a_new_fetch(
    store: CacheStore, gateway: FakeGateway
) -> None:
    gate = asyncio.Event()
    gateway.gates["transactions"] = gate

    first = asyncio.create_task(store.get("transactions"))
    await asyncio.sleep(0)
    store.invalidate("transactions")
    second = asyncio.create_task(store.get("transactions"))
    await asyncio.sleep(0)
    gate.set()
    await asyncio.gather(first, second)

    assert gateway.calls["transactions"] == 2
    assert store.is_populated("transactions")


@pytest.mark.asyncio
async def test_invalidate_is_idempotent(store: CacheStore, gateway: FakeGateway) -> None:
    await store.get("transactions")
    epoch = store.epoch("transactions")

    store.invalidate("transactions")
    store.invalidate("transactions")

    assert not store.is_populated("transactions")
    assert store.epoch("transactions") == epoch + 2
    await store.get("transactions")
    assert gateway.calls["transactions"] == 2


def test_invalidate_never_populated_kind_is_a_no_op(store: CacheStore) -> None:
    store.invalidate("orders")
    assert not store.is_populated("orders")


@pytest.mark.asyncio
async def test_unknown_kind_is_rejected(store: CacheStore) -> None:
    with pytest.raises(UnknownCacheKindError) as excinfo:
        await store.get("ledgers")
    assert excinfo.value.kind == "ledgers"
    assert isinstance(excinfo.value, KeyError)

    with pytest.raises(UnknownCacheKindError):
        store.invalidate("ledgers")


@pytest.mark.asyncio
async def test_id_index_keys_match_record_ids(store: CacheStore) -> None:
    users = await store.get("users")
    by_id = await store.get_map("users")

    assert set(by_id) == {user.id for user in users}
    assert by_id["3"].name == "Admin"
    assert await store.get_by_id("users", 3) is by_id["3"]
    assert await store.get_by_id("users", "missing") is None


@pytest.mark.asyncio
async def test_index_is_rebuilt_after_invalidation(store: CacheStore, gateway: FakeGateway) -> None:
    before = await store.get_map("transactions")
    assert await store.get_map("transactions") is before

    store.invalidate("transactions")
    gateway.tables["transactions"] = [{"id": "t4"}]
    after = await store.get_map("transactions")

    assert list(after) == ["t4"]
    assert "t1" in before


@pytest.mark.asyncio
async def test_index_is_read_only(store: CacheStore) -> None:
    by_id = await store.get_map("transactions")
    with pytest.raises(TypeError):
        by_id["t1"] = None  # type: ignore[index]


@pytest.mark.asyncio
async def test_named_indices(store: CacheStore) -> None:
    active = await store.get_map("contracts", "active_by_partner")
    by_partner = await store.get_map("agencies", "by_partner")

    assert active["p1"].id == "c1"
    assert active["p2"].id == "c3"
    assert by_partner["p2"].name == "Agence Cocody"

    with pytest.raises(KeyError):
        await store.get_map("contracts", "by_colour")


@pytest.mark.asyncio
async def test_fetch_failure_caches_empty_collection(store: CacheStore, gateway: FakeGateway) -> None:
    gateway.failing.add("orders")

    assert await store.get("orders") == ()
    assert store.is_populated("orders")
    assert await store.get("orders") == ()
    assert gateway.calls["orders"] == 1


@pytest.mark.asyncio
async def test_invalid_rows_are_skipped(store: CacheStore, gateway: FakeGateway) -> None:
    gateway.tables["partners"] = [{"id": "p1", "name": "Orange"}, {"name": "no id"}]

    partners = await store.get("partners")

    assert [p.id for p in partners] == ["p1"]


@pytest.mark.asyncio
async def test_users_are_hydrated_with_their_agency(store: CacheStore) -> None:
    users = await store.get_map("users")

    assert isinstance(users["u1"], User)
    assert isinstance(users["u1"].agency, Agency)
    assert users["u1"].agency.solde_principal == 150000
    assert users["u2"].agency is not None and users["u2"].agency.id == "ag2"
    assert users["3"].agency is None


@pytest.mark.asyncio
async def test_invalidating_agencies_cascades_to_users(store: CacheStore, gateway: FakeGateway) -> None:
    await store.get("users")
    assert store.is_populated("agencies")

    store.invalidate("agencies")

    assert not store.is_populated("agencies")
    assert not store.is_populated("users")

    gateway.tables["agencies"][0] = {"id": "ag1", "name": "Agence Plateau", "solde_principal": 0}
    users = await store.get_map("users")
    assert users["u1"].agency is not None
    assert users["u1"].agency.solde_principal == 0


def test_unknown_dependency_is_rejected(gateway: FakeGateway) -> None:
    spec = CacheKindSpec(kind="users", table="users", model=User, depends_on=("teams",))
    with pytest.raises(UnknownCacheKindError):
        CacheStore(gateway, kinds={"users": spec})


@pytest.mark.asyncio
async def test_custom_kinds_and_indices(gateway: FakeGateway) -> None:
    spec = CacheKindSpec(
        kind="pending_transactions",
        table="transactions",
        model=Transaction,
        indices=(IndexSpec("by_agent", key=lambda t: t.agent_id),),
    )
    store = CacheStore(gateway, kinds={"pending_transactions": spec})

    by_agent = await store.get_map("pending_transactions", "by_agent")

    assert store.kinds == ("pending_transactions",)
    assert set(by_agent) == {"u1", "u2"}
    assert by_agent["u1"].id == "t2"


@pytest.mark.asyncio
async def test_select_filters_orders_and_limits(store: CacheStore) -> None:
    pending = await store.select("transactions", where={"statut": "en_attente"})
    assert [t.id for t in pending] == ["t1", "t3"]

    newest = await store.select("transactions", order_by="date", descending=True)
    assert [t.id for t in newest] == ["t2", "t1", "t3"]

    largest = await store.select(
        "transactions",
        where=lambda t: t.montant_total > 1000,
        order_by="montant_total",
        descending=True,
        limit=1,
    )
    assert [t.id for t in largest] == ["t2"]


@pytest.mark.asyncio
async def test_clear_drops_every_kind(store: CacheStore) -> None:
    await store.get("transactions")
    await store.get("users")

    store.clear()

    assert store.populated_kinds() == ()
