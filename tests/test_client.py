from __future__ import annotations

import asyncio

import pytest
from conftest import FakeFeed, FakeGateway, FakeProbe

from ledgersync.client import SyncClient
from ledgersync.config import SyncConfig
from ledgersync.exceptions import SyncConfigError, SyncError
from ledgersync.routing import default_routing


def _config(**overrides: object) -> SyncConfig:
    values: dict[str, object] = {
        "base_url": "https://ops.example.com",
        "resubscribe_cooldown": 0.0,
        "force_reconnect_delay": 0.0,
        "health_check_interval": 3600.0,
    }
    values.update(overrides)
    return SyncConfig(**values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_client_opens_channels_and_serves_reads(gateway: FakeGateway, feed: FakeFeed) -> None:
    async with SyncClient(_config(), gateway=gateway, feed=feed, probe=FakeProbe()) as client:
        assert sorted(feed.open_tables()) == sorted(default_routing().tables)
        assert client.monitor.is_monitoring

        transactions = await client.get("transactions")
        user = await client.get_by_id("users", "u1")
        pending = await client.select("transactions", where={"statut": "en_attente"})

        assert len(transactions) == 3
        assert user is not None and user.agency is not None
        assert [t.id for t in pending] == ["t1", "t3"]

    assert feed.open_tables() == []
    assert feed.disconnects == 1
    assert not client.monitor.is_monitoring
    assert client.registry.view_ids == ()


@pytest.mark.asyncio
async def test_backend_change_refreshes_registered_views_with_fresh_data(
    gateway: FakeGateway, feed: FakeFeed
) -> None:
    async with SyncClient(_config(monitoring_enabled=False), gateway=gateway, feed=feed) as client:
        seen: list[list[str]] = []
        refreshed = asyncio.Event()

        class _ValidationQueue:
            async def refresh(self) -> None:
                pending = await client.select("transactions", where={"statut": "en_attente"})
                seen.append([t.id for t in pending])
                refreshed.set()

        client.register("admin-transaction-validation", _ValidationQueue())
        await client.get("transactions")

        gateway.tables["transactions"][0] = {"id": "t1", "statut": "validee"}
        feed.emit("transactions", {"eventType": "UPDATE", "new": {"id": "t1", "statut": "validee"}})
        await asyncio.wait_for(refreshed.wait(), timeout=1.0)

        assert seen == [["t3"]]
        assert gateway.calls["transactions"] == 2


@pytest.mark.asyncio
async def test_business_event_refreshes_views(gateway: FakeGateway, feed: FakeFeed) -> None:
    async with SyncClient(_config(monitoring_enabled=False), gateway=gateway, feed=feed) as client:
        refreshed: list[str] = []

        class _History:
            async def refresh(self) -> None:
                refreshed.append("agent-recharge-history")

        client.register("agent-recharge-history", _History())
        await client.publish_business_event("rechargeApproved", requestId="r1")

        assert refreshed == ["agent-recharge-history"]


@pytest.mark.asyncio
async def test_manual_refresh_invalidates_then_refreshes(gateway: FakeGateway, feed: FakeFeed) -> None:
    async with SyncClient(_config(monitoring_enabled=False), gateway=gateway, feed=feed) as client:
        counts: list[int] = []

        class _AllTransactions:
            async def refresh(self) -> None:
                await client.get("transactions")
                counts.append(gateway.calls["transactions"])

        client.register("all-transactions", _AllTransactions())
        await client.get("transactions")

        errors = await client.refresh_data_kinds(["transactions"])

        assert errors == []
        assert counts == [2]


@pytest.mark.asyncio
async def test_realtime_disabled_in_config_opens_nothing(gateway: FakeGateway, feed: FakeFeed) -> None:
    config = _config(realtime_enabled=False, monitoring_enabled=False)
    async with SyncClient(config, gateway=gateway, feed=feed) as client:
        assert feed.subscribe_calls == []

        await client.enable_realtime()
        assert len(feed.open_tables()) == len(default_routing().tables)

        await client.disable_realtime()
        assert feed.open_tables() == []


@pytest.mark.asyncio
async def test_emergency_cleanup_through_client(gateway: FakeGateway, feed: FakeFeed) -> None:
    async with SyncClient(_config(monitoring_enabled=False), gateway=gateway, feed=feed) as client:
        await client.get("transactions")

        await client.emergency_cleanup()

        assert client.store.populated_kinds() == ()
        assert client.controller.realtime_disabled
        status = await client.check_status()
        assert not status.reconnect_forced


@pytest.mark.asyncio
async def test_missing_feed_configuration(gateway: FakeGateway) -> None:
    with pytest.raises(SyncConfigError):
        async with SyncClient(_config(monitoring_enabled=False), gateway=gateway):
            pass


def test_services_require_context(gateway: FakeGateway) -> None:
    client = SyncClient(_config(), gateway=gateway)

    with pytest.raises(SyncError):
        _ = client.store
