from __future__ import annotations

import asyncio

import pytest

from ledgersync.bus import EventBus
from ledgersync.state.events import SHOW_TOAST, BusinessEvent, ShowToast, any_topic, business_topic


@pytest.mark.asyncio
async def test_handlers_run_in_subscription_order_and_are_awaited() -> None:
    bus = EventBus()
    order: list[str] = []

    async def _slow(_event: ShowToast) -> None:
        await asyncio.sleep(0.01)
        order.append("slow")

    bus.subscribe(SHOW_TOAST, _slow)
    bus.subscribe(SHOW_TOAST, lambda _event: order.append("sync"))

    await bus.publish(SHOW_TOAST, ShowToast(message="Saved"))

    assert order == ["slow", "sync"]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_delivery() -> None:
    bus = EventBus()
    received: list[ShowToast] = []

    def _broken(_event: ShowToast) -> None:
        raise RuntimeError("boom")

    bus.subscribe(SHOW_TOAST, _broken)
    bus.subscribe(SHOW_TOAST, received.append)

    await bus.publish(SHOW_TOAST, ShowToast(message="Saved"))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe_callable_detaches_handler() -> None:
    bus = EventBus()
    received: list[ShowToast] = []
    unsubscribe = bus.subscribe(SHOW_TOAST, received.append)

    unsubscribe()
    unsubscribe()
    await bus.publish(SHOW_TOAST, ShowToast(message="Saved"))

    assert received == []
    assert bus.handler_count(SHOW_TOAST) == 0


@pytest.mark.asyncio
async def test_any_topic_listener_receives_typed_payload() -> None:
    bus = EventBus()
    received: list[object] = []
    bus.subscribe(any_topic("rechargeApproved"), received.append)

    await bus.publish(business_topic("rechargeApproved"), BusinessEvent(name="rechargeApproved", detail={"id": "r1"}))

    assert received == [BusinessEvent(name="rechargeApproved", detail={"id": "r1"})]


@pytest.mark.asyncio
async def test_payload_type_mismatch_is_rejected() -> None:
    bus = EventBus()

    with pytest.raises(TypeError):
        await bus.publish(SHOW_TOAST, BusinessEvent(name="oops"))  # type: ignore[arg-type]
