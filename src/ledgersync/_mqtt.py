"""MQTT-backed live change feed.

Every watched table is published on its own topic (``<prefix>/<table>``)
as a JSON change payload. paho-mqtt runs its network loop on a background
thread; every callback is handed to the asyncio loop with
``call_soon_threadsafe`` so handle state is only ever touched from the loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, cast

import paho.mqtt.client as mqtt

from ledgersync.config import FeedConfig
from ledgersync.exceptions import ReconnectionError, SubscriptionError, SyncConfigError
from ledgersync.realtime.feed import OnChange, OnStatus, SubscriptionState


@dataclass(eq=False)
class MqttSubscriptionHandle:
    """One table channel opened on the shared MQTT connection."""

    table: str
    topic: str
    on_change: OnChange
    on_status: OnStatus
    state: SubscriptionState = SubscriptionState.PENDING
    mid: int | None = field(default=None, repr=False)

    def set_state(self, state: SubscriptionState) -> None:
        if self.state == state:
            return
        self.state = state
        self.on_status(state)


def decode_change_payload(payload: bytes) -> dict[str, Any]:
    """Parse MQTT payload bytes into a JSON object."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Change payload is not a JSON object")
    return parsed


class MqttChangeFeed:
    """Threaded paho-mqtt change feed delivering notifications onto an asyncio loop."""

    def __init__(
        self,
        config: FeedConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not config.host:
            raise SyncConfigError("MQTT feed host is not configured")
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._connected = False
        self._handles: list[MqttSubscriptionHandle] = []

    def topic_for(self, table: str) -> str:
        return f"{self._config.topic_prefix.rstrip('/')}/{table}"

    def is_connected(self) -> bool:
        return self._client is not None and self._connected

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------

    async def subscribe(self, table: str, on_change: OnChange, on_status: OnStatus) -> MqttSubscriptionHandle:
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        if self._client is None:
            await loop.run_in_executor(None, self._start_client)

        handle = MqttSubscriptionHandle(
            table=table,
            topic=self.topic_for(table),
            on_change=on_change,
            on_status=on_status,
        )
        self._handles.append(handle)
        if self._connected:
            try:
                self._send_subscribe(handle)
            except SubscriptionError:
                self._handles.remove(handle)
                raise
        return handle

    async def unsubscribe(self, handle: MqttSubscriptionHandle) -> None:
        try:
            self._handles.remove(handle)
        except ValueError:
            return
        client = self._client
        still_used = any(h.topic == handle.topic for h in self._handles)
        if client is not None and self._connected and not still_used:
            rc, _mid = client.unsubscribe(handle.topic)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                self._logger.debug("MQTT unsubscribe topic=%s rc=%s", handle.topic, rc)
        handle.set_state(SubscriptionState.CLOSED)

    async def disconnect(self) -> None:
        """Drop the transport connection and close every remaining channel."""
        client = self._client
        self._client = None
        self._connected = False
        for handle in list(self._handles):
            handle.set_state(SubscriptionState.CLOSED)
        self._handles.clear()
        if client is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._stop_client, client)
        except Exception as exc:
            raise ReconnectionError(f"MQTT disconnect failed: {exc}") from exc

    # ------------------------------------------------------------------
    # paho plumbing
    # ------------------------------------------------------------------

    def _start_client(self) -> None:
        cfg = self._config
        client_id = cfg.client_id or f"ledgersync-{secrets.token_hex(6)}"
        self._logger.debug(
            "MQTT feed start requested host=%s port=%s prefix=%s client_id=%s",
            cfg.host,
            cfg.port,
            cfg.topic_prefix,
            client_id,
        )
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if cfg.username:
            client.username_pw_set(cfg.username, cfg.password)
        if cfg.tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message

        client.connect_async(cfg.host, cfg.port, keepalive=cfg.keepalive)
        client.loop_start()
        self._client = client

    def _stop_client(self, client: mqtt.Client) -> None:
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def _send_subscribe(self, handle: MqttSubscriptionHandle) -> None:
        client = self._client
        if client is None:
            return
        rc, mid = client.subscribe(handle.topic, qos=1)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            handle.set_state(SubscriptionState.ERRORED)
            raise SubscriptionError(f"MQTT subscribe failed rc={rc}", table=handle.table)
        handle.mid = mid

    def _dispatch(self, callback: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _on_connect(self, _c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        if reason_code.is_failure:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            self._dispatch(self._mark_all, SubscriptionState.ERRORED)
            return
        self._logger.debug("MQTT connected reason=%s", reason_code)
        self._dispatch(self._handle_connected)

    def _on_disconnect(self, _c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        self._logger.debug("MQTT disconnected: %s", reason_code)
        self._dispatch(self._handle_disconnected)

    def _on_subscribe(self, _c: mqtt.Client, _userdata: Any, mid: int, reason_codes: Any, _props: Any) -> None:
        failed = any(getattr(rc, "is_failure", False) for rc in reason_codes)
        self._dispatch(self._handle_suback, mid, failed)

    def _on_message(self, _c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            payload = decode_change_payload(msg.payload)
        except (UnicodeDecodeError, ValueError):
            self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
            return
        self._dispatch(self._deliver, msg.topic, payload)

    # Loop-thread handlers.

    def _handle_connected(self) -> None:
        self._connected = True
        for handle in list(self._handles):
            try:
                self._send_subscribe(handle)
            except SubscriptionError:
                self._logger.warning("Re-subscribing %s after connect failed", handle.table)

    def _handle_disconnected(self) -> None:
        if self._client is None:
            return
        self._connected = False
        self._mark_all(SubscriptionState.ERRORED)

    def _handle_suback(self, mid: int, failed: bool) -> None:
        for handle in self._handles:
            if handle.mid == mid:
                handle.set_state(SubscriptionState.ERRORED if failed else SubscriptionState.ACTIVE)

    def _mark_all(self, state: SubscriptionState) -> None:
        for handle in list(self._handles):
            handle.set_state(state)

    def _deliver(self, topic: str, payload: dict[str, Any]) -> None:
        for handle in list(self._handles):
            if handle.topic == topic:
                handle.on_change(payload)
