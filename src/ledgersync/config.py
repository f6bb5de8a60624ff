"""Client configuration for ledgersync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from ledgersync._constants import (
    FORCE_RECONNECT_DELAY_S,
    HEALTH_CHECK_INTERVAL_S,
    MQTT_DEFAULT_PORT,
    PROBE_TIMEOUT_S,
    RESUBSCRIBE_COOLDOWN_S,
    STALE_DATA_THRESHOLD_S,
    STATUS_CHECK_MIN_INTERVAL_S,
)
from ledgersync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class FeedConfig:
    """Connection settings for the MQTT live change feed.

    Each watched table is published on ``<topic_prefix>/<table>``.
    """

    host: str = ""
    port: int = MQTT_DEFAULT_PORT
    topic_prefix: str = "ledger/changes"
    client_id: str = ""
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    tls: bool = True


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Backend origin. The REST gateway reads ``{base_url}/rest/v1/<table>``.
    api_key : str or None
        Key sent as ``apikey`` and bearer token on gateway reads.
    probe_url : str or None
        URL for the lightweight connectivity probe. Defaults to
        ``{base_url}/favicon.ico``.
    realtime_enabled : bool
        Open change-feed subscriptions on start. ``False`` is the same as
        an operator ``disable_realtime()`` before start.
    monitoring_enabled : bool
        Start the health monitor on start.
    resubscribe_cooldown : float
        Seconds to wait between teardown and re-subscribe.
    force_reconnect_delay : float
        Pre-delay applied by ``force_reconnect`` before resubscribing.
    status_check_min_interval : float
        Minimum seconds between two sampled ``check_status`` runs.
    health_check_interval : float
        Period of the health monitor timer.
    stale_data_threshold : float
        Seconds without any data update before the health monitor forces a
        reconnect.
    probe_timeout : float
        Timeout for the connectivity probe request.
    routing_path : str or None
        Optional JSON file overriding the built-in routing tables.
    feed : FeedConfig
        MQTT change feed settings.
    """

    base_url: str
    api_key: str | None = None
    probe_url: str | None = None
    realtime_enabled: bool = True
    monitoring_enabled: bool = True
    resubscribe_cooldown: float = RESUBSCRIBE_COOLDOWN_S
    force_reconnect_delay: float = FORCE_RECONNECT_DELAY_S
    status_check_min_interval: float = STATUS_CHECK_MIN_INTERVAL_S
    health_check_interval: float = HEALTH_CHECK_INTERVAL_S
    stale_data_threshold: float = STALE_DATA_THRESHOLD_S
    probe_timeout: float = PROBE_TIMEOUT_S
    routing_path: str | None = None
    feed: FeedConfig = dataclasses.field(default_factory=FeedConfig)

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise SyncConfigError("base_url must be non-empty")
        for name in (
            "resubscribe_cooldown",
            "force_reconnect_delay",
            "status_check_min_interval",
            "probe_timeout",
        ):
            if getattr(self, name) < 0:
                raise SyncConfigError(f"{name} must be >= 0")
        if self.health_check_interval <= 0:
            raise SyncConfigError("health_check_interval must be > 0")
        if self.stale_data_threshold <= 0:
            raise SyncConfigError("stale_data_threshold must be > 0")

    @property
    def effective_probe_url(self) -> str:
        if self.probe_url:
            return self.probe_url
        return f"{self.base_url.rstrip('/')}/favicon.ico"

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``LEDGERSYNC_BASE_URL`` and optional ``LEDGERSYNC_*``
        variables. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        feed_kwargs: dict[str, Any] = {}
        _ENV_FEED_MAP = {
            "LEDGERSYNC_MQTT_HOST": "host",
            "LEDGERSYNC_MQTT_TOPIC_PREFIX": "topic_prefix",
            "LEDGERSYNC_MQTT_CLIENT_ID": "client_id",
            "LEDGERSYNC_MQTT_USERNAME": "username",
            "LEDGERSYNC_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_FEED_MAP.items():
            val = env.get(env_key)
            if val is not None:
                feed_kwargs[field_name] = val

        port_env = env.get("LEDGERSYNC_MQTT_PORT")
        if port_env is not None:
            feed_kwargs["port"] = int(port_env)
        keepalive_env = env.get("LEDGERSYNC_MQTT_KEEPALIVE")
        if keepalive_env is not None:
            feed_kwargs["keepalive"] = int(keepalive_env)
        if "LEDGERSYNC_MQTT_TLS" in env:
            feed_kwargs["tls"] = _env_bool(env.get("LEDGERSYNC_MQTT_TLS"), True)

        feed_overrides = overrides.pop("feed", None)
        if isinstance(feed_overrides, dict):
            feed_kwargs.update(feed_overrides)
        elif isinstance(feed_overrides, FeedConfig):
            feed_kwargs = dataclasses.asdict(feed_overrides)

        _ENV_CONFIG_MAP = {
            "LEDGERSYNC_BASE_URL": "base_url",
            "LEDGERSYNC_API_KEY": "api_key",
            "LEDGERSYNC_PROBE_URL": "probe_url",
            "LEDGERSYNC_ROUTING_PATH": "routing_path",
        }
        config_kwargs: dict[str, Any] = {"feed": FeedConfig(**feed_kwargs)}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "LEDGERSYNC_RESUBSCRIBE_COOLDOWN": "resubscribe_cooldown",
            "LEDGERSYNC_FORCE_RECONNECT_DELAY": "force_reconnect_delay",
            "LEDGERSYNC_STATUS_CHECK_MIN_INTERVAL": "status_check_min_interval",
            "LEDGERSYNC_HEALTH_CHECK_INTERVAL": "health_check_interval",
            "LEDGERSYNC_STALE_DATA_THRESHOLD": "stale_data_threshold",
            "LEDGERSYNC_PROBE_TIMEOUT": "probe_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = float(val)
                except ValueError as exc:
                    raise SyncConfigError(f"{env_key} must be a number, got {val!r}") from exc

        if "realtime_enabled" not in overrides:
            config_kwargs["realtime_enabled"] = _env_bool(env.get("LEDGERSYNC_REALTIME_ENABLED"), True)
        if "monitoring_enabled" not in overrides:
            config_kwargs["monitoring_enabled"] = _env_bool(env.get("LEDGERSYNC_MONITORING_ENABLED"), True)

        config_kwargs.update(overrides)
        if "base_url" not in config_kwargs:
            raise SyncConfigError("LEDGERSYNC_BASE_URL is not set")

        return cls(**config_kwargs)
