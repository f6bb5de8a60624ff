"""Internal constants shared across the library."""

REST_PATH_PREFIX = "/rest/v1"
USER_AGENT = "ledgersync/1"
MQTT_DEFAULT_PORT = 8883

# ------------------------------------------------------------------
# Reconnection timings (seconds)
# ------------------------------------------------------------------

#: Wait between teardown and re-subscribe so a recovering backend is not
#: hit by a reconnect storm.
RESUBSCRIBE_COOLDOWN_S = 2.0

#: Absorbs bursts of near-simultaneous ``force_reconnect`` triggers.
FORCE_RECONNECT_DELAY_S = 0.5

#: Minimum gap between two expensive subscription status samples.
STATUS_CHECK_MIN_INTERVAL_S = 10.0

# ------------------------------------------------------------------
# Health monitor timings (seconds)
# ------------------------------------------------------------------

HEALTH_CHECK_INTERVAL_S = 60.0
STALE_DATA_THRESHOLD_S = 5 * 60.0
PROBE_TIMEOUT_S = 5.0

#: Bus topics that count as "data changed" for the staleness timer.
DEFAULT_ACTIVITY_TOPICS: tuple[str, ...] = (
    "dataUpdated",
    "transactionChanged",
    "agentRechargeRequestChanged",
)
