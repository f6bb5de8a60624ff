"""Ingestion layer: turns raw change-feed payloads into normalized notifications."""

from ledgersync.ingestion.changes import build_change_notification

__all__ = ["build_change_notification"]
