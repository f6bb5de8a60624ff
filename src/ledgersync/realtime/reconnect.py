"""Reconnection state machine.

Replaces a bare ``is_reconnecting`` flag with an explicit Idle/Reconnecting
machine. Claiming a recovery slot (:meth:`ReconnectionController.begin`) is
synchronous, so a caller that checks and claims before its first ``await``
can never race a second caller into the same cycle.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from ledgersync._constants import STATUS_CHECK_MIN_INTERVAL_S
from ledgersync.exceptions import InvalidStateTransitionError

_logger = logging.getLogger(__name__)


class ReconnectPhase(StrEnum):
    IDLE = "idle"
    RECONNECTING = "reconnecting"


class ReconnectionState(BaseModel):
    """Point-in-time view of the controller."""

    model_config = ConfigDict(frozen=True)

    is_reconnecting: bool
    realtime_disabled: bool
    last_status_check_at: float | None


class ReconnectionController:
    """Guards recovery cycles and debounces expensive status samples."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        status_check_min_interval: float = STATUS_CHECK_MIN_INTERVAL_S,
        realtime_disabled: bool = False,
    ) -> None:
        self._clock = clock
        self._status_check_min_interval = status_check_min_interval
        self._phase = ReconnectPhase.IDLE
        self._ticket = 0
        self._realtime_disabled = realtime_disabled
        self._last_status_check_at: float | None = None

    @property
    def phase(self) -> ReconnectPhase:
        return self._phase

    @property
    def is_reconnecting(self) -> bool:
        return self._phase is ReconnectPhase.RECONNECTING

    @property
    def realtime_disabled(self) -> bool:
        return self._realtime_disabled

    @property
    def last_status_check_at(self) -> float | None:
        return self._last_status_check_at

    def snapshot(self) -> ReconnectionState:
        return ReconnectionState(
            is_reconnecting=self.is_reconnecting,
            realtime_disabled=self._realtime_disabled,
            last_status_check_at=self._last_status_check_at,
        )

    # ------------------------------------------------------------------
    # Recovery slot
    # ------------------------------------------------------------------

    def begin(self) -> int | None:
        """Claim the recovery slot.

        Returns a ticket to hand back to :meth:`finish`, or ``None`` when a
        recovery is already in flight.
        """
        if self._phase is ReconnectPhase.RECONNECTING:
            return None
        self._ticket += 1
        self._phase = ReconnectPhase.RECONNECTING
        return self._ticket

    def finish(self, ticket: int) -> None:
        """Release the slot claimed with *ticket*.

        A ticket superseded by :meth:`release` (emergency path) is ignored.
        """
        if ticket != self._ticket:
            _logger.debug("Ignoring finish for superseded reconnect ticket %d", ticket)
            return
        if self._phase is not ReconnectPhase.RECONNECTING:
            raise InvalidStateTransitionError(self._phase.value, ReconnectPhase.IDLE.value)
        self._phase = ReconnectPhase.IDLE

    def release(self) -> None:
        """Force the slot free, invalidating any outstanding ticket."""
        self._ticket += 1
        self._phase = ReconnectPhase.IDLE

    # ------------------------------------------------------------------
    # Operator override
    # ------------------------------------------------------------------

    def disable(self) -> None:
        self._realtime_disabled = True

    def enable(self) -> None:
        self._realtime_disabled = False

    # ------------------------------------------------------------------
    # Status-check debounce
    # ------------------------------------------------------------------

    def claim_status_check(self) -> bool:
        """Return True (and stamp the time) if a status sample may run now."""
        now = self._clock()
        last = self._last_status_check_at
        if last is not None and (now - last) < self._status_check_min_interval:
            return False
        self._last_status_check_at = now
        return True
