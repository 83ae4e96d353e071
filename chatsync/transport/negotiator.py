"""Transport negotiator — picks the reactive or the polling channel.

Detection rules, evaluated on every status report:

1. Reactive ready (even with an empty feed) -> REACTIVE, timer cancelled.
2. Reactive errored, or the detection timer fired -> POLLING once polling
   is ready; until then stay in DETECTING and wait for the next report.
3. REACTIVE and POLLING are terminal until an explicit reset().
4. When both are ready at the same time, REACTIVE wins.

The one extra edge is REACTIVE -> POLLING through fail_over(), used when a
send over the live connection fails for connectivity reasons.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable

from chatsync.transport.base import ChannelStatus

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_TIMEOUT = 3.0


class TransportState(str, Enum):
    DETECTING = "detecting"
    REACTIVE = "reactive"
    POLLING = "polling"


TransitionListener = Callable[[TransportState, TransportState], None]


class TransportNegotiator:
    """Owns the TransportState; nothing else mutates it."""

    def __init__(self, detection_timeout: float = DEFAULT_DETECTION_TIMEOUT) -> None:
        self.detection_timeout = detection_timeout
        self._state = TransportState.DETECTING
        self._statuses: dict[str, ChannelStatus] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._timed_out = False
        self._listeners: list[TransitionListener] = []
        self._reset_statuses()

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def timed_out(self) -> bool:
        """Whether the detection timer fired during the current cycle."""
        return self._timed_out

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    def status_of(self, channel: str) -> ChannelStatus:
        return self._statuses[channel]

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        """Start the detection timer. Must be called from a running event loop."""
        if self._state is not TransportState.DETECTING or self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.detection_timeout, self._on_timeout)
        logger.debug(f"Transport detection started ({self.detection_timeout}s window)")

    def report(self, channel: str, status: ChannelStatus) -> TransportState:
        """Record a channel's latest status and re-evaluate."""
        self._statuses[channel] = status
        return self.decide(self._statuses["reactive"], self._statuses["polling"])

    def decide(
        self,
        reactive_status: ChannelStatus,
        polling_status: ChannelStatus,
    ) -> TransportState:
        """Apply the detection rules to the given statuses."""
        if self._state is not TransportState.DETECTING:
            return self._state

        if reactive_status.is_ready:
            return self._transition(TransportState.REACTIVE, "reactive channel is ready")

        if reactive_status.is_errored or self._timed_out:
            reason = (
                f"reactive channel errored: {reactive_status.error}"
                if reactive_status.is_errored
                else "detection timed out"
            )
            if polling_status.is_ready:
                return self._transition(TransportState.POLLING, reason)
            logger.debug(f"{reason}; polling not ready yet, still detecting")

        return self._state

    def fail_over(self, reason: str = "") -> TransportState:
        """Move from REACTIVE to POLLING after a connectivity failure."""
        if self._state is TransportState.REACTIVE:
            self._transition(TransportState.POLLING, reason or "reactive send failed")
        return self._state

    def reset(self) -> None:
        """Re-enter detection. Only ever triggered by an external recovery action."""
        old = self._state
        self._cancel_timer()
        self._state = TransportState.DETECTING
        self._timed_out = False
        self._reset_statuses()
        logger.info(f"Transport reset from {old.value}, detecting again")
        self._notify(old, self._state)
        self.start()

    def close(self) -> None:
        self._cancel_timer()

    # ─── Internals ───────────────────────────────────────────────

    def _reset_statuses(self) -> None:
        self._statuses = {
            "reactive": ChannelStatus.loading(),
            "polling": ChannelStatus.loading(),
        }

    def _on_timeout(self) -> None:
        self._timer = None
        if self._state is not TransportState.DETECTING:
            return
        self._timed_out = True
        logger.info(f"Reactive channel did not settle within {self.detection_timeout}s")
        self.decide(self._statuses["reactive"], self._statuses["polling"])

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _transition(self, new: TransportState, reason: str) -> TransportState:
        old = self._state
        self._state = new
        self._cancel_timer()
        logger.info(f"Transport {old.value} -> {new.value} ({reason})")
        self._notify(old, new)
        return new

    def _notify(self, old: TransportState, new: TransportState) -> None:
        for listener in list(self._listeners):
            listener(old, new)
