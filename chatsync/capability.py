"""Capability probe — single-flight detection of attachment support.

The first caller issues one cheap request to the storage endpoint; every
caller arriving while it is in flight awaits the same task. The verdict is
cached for the session:

- success                       -> SUPPORTED, never probed again
- CapabilityUnsupportedError    -> UNSUPPORTED, raised immediately from now on
- anything else (timeout, etc.) -> state stays UNKNOWN, next call re-probes
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from chatsync.backend.base import ProbeEndpoint
from chatsync.errors import CapabilityUnsupportedError, TransportTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


class CapabilityState(str, Enum):
    UNKNOWN = "unknown"
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


class CapabilityProbe:
    """Owns the CapabilityState for attachment uploads."""

    def __init__(self, endpoint: ProbeEndpoint, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        self._endpoint = endpoint
        self.timeout = timeout
        self._state = CapabilityState.UNKNOWN
        self._unsupported_error: CapabilityUnsupportedError | None = None
        self._inflight: asyncio.Task | None = None
        self.probe_count = 0

    @property
    def state(self) -> CapabilityState:
        return self._state

    async def ensure_supported(self) -> CapabilityState:
        """Return SUPPORTED or raise; probes the backend at most once at a time."""
        if self._state is CapabilityState.SUPPORTED:
            return self._state
        if self._state is CapabilityState.UNSUPPORTED:
            raise self._unsupported_error or CapabilityUnsupportedError()

        if self._inflight is None:
            self._inflight = asyncio.create_task(self._probe())
            self._inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _probe(self) -> CapabilityState:
        self.probe_count += 1
        logger.info("Checking whether attachment storage is deployed")
        try:
            await asyncio.wait_for(self._endpoint.probe(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Attachment probe timed out after {self.timeout}s")
            raise TransportTimeoutError("attachment capability probe timed out") from None
        except CapabilityUnsupportedError as e:
            self._state = CapabilityState.UNSUPPORTED
            self._unsupported_error = e
            logger.info(f"Attachment storage not available: {e}")
            raise

        self._state = CapabilityState.SUPPORTED
        logger.info("Attachment storage detected")
        return self._state
