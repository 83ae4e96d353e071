"""Polling channel — periodic pull with visibility-aware pause and staleness recovery.

Lifecycle:
  start()  initial fetch, then one fetch per interval
  hidden   interval ticks are skipped, no network calls
  visible  immediate fetch if the last success is older than the staleness
           threshold, otherwise the interval simply carries on
  stop()   loop, pending fetches and visibility listener are all released
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from chatsync.backend.base import MutationEndpoint, PullEndpoint
from chatsync.errors import AttachmentValidationError, BackendError, ChatSyncError
from chatsync.feed.detector import ChangeDetector
from chatsync.feed.message import FeedSnapshot, MessageDraft
from chatsync.transport.base import BaseChannel, ChannelStatus
from chatsync.transport.visibility import VisibilitySignal

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_STALENESS_THRESHOLD = 10.0


class PollingChannel(BaseChannel):
    """Pulls the feed on a fixed interval and reports changes only."""

    def __init__(
        self,
        endpoint: PullEndpoint,
        mutations: MutationEndpoint,
        topic: str = "chat",
        visibility: VisibilitySignal | None = None,
        interval: float = DEFAULT_INTERVAL,
        staleness_threshold: float = DEFAULT_STALENESS_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self._endpoint = endpoint
        self._mutations = mutations
        self._topic = topic
        self._visibility = visibility
        self.interval = interval
        self.staleness_threshold = staleness_threshold
        self._clock = clock
        self._detector = ChangeDetector()
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._last_success: float | None = None

    @property
    def name(self) -> str:
        return "polling"

    @property
    def hidden(self) -> bool:
        return self._visibility.hidden if self._visibility else False

    @property
    def last_success(self) -> float | None:
        """Clock reading of the last successful fetch."""
        return self._last_success

    def start(self, interval: float | None = None) -> None:
        if self._running:
            return
        if interval is not None:
            self.interval = interval
        self._running = True
        self._status = ChannelStatus.loading()
        self._detector.clear()
        self._last_success = None
        if self._visibility is not None:
            self._visibility.add_listener(self._on_visibility)
        self._task = asyncio.create_task(self._poll_loop())
        logger.debug(f"Polling started every {self.interval}s for topic '{self._topic}'")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._visibility is not None:
            self._visibility.remove_listener(self._on_visibility)

        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        current = asyncio.current_task()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Polling task ended with {e!r}")
        self._pending.clear()
        self._task = None
        logger.debug("Polling stopped")

    async def force_fetch(self) -> FeedSnapshot | None:
        """Fetch right now, outside the regular interval."""
        if not self._running:
            raise RuntimeError("Polling channel is stopped")
        return await self._fetch()

    async def send(self, draft: MessageDraft) -> None:
        """Submit a text draft; the pull side cannot carry attachments."""
        if draft.attachment is not None:
            raise AttachmentValidationError("attachment sent through polling channel")
        await self._mutations.submit(draft)

    # ─── Internals ───────────────────────────────────────────────

    async def _poll_loop(self) -> None:
        # Hidden at start: the first fetch comes from the stale-on-visible path
        if not self.hidden:
            await self._fetch()
        while True:
            await asyncio.sleep(self.interval)
            if self.hidden:
                continue
            await self._fetch()

    async def _fetch(self) -> FeedSnapshot | None:
        """One pull; failures are reported but never stop the loop."""
        try:
            snapshot = await self._endpoint.request(self._topic)
        except ChatSyncError as e:
            logger.warning(f"Polling fetch failed: {e}")
            self._emit(ChannelStatus.errored(e))
            return None
        except Exception as e:
            logger.error(f"Polling fetch returned unusable data: {e!r}")
            self._emit(ChannelStatus.errored(BackendError(f"Unusable feed data: {e!r}")))
            return None

        if not self._running:
            return None
        self._last_success = self._clock()
        if self._detector.accept(snapshot) or not self._status.is_ready:
            logger.debug(f"Polled feed changed: {len(snapshot)} messages")
            self._emit(ChannelStatus.ready(self._detector.current))
        return self._detector.current

    def _is_stale(self) -> bool:
        if self._last_success is None:
            return True
        return self._clock() - self._last_success > self.staleness_threshold

    def _on_visibility(self, hidden: bool) -> None:
        if not self._running or hidden:
            return
        if self._is_stale():
            logger.debug("Feed is stale after becoming visible, fetching now")
            task = asyncio.create_task(self._fetch())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
