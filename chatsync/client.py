"""Sync client — wires channels, negotiator, store, probe and dispatcher together.

Status reports from both channels flow into the negotiator; READY snapshots
from whichever channel is active flow into the shared FeedStore. Transport
transitions start and stop the channels:

  DETECTING  both channels running, detection timer armed
  REACTIVE   polling stopped
  POLLING    reactive subscription stopped, polling (re)started
  reset()    both channels restarted, detection runs again
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from chatsync.backend.base import MutationEndpoint, ProbeEndpoint, PullEndpoint, ReactiveEndpoint
from chatsync.capability import CapabilityProbe, CapabilityState
from chatsync.config import ChatSyncConfig, TransportConfig
from chatsync.dispatcher import MessageDispatcher, Sender
from chatsync.errors import TransportTimeoutError
from chatsync.feed.message import FeedSnapshot, OutgoingAttachment
from chatsync.feed.store import FeedListener, FeedStore
from chatsync.transport.base import ChannelStatus
from chatsync.transport.negotiator import TransitionListener, TransportNegotiator, TransportState
from chatsync.transport.polling import PollingChannel
from chatsync.transport.reactive import ReactiveChannel
from chatsync.transport.visibility import VisibilitySignal

logger = logging.getLogger(__name__)


class ChatSyncClient:
    """The live feed of one topic, plus the send path into it."""

    def __init__(
        self,
        sender: Sender,
        reactive_endpoint: ReactiveEndpoint,
        pull_endpoint: PullEndpoint,
        mutations: MutationEndpoint,
        probe_endpoint: ProbeEndpoint,
        reactive_mutations: MutationEndpoint | None = None,
        topic: str = "chat",
        transport: TransportConfig | None = None,
        visibility: VisibilitySignal | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        transport = transport or TransportConfig()
        self.visibility = visibility or VisibilitySignal()
        self.store = FeedStore()
        self.negotiator = TransportNegotiator(detection_timeout=transport.detection_timeout)
        self.reactive = ReactiveChannel(reactive_endpoint, reactive_mutations or mutations, topic)
        self.polling = PollingChannel(
            pull_endpoint,
            mutations,
            topic,
            visibility=self.visibility,
            interval=transport.poll_interval,
            staleness_threshold=transport.staleness_threshold,
            clock=clock,
        )
        self.probe = CapabilityProbe(probe_endpoint, timeout=transport.probe_timeout)
        self.dispatcher = MessageDispatcher(
            sender, self.negotiator, self.reactive, self.polling, self.probe
        )

        self._decided = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._closers: list[Callable[[], Awaitable[None]]] = []
        self._started = False

        self.reactive.add_listener(self._on_status)
        self.polling.add_listener(self._on_status)
        self.negotiator.add_listener(self._on_transition)

    @classmethod
    def from_config(cls, config: ChatSyncConfig) -> ChatSyncClient:
        """Build a client talking HTTP + WebSocket to the configured backend.

        The live channel writes over its own socket; polling writes over HTTP.
        """
        from chatsync.backend.http import HttpBackend
        from chatsync.backend.websocket import WebSocketSubscription

        http = HttpBackend(
            config.backend.url,
            topic=config.backend.topic,
            timeout=config.backend.request_timeout,
        )
        live = WebSocketSubscription(config.backend.ws_url, topic=config.backend.topic, uploads=http)
        client = cls(
            sender=Sender(config.identity.sender_id, config.identity.sender_name),
            reactive_endpoint=live,
            pull_endpoint=http,
            mutations=http,
            probe_endpoint=http,
            reactive_mutations=live,
            topic=config.backend.topic,
            transport=config.transport,
        )
        client._closers.append(http.aclose)
        return client

    # ─── State ───────────────────────────────────────────────────

    @property
    def transport(self) -> TransportState:
        return self.negotiator.state

    @property
    def capability(self) -> CapabilityState:
        return self.probe.state

    @property
    def snapshot(self) -> FeedSnapshot:
        return self.store.snapshot

    def on_feed(self, listener: FeedListener) -> Callable[[], None]:
        """Call ``listener`` with every new canonical snapshot."""
        return self.store.subscribe(listener)

    def on_transport(self, listener: TransitionListener) -> None:
        self.negotiator.add_listener(listener)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.reactive.start()
        self.polling.start()
        self.negotiator.start()

    async def stop(self) -> None:
        """Stop both channels and release backend connections."""
        if self._started:
            self._started = False
            self.negotiator.close()
            await self.reactive.stop()
            await self.polling.stop()
            for task in list(self._tasks):
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
        for closer in self._closers:
            await closer()
        self._closers.clear()

    async def __aenter__(self) -> ChatSyncClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def reset(self) -> None:
        """Recovery action: forget the chosen transport and detect again."""
        self.negotiator.reset()

    async def wait_for_transport(self, timeout: float | None = None) -> TransportState:
        """Wait until detection has picked a transport."""
        if self.transport is not TransportState.DETECTING:
            return self.transport
        try:
            await asyncio.wait_for(self._decided.wait(), timeout)
        except asyncio.TimeoutError:
            raise TransportTimeoutError("no transport became available") from None
        return self.transport

    # ─── Operations ──────────────────────────────────────────────

    async def send(self, content: str, attachment: OutgoingAttachment | None = None) -> None:
        await self.dispatcher.send(content, attachment)

    async def delete(self, message_id: str) -> None:
        await self.dispatcher.delete(message_id)

    async def refresh(self) -> FeedSnapshot | None:
        """Force an out-of-cycle fetch when polling is the active transport."""
        if self.transport is TransportState.POLLING and self.polling.is_running:
            return await self.polling.force_fetch()
        return None

    # ─── Wiring ──────────────────────────────────────────────────

    def _on_status(self, channel: str, status: ChannelStatus) -> None:
        state = self.negotiator.report(channel, status)
        if status.is_ready and channel == state.value:
            self.store.publish(status.snapshot)

    def _on_transition(self, old: TransportState, new: TransportState) -> None:
        if new is TransportState.DETECTING:
            self._decided.clear()
            self._spawn(self._restart_channels())
            return

        self._decided.set()
        if new is TransportState.REACTIVE:
            self._spawn(self.polling.stop())
            active = self.reactive.status
        else:
            self._spawn(self.reactive.stop())
            if not self.polling.is_running:
                self.polling.start()
            active = self.polling.status

        if active.is_ready:
            self.store.publish(active.snapshot)

    async def _restart_channels(self) -> None:
        await self.reactive.stop()
        await self.polling.stop()
        self.reactive.start()
        self.polling.start()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Channel lifecycle task failed: {task.exception()}")
