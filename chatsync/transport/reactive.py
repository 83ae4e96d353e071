"""Reactive channel — push-based live subscription to the feed."""

from __future__ import annotations

import asyncio
import logging

from chatsync.backend.base import MutationEndpoint, ReactiveEndpoint
from chatsync.errors import BackendError, ChatSyncError, ConnectivityError
from chatsync.feed.detector import ChangeDetector
from chatsync.feed.message import AttachmentRef, MessageDraft, OutgoingAttachment
from chatsync.transport.base import BaseChannel, ChannelStatus

logger = logging.getLogger(__name__)


class ReactiveChannel(BaseChannel):
    """Wraps a live subscription and reports each snapshot as a status.

    The push source re-parses every frame, so snapshots go through the same
    change detector as the polling path before being surfaced.
    """

    def __init__(
        self,
        endpoint: ReactiveEndpoint,
        mutations: MutationEndpoint,
        topic: str = "chat",
    ) -> None:
        super().__init__()
        self._endpoint = endpoint
        self._mutations = mutations
        self._topic = topic
        self._detector = ChangeDetector()
        self._task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return "reactive"

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._status = ChannelStatus.loading()
        self._detector.clear()
        self._task = asyncio.create_task(self._consume())
        logger.debug(f"Reactive subscription started for topic '{self._topic}'")

    async def _consume(self) -> None:
        """Pump snapshots from the subscription until it ends or fails."""
        try:
            async for snapshot in self._endpoint.subscribe(self._topic):
                if self._detector.accept(snapshot) or not self._status.is_ready:
                    self._emit(ChannelStatus.ready(self._detector.current))
        except ChatSyncError as e:
            logger.warning(f"Reactive subscription failed: {e}")
            self._emit(ChannelStatus.errored(e))
            return
        except Exception as e:
            logger.error(f"Reactive subscription delivered unusable data: {e!r}")
            self._emit(ChannelStatus.errored(BackendError(f"Unusable feed data: {e!r}")))
            return

        if self._running:
            logger.warning("Reactive subscription closed by the backend")
            self._emit(ChannelStatus.errored(ConnectivityError("Live subscription closed")))

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            if self._task is not asyncio.current_task():
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Reactive task ended with {e!r}")
            self._task = None
        await self._endpoint.unsubscribe()
        logger.debug("Reactive subscription stopped")

    async def send(self, draft: MessageDraft) -> None:
        """Submit through the live backend's mutation path."""
        await self._mutations.submit(draft)

    async def upload(self, attachment: OutgoingAttachment, uploader_id: str) -> AttachmentRef:
        """Upload an attachment to backend storage."""
        logger.info(f"Uploading attachment {attachment.file_name} ({attachment.size} bytes)")
        return await self._mutations.upload(attachment, uploader_id)

    async def delete(self, message_id: str, sender_id: str) -> None:
        await self._mutations.delete(message_id, sender_id)
