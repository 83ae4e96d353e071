"""In-memory endpoints and builders shared by the test modules."""

from __future__ import annotations

import asyncio

from chatsync.backend.base import MutationEndpoint, ProbeEndpoint, PullEndpoint, ReactiveEndpoint
from chatsync.feed.message import AttachmentRef, FeedSnapshot, Message, MessageDraft, OutgoingAttachment


def make_message(
    msg_id: str,
    content: str = "hello",
    created_at: float = 1.0,
    sender: str = "Alice",
) -> Message:
    return Message(
        id=msg_id,
        sender_id=f"user_{sender.lower()}",
        sender_name=sender,
        content=content,
        created_at=created_at,
    )


def make_snapshot(*ids: str) -> FeedSnapshot:
    return FeedSnapshot.of(
        [make_message(msg_id, content=f"msg {msg_id}", created_at=float(i)) for i, msg_id in enumerate(ids)]
    )


async def settle(seconds: float = 0.02) -> None:
    """Let scheduled tasks and callbacks run."""
    await asyncio.sleep(seconds)


class FakeReactive(ReactiveEndpoint):
    """Push source fed by the test through push()/fail()/close()."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.subscriptions = 0
        self.unsubscribed = 0

    def push(self, snapshot: FeedSnapshot) -> None:
        self._queue.put_nowait(snapshot)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def subscribe(self, topic: str):
        self.subscriptions += 1
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def unsubscribe(self) -> None:
        self.unsubscribed += 1


class FakePull(PullEndpoint):
    """Pull source returning whatever ``snapshot`` currently is."""

    def __init__(self, snapshot: FeedSnapshot | None = None) -> None:
        self.snapshot = snapshot if snapshot is not None else FeedSnapshot()
        self.error: Exception | None = None
        self.requests = 0

    async def request(self, topic: str) -> FeedSnapshot:
        self.requests += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


class FakeBackend(MutationEndpoint, ProbeEndpoint):
    """Records every mutation; errors and probe latency are configurable."""

    def __init__(self) -> None:
        self.submitted: list[MessageDraft] = []
        self.uploads: list[tuple[OutgoingAttachment, str]] = []
        self.deleted: list[tuple[str, str]] = []
        self.submit_error: Exception | None = None
        self.probe_error: Exception | None = None
        self.probe_delay = 0.0
        self.probe_calls = 0

    @property
    def network_calls(self) -> int:
        return len(self.submitted) + len(self.uploads) + len(self.deleted) + self.probe_calls

    async def submit(self, draft: MessageDraft) -> None:
        if self.submit_error is not None:
            error, self.submit_error = self.submit_error, None
            raise error
        self.submitted.append(draft)

    async def upload(self, attachment: OutgoingAttachment, uploader_id: str) -> AttachmentRef:
        self.uploads.append((attachment, uploader_id))
        return AttachmentRef(
            storage_id=f"storage_{len(self.uploads)}",
            file_name=attachment.file_name,
            mime_type=attachment.mime_type,
            size=attachment.size,
        )

    async def delete(self, message_id: str, sender_id: str) -> None:
        self.deleted.append((message_id, sender_id))

    async def probe(self) -> None:
        self.probe_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error is not None:
            raise self.probe_error


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
