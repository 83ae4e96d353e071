"""Backend endpoint contracts consumed by the sync client.

Concrete adapters (HTTP, WebSocket, in-memory fakes in tests) implement
these. Error reporting is part of the contract:

- transient failures raise ``ConnectivityError`` (or ``TransportTimeoutError``)
- a missing optional feature raises ``CapabilityUnsupportedError``
- any other structured rejection raises ``BackendError``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from chatsync.errors import CapabilityUnsupportedError
from chatsync.feed.message import AttachmentRef, FeedSnapshot, MessageDraft, OutgoingAttachment


class ReactiveEndpoint(ABC):
    """Push-based live query over the feed."""

    @abstractmethod
    def subscribe(self, topic: str) -> AsyncIterator[FeedSnapshot]:
        """Yield a snapshot for every change of the feed.

        The first snapshot (possibly empty) signals readiness.
        """
        ...

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivery and release the underlying connection."""
        ...


class PullEndpoint(ABC):
    """One-shot feed query."""

    @abstractmethod
    async def request(self, topic: str) -> FeedSnapshot:
        """Fetch the current feed."""
        ...


class MutationEndpoint(ABC):
    """Write side of the backend."""

    @abstractmethod
    async def submit(self, draft: MessageDraft) -> None:
        """Store a new message."""
        ...

    async def upload(self, attachment: OutgoingAttachment, uploader_id: str) -> AttachmentRef:
        """Upload an attachment on behalf of ``uploader_id`` and return a storage reference.

        Endpoints without storage report the capability as missing.
        """
        raise CapabilityUnsupportedError("upload not implemented by this endpoint")

    async def delete(self, message_id: str, sender_id: str) -> None:
        """Soft-delete one of the sender's messages."""
        raise CapabilityUnsupportedError(
            "delete not implemented by this endpoint",
            user_message="Deleting messages is not available on this deployment.",
        )


class ProbeEndpoint(ABC):
    """Low-cost call that reveals whether attachment storage is deployed."""

    @abstractmethod
    async def probe(self) -> None:
        """Return normally if supported, raise otherwise."""
        ...
