"""Message dispatcher — one send operation routed to whichever channel is active.

The dispatcher never writes to the feed store itself; a successful send
shows up in the next snapshot from the active channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chatsync.capability import CapabilityProbe
from chatsync.errors import (
    AttachmentValidationError,
    ConnectivityError,
    TransportNotReadyError,
    ValidationError,
)
from chatsync.feed.message import MessageDraft, OutgoingAttachment
from chatsync.transport.negotiator import TransportNegotiator, TransportState
from chatsync.transport.polling import PollingChannel
from chatsync.transport.reactive import ReactiveChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sender:
    """Opaque identity of the local user, supplied from outside."""

    id: str
    name: str


class MessageDispatcher:
    """Routes sends to the reactive or polling channel.

    Per-channel constraints:
    - reactive: attachments need the capability probe to pass first; a
      connectivity failure fails over to polling and retries text once
    - polling: attachments are rejected before any network call
    """

    def __init__(
        self,
        sender: Sender,
        negotiator: TransportNegotiator,
        reactive: ReactiveChannel,
        polling: PollingChannel,
        probe: CapabilityProbe,
    ) -> None:
        self.sender = sender
        self.negotiator = negotiator
        self.reactive = reactive
        self.polling = polling
        self.probe = probe

    async def send(self, content: str, attachment: OutgoingAttachment | None = None) -> None:
        """Send a message (and optional attachment) through the active channel."""
        draft = MessageDraft.text(self.sender.id, self.sender.name, content)
        state = self.negotiator.state

        if state is TransportState.DETECTING:
            raise TransportNotReadyError("send attempted while detecting transport")

        if state is TransportState.POLLING:
            if attachment is not None:
                raise AttachmentValidationError("attachments are not supported while polling")
            await self.polling.send(draft)
            logger.info("Message sent via polling channel")
            return

        await self._send_reactive(draft, attachment)

    async def _send_reactive(
        self,
        draft: MessageDraft,
        attachment: OutgoingAttachment | None,
    ) -> None:
        if attachment is not None:
            # Unsupported storage propagates as-is: no fallback for attachments
            await self.probe.ensure_supported()

        try:
            if attachment is not None:
                ref = await self.reactive.upload(attachment, self.sender.id)
                draft = draft.with_attachment(ref, attachment.kind)
            await self.reactive.send(draft)
        except ConnectivityError as e:
            logger.warning(f"Reactive send failed, falling back to polling: {e}")
            self.negotiator.fail_over(f"send failed: {e}")
            if attachment is not None:
                raise ConnectivityError(
                    str(e),
                    user_message=(
                        "Connection lost while sending the attachment. Attachments are "
                        "unavailable on the fallback connection; please send text only."
                    ),
                ) from e
            await self.polling.send(draft)
            logger.info("Message sent via polling channel after failover")
            return

        logger.info("Message sent via reactive channel" + (" with attachment" if attachment else ""))

    async def delete(self, message_id: str) -> None:
        """Soft-delete one of our own messages (live connection only)."""
        state = self.negotiator.state
        if state is TransportState.DETECTING:
            raise TransportNotReadyError("delete attempted while detecting transport")
        if state is TransportState.POLLING:
            raise ValidationError(
                "delete attempted while polling",
                user_message="Deleting messages is unavailable on this connection.",
            )
        await self.reactive.delete(message_id, self.sender.id)
        logger.info(f"Message {message_id} deleted")
