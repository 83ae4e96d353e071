"""Feed data model — messages, attachments, drafts, and ordered snapshots.

Every channel normalizes backend records into these types before anything
else in the client looks at them.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Sequence


class MessageKind(str, Enum):
    """What a message carries."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


@dataclass(frozen=True)
class AttachmentRef:
    """Reference to an attachment: a storage handle or an inline payload, never both."""

    storage_id: str | None = None
    inline_data: str | None = None     # Base64-encoded payload
    file_name: str = ""
    mime_type: str = ""
    size: int = 0

    def __post_init__(self) -> None:
        if (self.storage_id is None) == (self.inline_data is None):
            raise ValueError("AttachmentRef needs exactly one of storage_id or inline_data")

    @property
    def is_inline(self) -> bool:
        return self.inline_data is not None


@dataclass(frozen=True)
class Message:
    """A single feed entry as the backend reports it."""

    id: str
    sender_id: str
    sender_name: str
    content: str
    created_at: float                               # Logical ordering timestamp
    kind: MessageKind = MessageKind.TEXT
    attachment: AttachmentRef | None = None

    def __post_init__(self) -> None:
        """Enforce kind/attachment consistency."""
        if self.kind is MessageKind.TEXT and self.attachment is not None:
            raise ValueError(f"Text message {self.id} must not carry an attachment")
        if self.kind is not MessageKind.TEXT and self.attachment is None:
            raise ValueError(f"{self.kind.value} message {self.id} is missing its attachment")

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None

    def identity(self) -> tuple[str, str, str, float]:
        """The fields that decide whether two snapshots differ."""
        return (self.id, self.content, self.sender_name, self.created_at)


@dataclass(frozen=True)
class FeedSnapshot:
    """An ordered, oldest-first view of the feed.

    Ordering by ``created_at`` is non-decreasing and identifiers are unique.
    An empty snapshot is a perfectly valid ready state.
    """

    messages: tuple[Message, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        previous: float | None = None
        for msg in self.messages:
            if msg.id in seen:
                raise ValueError(f"Duplicate message id in snapshot: {msg.id}")
            if previous is not None and msg.created_at < previous:
                raise ValueError(f"Snapshot out of order at message {msg.id}")
            seen.add(msg.id)
            previous = msg.created_at

    @classmethod
    def of(cls, messages: Sequence[Message]) -> FeedSnapshot:
        return cls(tuple(messages))

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __getitem__(self, index: int) -> Message:
        return self.messages[index]

    @property
    def is_empty(self) -> bool:
        return not self.messages

    @property
    def latest(self) -> Message | None:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True)
class OutgoingAttachment:
    """A file the user wants to send, before it has been uploaded."""

    file_name: str
    mime_type: str
    data: bytes = field(repr=False, default=b"")

    @classmethod
    def from_path(cls, path: str | Path) -> OutgoingAttachment:
        """Read a local file into an attachment, guessing its MIME type."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            file_name=path.name,
            mime_type=mime_type or "application/octet-stream",
            data=path.read_bytes(),
        )

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def kind(self) -> MessageKind:
        return MessageKind.IMAGE if self.mime_type.startswith("image/") else MessageKind.FILE


@dataclass(frozen=True)
class MessageDraft:
    """A message on its way to the mutation endpoint."""

    sender_id: str
    sender_name: str
    content: str
    kind: MessageKind = MessageKind.TEXT
    attachment: AttachmentRef | None = None

    @classmethod
    def text(cls, sender_id: str, sender_name: str, content: str) -> MessageDraft:
        return cls(sender_id=sender_id, sender_name=sender_name, content=content)

    def with_attachment(self, ref: AttachmentRef, kind: MessageKind) -> MessageDraft:
        """Return a copy carrying an uploaded attachment.

        Empty text gets a short "Shared image: name.png" caption.
        """
        content = self.content or f"Shared {kind.value}: {ref.file_name}"
        return MessageDraft(
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            content=content,
            kind=kind,
            attachment=ref,
        )
