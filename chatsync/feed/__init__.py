"""Feed data model, change detection, and the shared store."""

from chatsync.feed.detector import Change, ChangeDetector, diff
from chatsync.feed.message import (
    AttachmentRef,
    FeedSnapshot,
    Message,
    MessageDraft,
    MessageKind,
    OutgoingAttachment,
)
from chatsync.feed.store import FeedStore

__all__ = [
    "AttachmentRef",
    "Change",
    "ChangeDetector",
    "FeedSnapshot",
    "FeedStore",
    "Message",
    "MessageDraft",
    "MessageKind",
    "OutgoingAttachment",
    "diff",
]
