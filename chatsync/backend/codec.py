"""Backend record codec — JSON records to feed types, and error classification.

Two record shapes are accepted:

  full     {_id, senderId, senderName, content, type, storageId | fileData,
            fileName, fileType, fileSize, createdAt | _creationTime}
  minimal  {_id, _creationTime, body, user}

Records flagged ``isDeleted`` are soft-deleted and never reach a snapshot.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from chatsync.errors import BackendError, CapabilityUnsupportedError, ChatSyncError
from chatsync.feed.message import AttachmentRef, FeedSnapshot, Message, MessageDraft, MessageKind

logger = logging.getLogger(__name__)

# Error text that means "this function/feature is not deployed"
_UNSUPPORTED_MARKERS = (
    "could not find public function",
    "could not find function",
    "not deployed",
    "not supported",
    "not available",
    "not implemented",
)


def classify_backend_error(
    operation: str,
    message: str,
    status_code: int | None = None,
) -> ChatSyncError:
    """Turn a structured backend error into the matching chatsync error."""
    lowered = message.lower()
    if status_code == 404 or any(marker in lowered for marker in _UNSUPPORTED_MARKERS):
        return CapabilityUnsupportedError(f"{operation}: {message}")
    return BackendError(
        f"{operation}: {message}",
        user_message=f"The chat backend rejected the request: {message}",
    )


def derive_sender_id(name: str) -> str:
    """Sender id for records that only carry a display name."""
    return "user_" + re.sub(r"\s+", "_", name.strip().lower())


def _attachment_from_record(record: dict[str, Any]) -> AttachmentRef | None:
    storage_id = record.get("storageId")
    inline_data = record.get("fileData")
    if not storage_id and not inline_data:
        return None
    return AttachmentRef(
        storage_id=str(storage_id) if storage_id else None,
        inline_data=None if storage_id else str(inline_data),
        file_name=str(record.get("fileName") or ""),
        mime_type=str(record.get("fileType") or ""),
        size=int(record.get("fileSize") or 0),
    )


def message_from_record(record: dict[str, Any]) -> Message:
    """Normalize one backend record into a Message."""
    try:
        msg_id = str(record["_id"])
        created_at = float(record.get("createdAt") or record.get("_creationTime") or 0)
        attachment = _attachment_from_record(record)
    except (KeyError, TypeError, ValueError) as e:
        raise BackendError(f"Malformed message record: {record!r}") from e

    sender_name = str(record.get("senderName") or record.get("user") or "")
    sender_id = str(record.get("senderId") or derive_sender_id(sender_name))
    content = str(record.get("content", record.get("body", "")) or "")

    try:
        kind = MessageKind(record.get("type") or "text")
    except ValueError:
        logger.warning(f"Unknown message type {record.get('type')!r} on {msg_id}, treating as text")
        kind = MessageKind.TEXT

    if attachment is not None and kind is MessageKind.TEXT:
        kind = MessageKind.IMAGE if attachment.mime_type.startswith("image/") else MessageKind.FILE
    elif attachment is None and kind is not MessageKind.TEXT:
        logger.warning(f"{kind.value} message {msg_id} has no attachment, treating as text")
        kind = MessageKind.TEXT

    return Message(
        id=msg_id,
        sender_id=sender_id,
        sender_name=sender_name,
        content=content,
        created_at=created_at,
        kind=kind,
        attachment=attachment,
    )


def snapshot_from_records(records: Any) -> FeedSnapshot:
    """Build an ordered, de-duplicated snapshot from a list of records."""
    if not isinstance(records, list):
        raise BackendError(f"Expected a list of messages, got {type(records).__name__}")

    messages: list[Message] = []
    seen: set[str] = set()
    for record in records:
        if not isinstance(record, dict):
            raise BackendError(f"Malformed message record: {record!r}")
        if record.get("isDeleted"):
            continue
        msg = message_from_record(record)
        if msg.id in seen:
            logger.warning(f"Duplicate message {msg.id} in feed, keeping the first copy")
            continue
        seen.add(msg.id)
        messages.append(msg)

    # sorted() is stable, so equal timestamps keep backend order
    messages = sorted(messages, key=lambda m: m.created_at)
    return FeedSnapshot.of(messages)


def draft_to_args(draft: MessageDraft) -> dict[str, Any]:
    """Arguments for the backend's sendMessage mutation."""
    args: dict[str, Any] = {
        "senderId": draft.sender_id,
        "content": draft.content,
        "type": draft.kind.value,
    }
    ref = draft.attachment
    if ref is not None:
        if ref.storage_id is not None:
            args["storageId"] = ref.storage_id
        else:
            args["fileData"] = ref.inline_data
        args["fileName"] = ref.file_name
        args["fileType"] = ref.mime_type
        args["fileSize"] = ref.size
    return args
