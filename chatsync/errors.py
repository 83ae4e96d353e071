"""Error taxonomy for the sync client.

Every error carries a ``user_message`` that is safe to show to the end user
and a ``retryable`` flag that tells the caller whether trying again can help.
"""

from __future__ import annotations


class ChatSyncError(Exception):
    """Base class for all chatsync errors."""

    retryable: bool = True
    default_user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: str | None = None) -> None:
        super().__init__(message or user_message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class ConnectivityError(ChatSyncError):
    """A channel could not reach the backend (network, 5xx, closed socket)."""

    default_user_message = "Unable to reach the chat backend - it may be temporarily unavailable."


class TransportTimeoutError(ConnectivityError):
    """A request, probe, or detection window ran out of time."""

    default_user_message = "The chat backend took too long to respond. Please try again."


class TransportNotReadyError(ChatSyncError):
    """No transport has been selected yet."""

    default_user_message = "Still connecting to the chat backend. Please wait a moment."


class BackendError(ChatSyncError):
    """The backend answered with a structured error that is not a capability gap."""

    retryable = False
    default_user_message = "The chat backend rejected the request."


class CapabilityUnsupportedError(ChatSyncError):
    """The backend explicitly does not provide an optional feature."""

    retryable = False
    default_user_message = (
        "File uploads are not available on this deployment. The backend needs to be "
        "updated with file storage functions. Contact your administrator."
    )


class ValidationError(ChatSyncError):
    """The request can never succeed on the current connection."""

    retryable = False
    default_user_message = "This action is not available on the current connection."


class AttachmentValidationError(ValidationError):
    """An attachment was sent over a transport that cannot carry it."""

    default_user_message = (
        "Attachments are unavailable on this connection. Please send text messages only."
    )
