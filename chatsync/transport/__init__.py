"""Feed channels and the negotiator that chooses between them."""

from chatsync.transport.base import BaseChannel, ChannelState, ChannelStatus
from chatsync.transport.negotiator import TransportNegotiator, TransportState
from chatsync.transport.polling import PollingChannel
from chatsync.transport.reactive import ReactiveChannel
from chatsync.transport.visibility import VisibilitySignal

__all__ = [
    "BaseChannel",
    "ChannelState",
    "ChannelStatus",
    "PollingChannel",
    "ReactiveChannel",
    "TransportNegotiator",
    "TransportState",
    "VisibilitySignal",
]
