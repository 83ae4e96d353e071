"""Base channel interface and the status reports channels emit."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from chatsync.errors import ChatSyncError
from chatsync.feed.message import FeedSnapshot, MessageDraft

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass(frozen=True)
class ChannelStatus:
    """One status report from a channel.

    READY carries the snapshot (possibly empty), ERRORED carries the error.
    """

    state: ChannelState = ChannelState.LOADING
    snapshot: FeedSnapshot | None = None
    error: ChatSyncError | None = None

    @classmethod
    def loading(cls) -> ChannelStatus:
        return cls()

    @classmethod
    def ready(cls, snapshot: FeedSnapshot) -> ChannelStatus:
        return cls(state=ChannelState.READY, snapshot=snapshot)

    @classmethod
    def errored(cls, error: ChatSyncError) -> ChannelStatus:
        return cls(state=ChannelState.ERRORED, error=error)

    @property
    def is_ready(self) -> bool:
        return self.state is ChannelState.READY

    @property
    def is_errored(self) -> bool:
        return self.state is ChannelState.ERRORED


StatusListener = Callable[[str, ChannelStatus], None]


class BaseChannel(ABC):
    """Abstract base for the feed channels.

    Each channel must:
    1. Produce feed snapshots and report them as ChannelStatus updates
    2. Submit outgoing drafts through its own mutation path (send)
    """

    def __init__(self) -> None:
        self._status = ChannelStatus.loading()
        self._listeners: list[StatusListener] = []
        self._running = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the channel identifier ('reactive' or 'polling')."""
        ...

    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._running

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, status: ChannelStatus) -> None:
        """Record and broadcast a status. Stopped channels stay silent."""
        if not self._running:
            return
        self._status = status
        logger.debug(f"{self.name} channel -> {status.state.value}")
        for listener in list(self._listeners):
            listener(self.name, status)

    @abstractmethod
    def start(self) -> None:
        """Begin producing snapshots. Must be called from a running event loop."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop producing snapshots and release every timer and listener."""
        ...

    @abstractmethod
    async def send(self, draft: MessageDraft) -> None:
        """Submit a draft through this channel's mutation path."""
        ...
