"""Shared feed store — the canonical snapshot the UI renders from."""

from __future__ import annotations

import logging
from typing import Callable

from chatsync.feed.detector import ChangeDetector
from chatsync.feed.message import FeedSnapshot

logger = logging.getLogger(__name__)

FeedListener = Callable[[FeedSnapshot], None]


class FeedStore:
    """Holds the canonical snapshot and notifies subscribers on real changes.

    Subscribers never see two structurally identical snapshots in a row.
    """

    def __init__(self) -> None:
        self._detector = ChangeDetector()
        self._listeners: list[FeedListener] = []
        self._revision = 0

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._detector.current or FeedSnapshot()

    @property
    def revision(self) -> int:
        """Number of canonical snapshots published so far."""
        return self._revision

    @property
    def has_data(self) -> bool:
        return self._detector.current is not None

    def publish(self, snapshot: FeedSnapshot) -> bool:
        """Make ``snapshot`` canonical if it differs; returns True if it did."""
        if not self._detector.accept(snapshot):
            return False
        self._revision += 1
        for listener in list(self._listeners):
            listener(snapshot)
        return True

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
