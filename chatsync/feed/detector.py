"""Change detection between feed snapshots.

Polled data is usually identical to what is already on screen. Pushing an
identical snapshot to the store would re-render the feed for nothing, so
every snapshot is compared structurally before it is allowed through.
"""

from __future__ import annotations

import logging
from enum import Enum

from chatsync.feed.message import FeedSnapshot

logger = logging.getLogger(__name__)


class Change(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


def diff(previous: FeedSnapshot | None, latest: FeedSnapshot) -> Change:
    """Compare two snapshots by (id, content, sender_name, created_at) per index.

    Reordering, insertion, deletion, or mutating any of those fields is a
    change. A missing previous snapshot always counts as changed.
    """
    if previous is None:
        return Change.CHANGED
    if previous is latest:
        return Change.UNCHANGED
    if len(previous) != len(latest):
        return Change.CHANGED
    for old, new in zip(previous, latest):
        if old.identity() != new.identity():
            return Change.CHANGED
    return Change.UNCHANGED


class ChangeDetector:
    """Keeps the last accepted snapshot and filters out structural repeats."""

    def __init__(self) -> None:
        self._current: FeedSnapshot | None = None

    @property
    def current(self) -> FeedSnapshot | None:
        return self._current

    def accept(self, snapshot: FeedSnapshot) -> bool:
        """Adopt ``snapshot`` if it differs from the current one.

        Returns True when it became the new current snapshot. On an unchanged
        verdict the previous reference is kept.
        """
        if diff(self._current, snapshot) is Change.UNCHANGED:
            return False
        self._current = snapshot
        logger.debug(f"Snapshot changed: {len(snapshot)} messages")
        return True

    def clear(self) -> None:
        self._current = None
