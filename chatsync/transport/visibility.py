"""Visibility signal — foreground/background transitions of the hosting surface."""

from __future__ import annotations

from typing import Callable

VisibilityListener = Callable[[bool], None]


class VisibilitySignal:
    """Boundary-supplied event source; listeners get ``hidden`` on every transition."""

    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden
        self._listeners: list[VisibilityListener] = []

    @property
    def hidden(self) -> bool:
        return self._hidden

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: VisibilityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: VisibilityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_hidden(self, hidden: bool) -> None:
        """Report a new visibility; repeats of the current value are ignored."""
        if hidden == self._hidden:
            return
        self._hidden = hidden
        for listener in list(self._listeners):
            listener(hidden)
