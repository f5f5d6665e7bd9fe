"""Bounded, newest-first buffer of recent activity events."""

from collections import deque
from typing import Deque, Tuple

from webhook_activity.models import ActivityEvent

DEFAULT_HISTORY_SIZE = 100


class ActivityBuffer:
    """
    Fixed-capacity ring of activity events, newest first.

    Eviction is by arrival order only. Readers get tuple snapshots, so a
    snapshot never changes after it was taken.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE):
        if capacity < 1:
            raise ValueError(f"Buffer capacity must be positive, got: {capacity}")
        self._events: Deque[ActivityEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of retained events."""
        return self._events.maxlen

    def push(self, event: ActivityEvent) -> None:
        """Insert at the newest end; drops the oldest event when full."""
        self._events.appendleft(event)

    def clear(self) -> None:
        """Drop every event (session end)."""
        self._events.clear()

    def snapshot(self) -> Tuple[ActivityEvent, ...]:
        """Independent copy of the buffer, newest first."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)
