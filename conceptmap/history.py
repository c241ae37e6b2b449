"""
Undo/redo history built from graph snapshots.

- `past` holds snapshots taken before each recorded mutation (bounded,
  oldest evicted first)
- `future` holds snapshots of states that were undone
- Recording a new mutation discards the future; history never branches
"""

from collections import deque
from typing import Optional

from .models import GraphSnapshot


HISTORY_LIMIT = 120


class HistoryStack:
    """Bounded linear undo/redo stacks."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self._limit = limit
        self._past: deque[GraphSnapshot] = deque(maxlen=limit)
        self._future: deque[GraphSnapshot] = deque()  # index 0 is the next redo

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def past(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._future)

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    def record(self, snapshot: GraphSnapshot):
        """Push a pre-mutation snapshot and invalidate the redo stack."""
        self._past.append(snapshot)
        self._future.clear()

    def undo(self, current: GraphSnapshot) -> Optional[GraphSnapshot]:
        """
        Step back one state.

        `current` is a snapshot of the live graph; it becomes the next redo.
        Returns the snapshot to restore, or None when there is nothing to undo.
        """
        if not self._past:
            return None
        previous = self._past.pop()
        self._future.appendleft(current)
        return previous

    def redo(self, current: GraphSnapshot) -> Optional[GraphSnapshot]:
        """Step forward one state (None when there is nothing to redo)."""
        if not self._future:
            return None
        following = self._future.popleft()
        self._past.append(current)
        return following

    def clear(self):
        self._past.clear()
        self._future.clear()

    def __len__(self) -> int:
        return len(self._past)
