"""Bounded history of reversible workout mutations (moves and status changes)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional

UndoKind = Literal["move", "status_change"]

MAX_UNDO = 10


@dataclass
class UndoAction:
    kind: UndoKind
    workout_id: str
    prior: Dict[str, Any]  # field values to restore
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "workout_id": self.workout_id,
            "prior": dict(self.prior),
            "timestamp": self.timestamp,
        }


class UndoStack:
    """Most recent action on top; pushing onto a full stack evicts the oldest."""

    def __init__(self, max_size: int = MAX_UNDO):
        self.max_size = max_size
        self._items: List[UndoAction] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[UndoAction]:
        """Newest first."""
        return reversed(self._items)

    def push(self, action: UndoAction) -> Optional[UndoAction]:
        """Push action and return the entry evicted to make room, if any."""
        self._items.append(action)
        if len(self._items) > self.max_size:
            return self._items.pop(0)
        return None

    def pop(self) -> Optional[UndoAction]:
        return self._items.pop() if self._items else None

    def peek(self) -> Optional[UndoAction]:
        return self._items[-1] if self._items else None

    def rollback(self, action: UndoAction, evicted: Optional[UndoAction] = None) -> None:
        """Take back a push whose mutation failed, restoring whatever it evicted."""
        self._items = [a for a in self._items if a is not action]
        if evicted is not None:
            self._items.insert(0, evicted)

    def drop_workout(self, workout_id: str) -> None:
        self._items = [a for a in self._items if a.workout_id != workout_id]

    def clear(self) -> None:
        self._items.clear()
