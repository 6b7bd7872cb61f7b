"""Application state owned by one WorkoutManager, plus the calendar filter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from plantracker.schemas import CheckIn, HistoryEntry, Intensity, WorkoutDay, WorkoutFilters
from plantracker.undo import UndoStack


@dataclass
class AppState:
    workouts: List[WorkoutDay] = field(default_factory=list)
    check_ins: List[CheckIn] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)
    filters: WorkoutFilters = field(default_factory=WorkoutFilters)
    undo_stack: UndoStack = field(default_factory=UndoStack)
    selected_date: Optional[str] = None
    loading: bool = False
    error: Optional[str] = None

    @property
    def initialized(self) -> bool:
        return bool(self.workouts)

    def find_workout(self, workout_id: str) -> Optional[WorkoutDay]:
        for w in self.workouts:
            if w.id == workout_id:
                return w
        return None

    def replace_workout(self, workout: WorkoutDay) -> None:
        self.workouts = [workout if w.id == workout.id else w for w in self.workouts]

    def upsert_check_in(self, check_in: CheckIn) -> None:
        for i, c in enumerate(self.check_ins):
            if c.date == check_in.date:
                self.check_ins[i] = check_in
                return
        self.check_ins.append(check_in)


def filter_workouts(workouts: Iterable[WorkoutDay], filters: WorkoutFilters) -> List[WorkoutDay]:
    """Calendar view: rest placeholders hidden, then status/intensity/tag filters."""
    shown = [w for w in workouts if w.intensity != Intensity.REST]
    if filters.status is not None:
        shown = [w for w in shown if w.status == filters.status]
    if filters.intensity is not None:
        shown = [w for w in shown if w.intensity == filters.intensity]
    if filters.tag is not None:
        shown = [w for w in shown if filters.tag in w.tags]
    return shown
