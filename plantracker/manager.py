# manager.py
# =============================================================================
# Workout State Manager: the only code that mutates the workout and check-in
# collections. Every mutation persists first and touches memory only after
# the backend call returned; moves and status changes leave an undo record
# that is taken back again if the backend call fails.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

from plantracker import exports, stats
from plantracker.errors import (
    ConflictError,
    NotFoundError,
    PlanAlreadyInitializedError,
    PlanTrackerError,
    TransientIOError,
)
from plantracker.persistence import HISTORY_LIMIT, WORKOUT_MUTABLE_FIELDS, Backend
from plantracker.plan_template import PLAN_START, generate_plan
from plantracker.schemas import (
    CheckIn,
    CheckInIn,
    DistanceSummary,
    HistoryEntryIn,
    OverallStats,
    WeeklyStats,
    WorkoutDay,
    WorkoutDayIn,
    WorkoutEdit,
    WorkoutFilters,
    WorkoutStatus,
    utcnow_iso,
    validate_date_str,
)
from plantracker.state import AppState, filter_workouts
from plantracker.undo import UndoAction

log = logging.getLogger(__name__)

# Planned targets only change when the plan is regenerated
UPDATABLE_FIELDS = WORKOUT_MUTABLE_FIELDS - {"planned_distance_km", "planned_duration_min"}


class WorkoutManager:
    def __init__(self, backend: Backend, plan_start: Union[date, str] = PLAN_START,
                 state: Optional[AppState] = None):
        self.backend = backend
        self.plan_start = plan_start
        self.state = state or AppState()
        self._lock = asyncio.Lock()

    @property
    def workouts(self) -> List[WorkoutDay]:
        return self.state.workouts

    @property
    def check_ins(self) -> List[CheckIn]:
        return self.state.check_ins

    def get_workout(self, workout_id: str) -> WorkoutDay:
        workout = self.state.find_workout(workout_id)
        if workout is None:
            raise NotFoundError(f"Workout {workout_id} not found")
        return workout

    @asynccontextmanager
    async def _mutation(self, label: str) -> AsyncIterator[None]:
        async with self._lock:
            try:
                yield
            except PlanTrackerError as e:
                log.error(f"Failed to {label}: {e}")
                self.state.error = str(e) if isinstance(e, (ConflictError, NotFoundError)) \
                    else f"Failed to {label}"
                raise
            self.state.error = None

    async def _record(self, entry: HistoryEntryIn) -> None:
        # History is an audit trail; the mutation itself is already persisted
        try:
            saved = await self.backend.history.create(entry)
        except TransientIOError as e:
            log.warning(f"Could not record history for workout {entry.workout_id}: {e}")
            return
        self.state.history = [saved] + self.state.history[: HISTORY_LIMIT - 1]

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------
    async def load_all(self) -> Tuple[List[WorkoutDay], List[CheckIn]]:
        """Replace both collections from the backend.

        On failure the previous collections stay and state.error is set.
        """
        self.state.loading = True
        self.state.error = None
        try:
            workouts = await self.backend.workouts.get_all()
            check_ins = await self.backend.check_ins.get_all()
        except TransientIOError as e:
            log.error(f"Failed to load workouts: {e}")
            self.state.error = "Failed to load workouts"
        else:
            self.state.workouts = workouts
            self.state.check_ins = check_ins
        finally:
            self.state.loading = False
        return self.state.workouts, self.state.check_ins

    async def load_check_ins(self) -> List[CheckIn]:
        try:
            self.state.check_ins = await self.backend.check_ins.get_all()
        except TransientIOError as e:
            log.error(f"Failed to load check-ins: {e}")
            self.state.error = "Failed to load check-ins"
        return self.state.check_ins

    async def load_history(self) -> None:
        try:
            self.state.history = await self.backend.history.get_all()
        except TransientIOError as e:
            log.error(f"Failed to load history: {e}")
            self.state.error = "Failed to load history"

    # -------------------------------------------------------------------------
    # Plan lifecycle
    # -------------------------------------------------------------------------
    async def initialize_plan(self) -> List[WorkoutDay]:
        async with self._mutation("initialize plan"):
            if self.state.workouts or await self.backend.workouts.count() > 0:
                raise PlanAlreadyInitializedError("Plan already initialized; reset it first")
            created = await self.backend.workouts.create_many(generate_plan(self.plan_start))
            self.state.workouts = created
            self.state.undo_stack.clear()
            log.info(f"Initialized plan with {len(created)} entries from {self.plan_start}")
            return created

    async def reset_plan(self) -> None:
        async with self._mutation("reset plan"):
            await self.backend.workouts.delete_all()
            self.state.workouts = []
            self.state.undo_stack.clear()
            log.info("Plan reset: all workouts deleted")

    # -------------------------------------------------------------------------
    # Workout mutations
    # -------------------------------------------------------------------------
    async def create_workout(self, workout: WorkoutDayIn) -> WorkoutDay:
        """Ad-hoc activity. Several activities may share a date on this path."""
        async with self._mutation("create workout"):
            created = await self.backend.workouts.create(workout)
            self.state.workouts = self.state.workouts + [created]
            return created

    async def _update(self, workout_id: str, fields: Dict[str, Any]) -> Tuple[WorkoutDay, WorkoutDay]:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update workout fields: {sorted(unknown)}")
        before = self.get_workout(workout_id)
        after = await self.backend.workouts.update(workout_id, fields)
        self.state.replace_workout(after)
        return before, after

    async def update_workout(self, workout_id: str,
                             fields: Union[WorkoutEdit, Dict[str, Any]]) -> WorkoutDay:
        if isinstance(fields, WorkoutEdit):
            fields = fields.model_dump(exclude_unset=True)
        async with self._mutation("update workout"):
            before, after = await self._update(workout_id, fields)
            await self._record(HistoryEntryIn(
                workout_id=workout_id, action="edited",
                from_date=before.date, to_date=after.date,
                from_status=before.status, to_status=after.status,
                details=", ".join(sorted(fields)) or None,
            ))
            return after

    async def move_workout(self, workout_id: str, new_date: str) -> WorkoutDay:
        new_date = validate_date_str(new_date)
        async with self._mutation("move workout"):
            workout = self.get_workout(workout_id)
            if new_date == workout.date:
                return workout
            action = UndoAction("move", workout_id, {
                "date": workout.date,
                "status": WorkoutStatus(workout.status).value,
                "moved_from_date": workout.moved_from_date,
                "completed_at": workout.completed_at,
            })
            evicted = self.state.undo_stack.push(action)
            try:
                blocking = [
                    w for w in self.state.workouts
                    if w.date == new_date and w.id != workout_id and not w.is_rest
                ]
                if blocking:
                    raise ConflictError(f"There's already a workout scheduled for {new_date}", date=new_date)
                moved = await self.backend.workouts.move_workout(workout_id, new_date, workout.date)
            except Exception:
                self.state.undo_stack.rollback(action, evicted)
                log.warning(f"Discarded undo record for failed move of workout {workout_id}")
                raise

            # The backend dropped any rest placeholder on the target date
            if not workout.is_rest:
                self.state.workouts = [
                    w for w in self.state.workouts
                    if w.id == workout_id or not (w.date == new_date and w.is_rest)
                ]
            self.state.replace_workout(moved)
            await self._record(HistoryEntryIn(
                workout_id=workout_id, action="moved",
                from_date=workout.date, to_date=new_date,
                from_status=workout.status, to_status=moved.status,
            ))
            return moved

    async def mark_status(self, workout_id: str, status: Union[WorkoutStatus, str]) -> WorkoutDay:
        """Set status. completed_at is stamped on completion and cleared on any other status."""
        status = WorkoutStatus(status)
        async with self._mutation("update status"):
            workout = self.get_workout(workout_id)
            action = UndoAction("status_change", workout_id, {
                "status": WorkoutStatus(workout.status).value,
                "completed_at": workout.completed_at,
            })
            if status == WorkoutStatus.COMPLETED:
                already = workout.status == WorkoutStatus.COMPLETED and workout.completed_at
                completed_at = workout.completed_at if already else utcnow_iso()
            else:
                completed_at = None

            evicted = self.state.undo_stack.push(action)
            try:
                updated = await self.backend.workouts.update(
                    workout_id, {"status": status, "completed_at": completed_at}
                )
            except Exception:
                self.state.undo_stack.rollback(action, evicted)
                log.warning(f"Discarded undo record for failed status change of workout {workout_id}")
                raise

            self.state.replace_workout(updated)
            await self._record(HistoryEntryIn(
                workout_id=workout_id, action="status_changed",
                from_date=workout.date, to_date=updated.date,
                from_status=workout.status, to_status=status,
            ))
            return updated

    async def delete_workout(self, workout_id: str) -> None:
        async with self._mutation("delete workout"):
            self.get_workout(workout_id)
            await self.backend.workouts.delete(workout_id)
            self.state.workouts = [w for w in self.state.workouts if w.id != workout_id]
            self.state.undo_stack.drop_workout(workout_id)

    async def undo(self) -> Optional[UndoAction]:
        """Re-apply the prior values of the latest undo record.

        The record is consumed whether or not the re-apply succeeds. Empty stack is a no-op.
        """
        async with self._mutation("undo"):
            action = self.state.undo_stack.pop()
            if action is None:
                return None
            before, after = await self._update(action.workout_id, dict(action.prior))
            await self._record(HistoryEntryIn(
                workout_id=action.workout_id,
                action="moved" if action.kind == "move" else "status_changed",
                from_date=before.date, to_date=after.date,
                from_status=before.status, to_status=after.status,
                details="undo",
            ))
            return action

    # -------------------------------------------------------------------------
    # Check-ins
    # -------------------------------------------------------------------------
    async def save_check_in(self, check_in: CheckInIn) -> CheckIn:
        async with self._mutation("save check-in"):
            saved = await self.backend.check_ins.upsert(check_in)
            self.state.upsert_check_in(saved)
            return saved

    async def delete_check_in(self, check_in_id: str) -> None:
        async with self._mutation("delete check-in"):
            await self.backend.check_ins.delete(check_in_id)
            self.state.check_ins = [c for c in self.state.check_ins if c.id != check_in_id]

    def check_in_for(self, day: str) -> Optional[CheckIn]:
        for c in self.state.check_ins:
            if c.date == day:
                return c
        return None

    # -------------------------------------------------------------------------
    # Calendar view
    # -------------------------------------------------------------------------
    def set_filters(self, filters: WorkoutFilters) -> None:
        self.state.filters = filters

    def visible_workouts(self, filters: Optional[WorkoutFilters] = None) -> List[WorkoutDay]:
        return filter_workouts(self.state.workouts, filters or self.state.filters)

    def open_for_date(self, day: str) -> Dict[str, Any]:
        day = validate_date_str(day)
        self.state.selected_date = day
        return {
            "date": day,
            "workouts": [w for w in self.state.workouts if w.date == day],
            "check_in": self.check_in_for(day),
        }

    def close_modal(self) -> None:
        self.state.selected_date = None

    # -------------------------------------------------------------------------
    # Derived statistics
    # -------------------------------------------------------------------------
    def overall_stats(self, today: Union[date, str, None] = None) -> OverallStats:
        return stats.overall_stats(self.state.workouts, today)

    def weekly_stats(self, week: int) -> Optional[WeeklyStats]:
        return stats.weekly_stats(self.state.workouts, week)

    def all_weekly_stats(self) -> List[WeeklyStats]:
        return stats.all_weekly_stats(self.state.workouts)

    def distance_summary(self) -> DistanceSummary:
        return stats.distance_summary(self.state.workouts)

    def intensity_distribution(self) -> Dict[str, int]:
        return stats.intensity_distribution(self.state.workouts)

    def check_in_series(self, days: Optional[int] = None,
                        today: Union[date, str, None] = None) -> List[CheckIn]:
        return stats.check_in_series(self.state.check_ins, days, today)

    # -------------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------------
    def export_ical(self) -> str:
        return exports.generate_ical(self.state.workouts)

    async def export_data(self, include_history: bool = True) -> Dict[str, Any]:
        workouts = await self.backend.workouts.get_all()
        check_ins = await self.backend.check_ins.get_all()
        history = await self.backend.history.get_all() if include_history else None
        return exports.build_backup(workouts, check_ins, history)

    async def import_data(self, payload: Union[str, bytes, Dict[str, Any]]) -> List[WorkoutDay]:
        """Replace every workout with the backup's; check-ins in the backup are upserted.

        The payload is fully validated before anything is deleted.
        """
        backup = exports.parse_backup(payload)
        async with self._mutation("import data"):
            try:
                await self.backend.workouts.delete_all()
                created = await self.backend.workouts.create_many(backup.workouts)
                for check_in in backup.check_ins:
                    await self.backend.check_ins.upsert(check_in)
                check_ins = await self.backend.check_ins.get_all()
            except TransientIOError:
                # Part of the import may have landed; resync with what was persisted
                await self.load_all()
                raise
            self.state.workouts = created
            self.state.check_ins = check_ins
            self.state.undo_stack.clear()
            log.info(f"Imported {len(created)} workouts and {len(backup.check_ins)} check-ins")
            return created
