# stats.py
# =============================================================================
# Statistics over the current workout collection. Pure functions: nothing here
# mutates its input, and everything is recomputed on each call.
# Rest placeholders never count as workouts.
# =============================================================================

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from plantracker.schemas import (
    CheckIn,
    DistanceSummary,
    Intensity,
    OverallStats,
    WeekDistance,
    WeeklyStats,
    WorkoutDay,
    WorkoutStatus,
)

DateLike = Union[date, str, None]


def _iso(day: DateLike) -> str:
    if day is None:
        return date.today().isoformat()
    return day if isinstance(day, str) else day.isoformat()


def _rate(part: int, whole: int) -> float:
    """Percentage rounded to 2 decimals; 0 when there is nothing to divide by."""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def _chronological(workouts: Iterable[WorkoutDay]) -> List[WorkoutDay]:
    return sorted(workouts, key=lambda w: (w.date, w.created_at, w.id))


def _non_rest(workouts: Iterable[WorkoutDay]) -> List[WorkoutDay]:
    return [w for w in workouts if w.intensity != Intensity.REST]


def streaks(workouts: Sequence[WorkoutDay]) -> Tuple[int, int]:
    """(current, longest) runs of consecutive completed workouts.

    Input must be chronological. Each workout counts on its own, so calendar
    days with nothing scheduled neither extend nor break a run. The current
    streak is the run ending at the most recent workout.
    """
    run = longest = 0
    for w in workouts:
        if w.status == WorkoutStatus.COMPLETED:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return run, longest


def overall_stats(workouts: Sequence[WorkoutDay], today: DateLike = None) -> OverallStats:
    today_s = _iso(today)
    runs = _non_rest(workouts)
    due = _chronological(w for w in runs if w.date <= today_s)
    current, longest = streaks(due)
    completed_due = sum(1 for w in due if w.status == WorkoutStatus.COMPLETED)

    upcoming = [w for w in runs if w.date >= today_s and w.status != WorkoutStatus.COMPLETED]
    next_workout = _chronological(upcoming)[0] if upcoming else None

    return OverallStats(
        total_workouts=len(runs),
        completed_workouts=sum(1 for w in runs if w.status == WorkoutStatus.COMPLETED),
        skipped_workouts=sum(1 for w in runs if w.status == WorkoutStatus.SKIPPED),
        rescheduled_workouts=sum(1 for w in runs if w.status == WorkoutStatus.RESCHEDULED),
        completion_rate=_rate(completed_due, len(due)),
        current_streak=current,
        longest_streak=longest,
        total_planned_distance=round(sum(w.planned_distance_km or 0 for w in runs), 2),
        total_planned_duration=round(sum(w.planned_duration_min or 0 for w in runs), 2),
        next_workout=next_workout,
    )


def weekly_stats(workouts: Sequence[WorkoutDay], week: int) -> Optional[WeeklyStats]:
    """Aggregate for one plan week, or None if no entry carries that week number.

    Rest entries widen the date range but are not counted as runs.
    """
    entries = [w for w in workouts if w.week == week]
    if not entries:
        return None
    dates = sorted(w.date for w in entries)
    runs = _non_rest(entries)
    completed = sum(1 for w in runs if w.status == WorkoutStatus.COMPLETED)
    return WeeklyStats(
        week=week,
        start_date=dates[0],
        end_date=dates[-1],
        planned_runs=len(runs),
        completed_runs=completed,
        skipped_runs=sum(1 for w in runs if w.status == WorkoutStatus.SKIPPED),
        total_planned_distance=round(sum(w.planned_distance_km or 0 for w in runs), 2),
        total_planned_duration=round(sum(w.planned_duration_min or 0 for w in runs), 2),
        completion_rate=_rate(completed, len(runs)),
    )


def all_weekly_stats(workouts: Sequence[WorkoutDay]) -> List[WeeklyStats]:
    """One entry per plan week present, ascending. Week 0 (ad-hoc entries) is left out."""
    weeks = sorted({w.week for w in workouts if w.week > 0})
    return [s for s in (weekly_stats(workouts, wk) for wk in weeks) if s is not None]


def intensity_distribution(workouts: Iterable[WorkoutDay]) -> Dict[str, int]:
    counts = {i.value: 0 for i in Intensity}
    for w in workouts:
        counts[Intensity(w.intensity).value] += 1
    return counts


def distance_summary(workouts: Iterable[WorkoutDay]) -> DistanceSummary:
    """Distance covered by completed workouts, by activity type and by week.

    Actual distance wins over planned; entries without an activity type count as runs.
    """
    by_activity: Dict[str, float] = defaultdict(float)
    by_week: Dict[int, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for w in workouts:
        if w.status != WorkoutStatus.COMPLETED:
            continue
        km = w.actual_distance_km if w.actual_distance_km is not None else w.planned_distance_km
        if not km:
            continue
        kind = w.activity_type.value if w.activity_type else "run"
        by_activity[kind] += km
        by_week[w.week][kind] += km

    weeks = [
        WeekDistance(
            week=wk,
            total_km=round(sum(kinds.values()), 2),
            by_activity={k: round(v, 2) for k, v in sorted(kinds.items())},
        )
        for wk, kinds in sorted(by_week.items())
    ]
    return DistanceSummary(
        total_km=round(sum(by_activity.values()), 2),
        by_activity={k: round(v, 2) for k, v in sorted(by_activity.items())},
        by_week=weeks,
    )


def check_in_series(check_ins: Iterable[CheckIn], days: Optional[int] = None,
                    today: DateLike = None) -> List[CheckIn]:
    """Check-ins in date order, limited to the last `days` days when given."""
    selected = list(check_ins)
    if days is not None:
        today_d = date.fromisoformat(_iso(today))
        cutoff = (today_d - timedelta(days=days)).isoformat()
        selected = [c for c in selected if c.date > cutoff]
    return sorted(selected, key=lambda c: c.date)
