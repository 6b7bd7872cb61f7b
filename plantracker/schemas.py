# schemas.py
# =============================================================================
# Pydantic v2 models shared by the manager, the backends and the HTTP layer.
# Dates are YYYY-MM-DD strings, timestamps are ISO-8601 UTC strings.
# =============================================================================

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Intensity(str, Enum):
    EASY = "Easy"
    STEADY = "Steady"
    TEMPO = "Tempo"
    INTERVAL = "Interval"
    REST = "Rest"
    STRENGTH = "Strength"


# Older backups store the run intensities as single letters
_LEGACY_INTENSITY = {
    "E": Intensity.EASY.value,
    "S": Intensity.STEADY.value,
    "T": Intensity.TEMPO.value,
    "I": Intensity.INTERVAL.value,
}


class WorkoutStatus(str, Enum):
    PLANNED = "planned"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    RESCHEDULED = "rescheduled"


class ActivityType(str, Enum):
    RUN = "run"
    WALK = "walk"
    CYCLE = "cycle"
    SWIM = "swim"
    PADEL = "padel"
    SQUASH = "squash"
    STRENGTH = "strength"
    REST = "rest"


KNOWN_TAGS = (
    "easy", "steady", "tempo", "interval", "longrun",
    "strength", "rest", "race", "deload",
)


# -----------------------------------------------------------------------------
# Shared validators
# -----------------------------------------------------------------------------
def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_date_str(v: str) -> str:
    if not isinstance(v, str) or not _DATE_RE.match(v):
        raise ValueError("date must be YYYY-MM-DD format")
    try:
        datetime.strptime(v, "%Y-%m-%d")
    except ValueError:
        raise ValueError("date is not a valid calendar date")
    return v


def normalize_tags(v: Any) -> List[str]:
    """Accept a list or a comma-separated string; lower-case, drop blanks and repeats."""
    if v is None:
        return []
    items = v.split(",") if isinstance(v, str) else list(v)
    seen: List[str] = []
    for t in items:
        t = str(t).strip().lower()
        if t and t not in seen:
            seen.append(t)
    return seen


def _non_negative(v: Optional[float], name: str) -> Optional[float]:
    if v is not None and v < 0:
        raise ValueError(f"{name} cannot be negative")
    return v


def _map_legacy_intensity(v: Any) -> Any:
    if isinstance(v, str):
        return _LEGACY_INTENSITY.get(v, v)
    return v


# -----------------------------------------------------------------------------
# Workouts
# -----------------------------------------------------------------------------
class WorkoutDayIn(BaseModel):
    """A workout to be created: a template entry, an ad-hoc activity or a restored backup row."""
    model_config = ConfigDict(extra="ignore")

    date: str
    title: str
    details: str = ""
    phase: str = "Custom"
    week: int = 0
    tags: List[str] = Field(default_factory=list)
    intensity: Intensity
    planned_distance_km: Optional[float] = None
    planned_duration_min: Optional[float] = None
    actual_distance_km: Optional[float] = None
    actual_duration_min: Optional[float] = None
    status: WorkoutStatus = WorkoutStatus.PLANNED
    completed_at: Optional[str] = None
    moved_from_date: Optional[str] = None
    notes: Optional[str] = None
    activity_type: Optional[ActivityType] = None

    @field_validator("date")
    @classmethod
    def _date(cls, v: str) -> str:
        return validate_date_str(v)

    @field_validator("moved_from_date")
    @classmethod
    def _moved_from(cls, v: Optional[str]) -> Optional[str]:
        return validate_date_str(v) if v is not None else None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty")
        return v

    @field_validator("details", mode="before")
    @classmethod
    def _details(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return normalize_tags(v)

    @field_validator("intensity", mode="before")
    @classmethod
    def _intensity(cls, v: Any) -> Any:
        return _map_legacy_intensity(v)

    @field_validator(
        "planned_distance_km", "planned_duration_min",
        "actual_distance_km", "actual_duration_min",
    )
    @classmethod
    def _metrics(cls, v: Optional[float], info) -> Optional[float]:
        return _non_negative(v, info.field_name)


class WorkoutEdit(BaseModel):
    """User-editable fields of an existing workout. Unset fields are left alone."""
    title: Optional[str] = None
    details: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    intensity: Optional[Intensity] = None
    actual_distance_km: Optional[float] = None
    actual_duration_min: Optional[float] = None
    activity_type: Optional[ActivityType] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("title cannot be null")
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty")
        return v

    @field_validator("details", mode="before")
    @classmethod
    def _details(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return [] if v is None else normalize_tags(v)

    @field_validator("intensity", mode="before")
    @classmethod
    def _intensity(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("intensity cannot be null")
        return _map_legacy_intensity(v)

    @field_validator("actual_distance_km", "actual_duration_min")
    @classmethod
    def _metrics(cls, v: Optional[float], info) -> Optional[float]:
        return _non_negative(v, info.field_name)


class WorkoutDay(BaseModel):
    id: str
    date: str
    title: str
    details: str = ""
    phase: str = "Custom"
    week: int = 0
    tags: List[str] = Field(default_factory=list)
    intensity: Intensity
    planned_distance_km: Optional[float] = None
    planned_duration_min: Optional[float] = None
    actual_distance_km: Optional[float] = None
    actual_duration_min: Optional[float] = None
    status: WorkoutStatus = WorkoutStatus.PLANNED
    completed_at: Optional[str] = None
    moved_from_date: Optional[str] = None
    notes: Optional[str] = None
    activity_type: Optional[ActivityType] = None
    created_at: str
    updated_at: str
    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return normalize_tags(v)

    @field_validator("intensity", mode="before")
    @classmethod
    def _intensity(cls, v: Any) -> Any:
        return _map_legacy_intensity(v)

    @property
    def is_rest(self) -> bool:
        return self.intensity == Intensity.REST


# -----------------------------------------------------------------------------
# Check-ins
# -----------------------------------------------------------------------------
class CheckInIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str
    weight_kg: Optional[float] = None
    sleep_hours: Optional[float] = None
    steps: Optional[int] = None
    energy_1_10: Optional[int] = None
    pain_0_10: Optional[int] = None
    pain_location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _date(cls, v: str) -> str:
        return validate_date_str(v)

    @field_validator("energy_1_10")
    @classmethod
    def _energy(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 1 or v > 10):
            raise ValueError("energy_1_10 must be between 1 and 10")
        return v

    @field_validator("pain_0_10")
    @classmethod
    def _pain(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 0 or v > 10):
            raise ValueError("pain_0_10 must be between 0 and 10")
        return v

    @field_validator("sleep_hours")
    @classmethod
    def _sleep(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and (v < 0 or v > 24):
            raise ValueError("sleep_hours must be between 0 and 24")
        return v

    @field_validator("weight_kg", "steps")
    @classmethod
    def _metrics(cls, v, info):
        return _non_negative(v, info.field_name)


class CheckIn(CheckInIn):
    id: str
    created_at: str
    updated_at: str
    model_config = ConfigDict(from_attributes=True)


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------
HistoryAction = Literal["moved", "status_changed", "edited"]


class HistoryEntryIn(BaseModel):
    workout_id: str
    action: HistoryAction
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    from_status: Optional[WorkoutStatus] = None
    to_status: Optional[WorkoutStatus] = None
    details: Optional[str] = None


class HistoryEntry(HistoryEntryIn):
    id: str
    created_at: str
    model_config = ConfigDict(from_attributes=True)


# -----------------------------------------------------------------------------
# Calendar filters
# -----------------------------------------------------------------------------
class WorkoutFilters(BaseModel):
    """Calendar filters; None means "all"."""
    status: Optional[WorkoutStatus] = None
    intensity: Optional[Intensity] = None
    tag: Optional[str] = None

    @field_validator("status", "intensity", "tag", mode="before")
    @classmethod
    def _all_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in ("", "all"):
            return None
        return v

    @field_validator("tag")
    @classmethod
    def _tag(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else None


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------
class OverallStats(BaseModel):
    total_workouts: int
    completed_workouts: int
    skipped_workouts: int
    rescheduled_workouts: int
    completion_rate: float
    current_streak: int
    longest_streak: int
    total_planned_distance: float
    total_planned_duration: float
    next_workout: Optional[WorkoutDay] = None


class WeeklyStats(BaseModel):
    week: int
    start_date: str
    end_date: str
    planned_runs: int
    completed_runs: int
    skipped_runs: int
    total_planned_distance: float
    total_planned_duration: float
    completion_rate: float


class WeekDistance(BaseModel):
    week: int
    total_km: float
    by_activity: Dict[str, float] = Field(default_factory=dict)


class DistanceSummary(BaseModel):
    total_km: float
    by_activity: Dict[str, float] = Field(default_factory=dict)
    by_week: List[WeekDistance] = Field(default_factory=list)
