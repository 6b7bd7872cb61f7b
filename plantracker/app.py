# app.py
# =============================================================================
# Plan Tracker API: training plan, check-ins & progress (FastAPI, Pydantic v2)
# Thin HTTP layer over WorkoutManager: every request is translated into one
# manager call and its result rendered as JSON, iCal text or a backup document.
# =============================================================================

from __future__ import annotations

import logging
import os
import time
import traceback
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi import Path as FPath
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from plantracker import exports
from plantracker.errors import (
    BackupFormatError,
    ConflictError,
    NotFoundError,
    TransientIOError,
)
from plantracker.manager import WorkoutManager
from plantracker.persistence import backend_from_env
from plantracker.plan_template import PLAN_START, days_until_race, plan_metadata, week_number_for
from plantracker.schemas import (
    CheckIn,
    CheckInIn,
    DistanceSummary,
    HistoryEntry,
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

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
log = logging.getLogger("plan-tracker-api")

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
APP_PASSCODE = os.getenv("APP_PASSCODE", "")
PLAN_START_DATE = validate_date_str(os.getenv("PLAN_START_DATE", PLAN_START.isoformat()))

backend = backend_from_env()
manager = WorkoutManager(backend, plan_start=PLAN_START_DATE)


# -----------------------------------------------------------------------------
# Pydantic schemas (HTTP only; domain models live in plantracker.schemas)
# -----------------------------------------------------------------------------
class HealthOut(BaseModel):
    ok: bool = True
    db_connected: bool = True
    db_type: str
    timestamp: str


class GenericResponse(BaseModel):
    message: str


class StateOut(BaseModel):
    backend: str
    loading: bool
    error: Optional[str] = None
    selected_date: Optional[str] = None
    filters: WorkoutFilters
    workouts: int
    check_ins: int
    undo_depth: int


class PlanInfoOut(BaseModel):
    start_date: str
    end_date: str
    total_weeks: int
    goal_distance_km: float
    goal_event: str
    phases: List[Dict[str, str]]
    initialized: bool
    entries: int
    current_week: int
    days_until_race: int


class PlanCreatedOut(BaseModel):
    created: int
    first_date: Optional[str] = None
    last_date: Optional[str] = None


class MoveIn(BaseModel):
    new_date: str

    @field_validator("new_date")
    @classmethod
    def validate_new_date(cls, v: str) -> str:
        return validate_date_str(v)


class StatusIn(BaseModel):
    status: WorkoutStatus


class UndoActionOut(BaseModel):
    kind: str
    workout_id: str
    prior: Dict[str, Any]
    timestamp: float


class UndoOut(BaseModel):
    undone: bool
    action: Optional[UndoActionOut] = None
    remaining: int


class DayOut(BaseModel):
    date: str
    week: int
    workouts: List[WorkoutDay]
    check_in: Optional[CheckIn] = None


class ImportOut(BaseModel):
    imported: int
    check_ins: int


# -----------------------------------------------------------------------------
# App (with lifespan)
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    await manager.backend.init()
    await manager.load_all()
    log.info(f"Loaded {len(manager.workouts)} workouts and {len(manager.check_ins)} check-ins")
    yield
    await manager.backend.close()


app = FastAPI(
    title="Plan Tracker API",
    description="Training plan tracker: scheduled workouts, daily check-ins and progress stats.",
    version="1.0.0",
    lifespan=lifespan,
)


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------
@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "date": exc.date})


@app.exception_handler(BackupFormatError)
async def _backup_format_handler(request: Request, exc: BackupFormatError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(TransientIOError)
async def _transient_io_handler(request: Request, exc: TransientIOError):
    log.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def _value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# Global exception handler: log full traceback so the cause shows up in the logs
@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exc()
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}\n{tb}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {type(exc).__name__}: {exc}"},
    )


# -----------------------------------------------------------------------------
# Rate limiting middleware (simple in-memory, per-IP)
# -----------------------------------------------------------------------------
_rate_limit_store: Dict[str, List[float]] = defaultdict(list)
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "300"))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))  # seconds


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW

    _rate_limit_store[client_ip] = [
        t for t in _rate_limit_store[client_ip] if t > window_start
    ]

    if len(_rate_limit_store[client_ip]) >= RATE_LIMIT_REQUESTS:
        return Response(
            content='{"detail":"Rate limit exceeded. Try again later."}',
            status_code=429,
            media_type="application/json",
        )

    _rate_limit_store[client_ip].append(now)
    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(RATE_LIMIT_REQUESTS)
    response.headers["X-RateLimit-Remaining"] = str(
        RATE_LIMIT_REQUESTS - len(_rate_limit_store[client_ip])
    )
    return response


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
async def require_edit(x_passcode: Optional[str] = Header(None)) -> None:
    """Edit capability check. Not a security boundary: the passcode is shared."""
    if APP_PASSCODE and x_passcode != APP_PASSCODE:
        raise HTTPException(403, "Editing requires a valid passcode")


def _filters_from_query(status: Optional[str], intensity: Optional[str],
                        tag: Optional[str]) -> WorkoutFilters:
    try:
        return WorkoutFilters(status=status, intensity=intensity, tag=tag)
    except ValidationError as e:
        raise HTTPException(422, f"Invalid filter: {e.errors()[0]['msg']}")


def _undo_out(action, undone: bool) -> UndoOut:
    return UndoOut(
        undone=undone,
        action=UndoActionOut(**action.to_dict()) if action else None,
        remaining=len(manager.state.undo_stack),
    )


# -----------------------------------------------------------------------------
# Health / Root / State
# -----------------------------------------------------------------------------
@app.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    db_connected = False
    try:
        await manager.backend.workouts.count()
        db_connected = True
    except TransientIOError as e:
        log.error(f"Health check storage query failed: {e}")
    return HealthOut(
        ok=db_connected,
        db_connected=db_connected,
        db_type=manager.backend.name,
        timestamp=utcnow_iso(),
    )


@app.get("/", response_model=GenericResponse)
async def root() -> GenericResponse:
    return GenericResponse(message="Plan Tracker API v1 is running")


@app.get("/state", response_model=StateOut)
async def get_state() -> StateOut:
    state = manager.state
    return StateOut(
        backend=manager.backend.name,
        loading=state.loading,
        error=state.error,
        selected_date=state.selected_date,
        filters=state.filters,
        workouts=len(state.workouts),
        check_ins=len(state.check_ins),
        undo_depth=len(state.undo_stack),
    )


@app.post("/reload", response_model=StateOut)
async def reload_state() -> StateOut:
    await manager.load_all()
    return await get_state()


# -----------------------------------------------------------------------------
# Plan
# -----------------------------------------------------------------------------
@app.get("/plan", response_model=PlanInfoOut)
async def plan_info(today: Optional[str] = Query(None)) -> PlanInfoOut:
    if today is not None:
        today = validate_date_str(today)
    meta = plan_metadata(manager.plan_start)
    return PlanInfoOut(
        **meta,
        initialized=manager.state.initialized,
        entries=len(manager.workouts),
        current_week=max(week_number_for(today or utcnow_iso()[:10], manager.plan_start), 0),
        days_until_race=days_until_race(today, manager.plan_start),
    )


@app.post("/plan/initialize", response_model=PlanCreatedOut, dependencies=[Depends(require_edit)])
async def initialize_plan() -> PlanCreatedOut:
    created = await manager.initialize_plan()
    dates = sorted(w.date for w in created)
    return PlanCreatedOut(
        created=len(created),
        first_date=dates[0] if dates else None,
        last_date=dates[-1] if dates else None,
    )


@app.delete("/plan", response_model=GenericResponse, dependencies=[Depends(require_edit)])
async def reset_plan() -> GenericResponse:
    await manager.reset_plan()
    return GenericResponse(message="Plan reset")


# -----------------------------------------------------------------------------
# Workouts
# -----------------------------------------------------------------------------
@app.get("/workouts", response_model=List[WorkoutDay])
async def list_workouts(
    status: Optional[str] = None,
    intensity: Optional[str] = None,
    tag: Optional[str] = None,
    include_rest: bool = False,
) -> List[WorkoutDay]:
    """Calendar view. Query filters apply to this request only; without any, the stored filters are used."""
    if include_rest:
        return manager.workouts
    if status is None and intensity is None and tag is None:
        return manager.visible_workouts()
    return manager.visible_workouts(_filters_from_query(status, intensity, tag))


@app.put("/filters", response_model=WorkoutFilters)
async def set_filters(filters: WorkoutFilters) -> WorkoutFilters:
    manager.set_filters(filters)
    return manager.state.filters


@app.get("/workouts/range", response_model=List[WorkoutDay])
async def workouts_in_range(
    start: str = Query(...),
    end: str = Query(...),
) -> List[WorkoutDay]:
    start, end = validate_date_str(start), validate_date_str(end)
    if start > end:
        raise HTTPException(400, "start must be on or before end")
    return await manager.backend.workouts.get_by_date_range(start, end)


@app.post("/workouts", response_model=WorkoutDay, dependencies=[Depends(require_edit)])
async def create_workout(workout: WorkoutDayIn) -> WorkoutDay:
    return await manager.create_workout(workout)


@app.get("/workouts/{workout_id}", response_model=WorkoutDay)
async def get_workout(workout_id: str = FPath(..., min_length=1)) -> WorkoutDay:
    return manager.get_workout(workout_id)


@app.patch("/workouts/{workout_id}", response_model=WorkoutDay, dependencies=[Depends(require_edit)])
async def edit_workout(edit: WorkoutEdit, workout_id: str = FPath(..., min_length=1)) -> WorkoutDay:
    if not edit.model_fields_set:
        raise HTTPException(400, "No fields to update")
    return await manager.update_workout(workout_id, edit)


@app.delete("/workouts/{workout_id}", response_model=GenericResponse, dependencies=[Depends(require_edit)])
async def delete_workout(workout_id: str = FPath(..., min_length=1)) -> GenericResponse:
    await manager.delete_workout(workout_id)
    return GenericResponse(message=f"Deleted workout {workout_id}")


@app.post("/workouts/{workout_id}/move", response_model=WorkoutDay, dependencies=[Depends(require_edit)])
async def move_workout(body: MoveIn, workout_id: str = FPath(..., min_length=1)) -> WorkoutDay:
    return await manager.move_workout(workout_id, body.new_date)


@app.post("/workouts/{workout_id}/status", response_model=WorkoutDay, dependencies=[Depends(require_edit)])
async def mark_status(body: StatusIn, workout_id: str = FPath(..., min_length=1)) -> WorkoutDay:
    return await manager.mark_status(workout_id, body.status)


@app.get("/workouts/{workout_id}/history", response_model=List[HistoryEntry])
async def workout_history(workout_id: str = FPath(..., min_length=1)) -> List[HistoryEntry]:
    manager.get_workout(workout_id)
    return await manager.backend.history.get_by_workout(workout_id)


# -----------------------------------------------------------------------------
# Undo
# -----------------------------------------------------------------------------
@app.get("/undo", response_model=List[UndoActionOut])
async def list_undo() -> List[UndoActionOut]:
    return [UndoActionOut(**a.to_dict()) for a in manager.state.undo_stack]


@app.post("/undo", response_model=UndoOut, dependencies=[Depends(require_edit)])
async def undo() -> UndoOut:
    action = await manager.undo()
    return _undo_out(action, undone=action is not None)


# -----------------------------------------------------------------------------
# Day view
# -----------------------------------------------------------------------------
@app.get("/days/{day}", response_model=DayOut)
async def open_day(day: str) -> DayOut:
    view = manager.open_for_date(day)
    return DayOut(week=week_number_for(view["date"], manager.plan_start), **view)


@app.delete("/days/selected", response_model=GenericResponse)
async def close_day() -> GenericResponse:
    manager.close_modal()
    return GenericResponse(message="Day view closed")


# -----------------------------------------------------------------------------
# Check-ins
# -----------------------------------------------------------------------------
@app.get("/checkins", response_model=List[CheckIn])
async def list_check_ins() -> List[CheckIn]:
    return sorted(manager.check_ins, key=lambda c: c.date, reverse=True)


@app.put("/checkins", response_model=CheckIn, dependencies=[Depends(require_edit)])
async def save_check_in(check_in: CheckInIn) -> CheckIn:
    return await manager.save_check_in(check_in)


@app.get("/checkins/{day}", response_model=CheckIn)
async def check_in_for_day(day: str) -> CheckIn:
    found = manager.check_in_for(validate_date_str(day))
    if found is None:
        raise HTTPException(404, f"No check-in for {day}")
    return found


@app.delete("/checkins/{check_in_id}", response_model=GenericResponse, dependencies=[Depends(require_edit)])
async def delete_check_in(check_in_id: str) -> GenericResponse:
    await manager.delete_check_in(check_in_id)
    return GenericResponse(message=f"Deleted check-in {check_in_id}")


# -----------------------------------------------------------------------------
# Stats
# -----------------------------------------------------------------------------
@app.get("/stats", response_model=OverallStats)
async def overall_stats(today: Optional[str] = None) -> OverallStats:
    if today is not None:
        today = validate_date_str(today)
    return manager.overall_stats(today)


@app.get("/stats/weeks", response_model=List[WeeklyStats])
async def all_weekly_stats() -> List[WeeklyStats]:
    return manager.all_weekly_stats()


@app.get("/stats/weeks/{week}", response_model=WeeklyStats)
async def weekly_stats(week: int = FPath(..., ge=0)) -> WeeklyStats:
    result = manager.weekly_stats(week)
    if result is None:
        raise HTTPException(404, f"No workouts in week {week}")
    return result


@app.get("/stats/distance", response_model=DistanceSummary)
async def distance_summary() -> DistanceSummary:
    return manager.distance_summary()


@app.get("/stats/intensity", response_model=Dict[str, int])
async def intensity_distribution() -> Dict[str, int]:
    return manager.intensity_distribution()


@app.get("/stats/checkins", response_model=List[CheckIn])
async def check_in_series(
    days: Optional[int] = Query(None, ge=1, le=3650),
    today: Optional[str] = None,
) -> List[CheckIn]:
    if today is not None:
        today = validate_date_str(today)
    return manager.check_in_series(days, today)


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------
@app.get("/history", response_model=List[HistoryEntry])
async def history() -> List[HistoryEntry]:
    await manager.load_history()
    return manager.state.history


# -----------------------------------------------------------------------------
# Export / Import
# -----------------------------------------------------------------------------
@app.get("/export/ical")
async def export_ical() -> Response:
    return Response(
        content=manager.export_ical(),
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="training-plan.ics"'},
    )


@app.get("/export/json")
async def export_json(include_history: bool = True) -> Response:
    doc = await manager.export_data(include_history=include_history)
    filename = f"plan-backup-{doc['exportedAt'][:10]}.json"
    return Response(
        content=exports.dump_backup(doc),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/import/json", response_model=ImportOut, dependencies=[Depends(require_edit)])
async def import_json(request: Request) -> ImportOut:
    raw = await request.body()
    created = await manager.import_data(raw)
    return ImportOut(imported=len(created), check_ins=len(manager.check_ins))
