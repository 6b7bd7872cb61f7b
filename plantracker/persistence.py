# persistence.py
# =============================================================================
# Persistence Adapter: one CRUD contract over workouts, check-ins and history,
# with two interchangeable backends selected once at startup:
#   - SqlBackend:   remote relational store (SQLAlchemy async)
#   - LocalBackend: JSON document on local disk (or memory), the fallback
#                   when no remote store is configured
# Both raise NotFoundError / ConflictError for contract violations and wrap
# their own I/O failures in TransientIOError.
# =============================================================================

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import asc, delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError

from plantracker import db
from plantracker.errors import ConflictError, NotFoundError, TransientIOError
from plantracker.schemas import (
    CheckIn,
    CheckInIn,
    HistoryEntry,
    HistoryEntryIn,
    Intensity,
    WorkoutDay,
    WorkoutDayIn,
    WorkoutStatus,
    utcnow_iso,
)

log = logging.getLogger(__name__)

HISTORY_LIMIT = 100

# Columns a workout update may touch; id and created_at are immutable
WORKOUT_MUTABLE_FIELDS = frozenset({
    "date", "title", "details", "phase", "week", "tags", "intensity",
    "planned_distance_km", "planned_duration_min",
    "actual_distance_km", "actual_duration_min",
    "status", "completed_at", "moved_from_date", "notes", "activity_type",
})


def _new_id() -> str:
    return str(uuid.uuid4())


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - WORKOUT_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot update workout fields: {sorted(unknown)}")


def _conflict(new_date: str) -> ConflictError:
    return ConflictError(f"There's already a workout scheduled for {new_date}", date=new_date)


# -----------------------------------------------------------------------------
# Contract
# -----------------------------------------------------------------------------
class WorkoutRepository(ABC):
    @abstractmethod
    async def get_all(self) -> List[WorkoutDay]:
        """All workouts ordered by date ascending."""

    @abstractmethod
    async def get_by_date_range(self, start: str, end: str) -> List[WorkoutDay]: ...

    @abstractmethod
    async def get_by_date(self, date: str) -> List[WorkoutDay]: ...

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def create(self, workout: WorkoutDayIn) -> WorkoutDay: ...

    @abstractmethod
    async def create_many(self, workouts: Iterable[WorkoutDayIn]) -> List[WorkoutDay]: ...

    @abstractmethod
    async def update(self, workout_id: str, fields: Dict[str, Any]) -> WorkoutDay: ...

    @abstractmethod
    async def move_workout(self, workout_id: str, new_date: str, old_date: str) -> WorkoutDay:
        """Re-check the target date, drop rest placeholders there, then move.

        A moved workout becomes rescheduled with completed_at cleared. Moving a
        rest placeholder leaves other placeholders on the target date alone.

        Raises ConflictError when another non-rest workout occupies new_date.
        """

    @abstractmethod
    async def delete(self, workout_id: str) -> None: ...

    @abstractmethod
    async def delete_all(self) -> None: ...


class CheckInRepository(ABC):
    @abstractmethod
    async def get_all(self) -> List[CheckIn]:
        """All check-ins, newest date first."""

    @abstractmethod
    async def get_by_date(self, date: str) -> Optional[CheckIn]: ...

    @abstractmethod
    async def upsert(self, check_in: CheckInIn) -> CheckIn: ...

    @abstractmethod
    async def delete(self, check_in_id: str) -> None: ...


class HistoryRepository(ABC):
    @abstractmethod
    async def get_all(self) -> List[HistoryEntry]:
        """Most recent entries first, at most HISTORY_LIMIT."""

    @abstractmethod
    async def get_by_workout(self, workout_id: str) -> List[HistoryEntry]: ...

    @abstractmethod
    async def create(self, entry: HistoryEntryIn) -> HistoryEntry: ...


class Backend(ABC):
    name: str
    workouts: WorkoutRepository
    check_ins: CheckInRepository
    history: HistoryRepository

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass


# -----------------------------------------------------------------------------
# SQL backend
# -----------------------------------------------------------------------------
def _workout_columns(workout: WorkoutDayIn) -> Dict[str, Any]:
    values = workout.model_dump(mode="json")
    values["tags"] = ",".join(values["tags"]) or None
    return values


def _column_value(key: str, value: Any) -> Any:
    if key == "tags":
        if value is None:
            return None
        return ",".join(_plain(t) for t in value) or None
    return _plain(value)


class _SqlRepository:
    def __init__(self, backend: "SqlBackend"):
        self._backend = backend

    def _session(self):
        return self._backend.session()


class SqlWorkoutRepository(_SqlRepository, WorkoutRepository):
    @staticmethod
    def _ordered(stmt):
        return stmt.order_by(
            asc(db.WorkoutDayRow.date), asc(db.WorkoutDayRow.created_at), asc(db.WorkoutDayRow.id)
        )

    async def get_all(self) -> List[WorkoutDay]:
        async with self._session() as s:
            result = await s.execute(self._ordered(select(db.WorkoutDayRow)))
            rows = result.scalars().all()
        return [WorkoutDay.model_validate(r) for r in rows]

    async def get_by_date_range(self, start: str, end: str) -> List[WorkoutDay]:
        stmt = select(db.WorkoutDayRow).where(
            db.WorkoutDayRow.date >= start, db.WorkoutDayRow.date <= end
        )
        async with self._session() as s:
            result = await s.execute(self._ordered(stmt))
            rows = result.scalars().all()
        return [WorkoutDay.model_validate(r) for r in rows]

    async def get_by_date(self, date: str) -> List[WorkoutDay]:
        return await self.get_by_date_range(date, date)

    async def count(self) -> int:
        async with self._session() as s:
            result = await s.execute(select(func.count()).select_from(db.WorkoutDayRow))
            return int(result.scalar_one())

    async def create(self, workout: WorkoutDayIn) -> WorkoutDay:
        created = await self.create_many([workout])
        return created[0]

    async def create_many(self, workouts: Iterable[WorkoutDayIn]) -> List[WorkoutDay]:
        now = utcnow_iso()
        rows = [
            db.WorkoutDayRow(id=_new_id(), created_at=now, updated_at=now, **_workout_columns(w))
            for w in workouts
        ]
        async with self._session() as s:
            s.add_all(rows)
            await s.commit()
        return [WorkoutDay.model_validate(r) for r in rows]

    async def update(self, workout_id: str, fields: Dict[str, Any]) -> WorkoutDay:
        _check_fields(fields)
        async with self._session() as s:
            row = await s.get(db.WorkoutDayRow, workout_id)
            if not row:
                raise NotFoundError(f"Workout {workout_id} not found")
            for k, v in fields.items():
                setattr(row, k, _column_value(k, v))
            row.updated_at = utcnow_iso()
            await s.commit()
            await s.refresh(row)
            return WorkoutDay.model_validate(row)

    async def move_workout(self, workout_id: str, new_date: str, old_date: str) -> WorkoutDay:
        async with self._session() as s:
            row = await s.get(db.WorkoutDayRow, workout_id)
            if not row:
                raise NotFoundError(f"Workout {workout_id} not found")
            occupied = await s.execute(
                select(db.WorkoutDayRow.id).where(
                    db.WorkoutDayRow.date == new_date,
                    db.WorkoutDayRow.id != workout_id,
                    db.WorkoutDayRow.intensity != Intensity.REST.value,
                ).limit(1)
            )
            if occupied.first() is not None:
                raise _conflict(new_date)
            if row.intensity != Intensity.REST.value:
                await s.execute(
                    delete(db.WorkoutDayRow).where(
                        db.WorkoutDayRow.date == new_date,
                        db.WorkoutDayRow.id != workout_id,
                        db.WorkoutDayRow.intensity == Intensity.REST.value,
                    )
                )
            row.date = new_date
            row.moved_from_date = old_date
            row.status = WorkoutStatus.RESCHEDULED.value
            row.completed_at = None
            row.updated_at = utcnow_iso()
            await s.commit()
            await s.refresh(row)
            return WorkoutDay.model_validate(row)

    async def delete(self, workout_id: str) -> None:
        async with self._session() as s:
            row = await s.get(db.WorkoutDayRow, workout_id)
            if not row:
                raise NotFoundError(f"Workout {workout_id} not found")
            await s.delete(row)
            await s.commit()

    async def delete_all(self) -> None:
        async with self._session() as s:
            await s.execute(delete(db.WorkoutDayRow))
            await s.commit()


class SqlCheckInRepository(_SqlRepository, CheckInRepository):
    async def get_all(self) -> List[CheckIn]:
        async with self._session() as s:
            result = await s.execute(select(db.CheckInRow).order_by(desc(db.CheckInRow.date)))
            rows = result.scalars().all()
        return [CheckIn.model_validate(r) for r in rows]

    async def get_by_date(self, date: str) -> Optional[CheckIn]:
        async with self._session() as s:
            result = await s.execute(select(db.CheckInRow).where(db.CheckInRow.date == date))
            row = result.scalar()
        return CheckIn.model_validate(row) if row else None

    async def upsert(self, check_in: CheckInIn) -> CheckIn:
        values = check_in.model_dump()
        now = utcnow_iso()
        async with self._session() as s:
            result = await s.execute(
                select(db.CheckInRow).where(db.CheckInRow.date == check_in.date)
            )
            row = result.scalar()
            if row is None:
                row = db.CheckInRow(id=_new_id(), created_at=now, updated_at=now, **values)
                s.add(row)
            else:
                for k, v in values.items():
                    setattr(row, k, v)
                row.updated_at = now
            await s.commit()
            await s.refresh(row)
            return CheckIn.model_validate(row)

    async def delete(self, check_in_id: str) -> None:
        async with self._session() as s:
            row = await s.get(db.CheckInRow, check_in_id)
            if not row:
                raise NotFoundError(f"Check-in {check_in_id} not found")
            await s.delete(row)
            await s.commit()


class SqlHistoryRepository(_SqlRepository, HistoryRepository):
    async def get_all(self) -> List[HistoryEntry]:
        async with self._session() as s:
            result = await s.execute(
                select(db.HistoryRow).order_by(desc(db.HistoryRow.created_at)).limit(HISTORY_LIMIT)
            )
            rows = result.scalars().all()
        return [HistoryEntry.model_validate(r) for r in rows]

    async def get_by_workout(self, workout_id: str) -> List[HistoryEntry]:
        async with self._session() as s:
            result = await s.execute(
                select(db.HistoryRow)
                .where(db.HistoryRow.workout_id == workout_id)
                .order_by(desc(db.HistoryRow.created_at))
            )
            rows = result.scalars().all()
        return [HistoryEntry.model_validate(r) for r in rows]

    async def create(self, entry: HistoryEntryIn) -> HistoryEntry:
        row = db.HistoryRow(id=_new_id(), created_at=utcnow_iso(), **entry.model_dump(mode="json"))
        async with self._session() as s:
            s.add(row)
            await s.commit()
        return HistoryEntry.model_validate(row)


class SqlBackend(Backend):
    def __init__(self, url: str):
        self.url = url
        self.name = db.describe_url(url)
        self.engine = db.make_engine(url)
        self._sessionmaker = db.make_sessionmaker(self.engine)
        self.workouts = SqlWorkoutRepository(self)
        self.check_ins = SqlCheckInRepository(self)
        self.history = SqlHistoryRepository(self)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        try:
            async with self._sessionmaker() as s:
                yield s
        except (SQLAlchemyError, OSError) as e:
            log.error(f"{self.name} query failed: {e}")
            raise TransientIOError(f"{self.name} request failed: {type(e).__name__}") from e

    async def init(self) -> None:
        try:
            await db.init_db(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise TransientIOError(f"{self.name} initialization failed: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()


# -----------------------------------------------------------------------------
# Local backend
# The whole store is one JSON document; every mutation writes a new copy to a
# temp file and renames it over the old one before the in-memory copy changes.
# -----------------------------------------------------------------------------
_EMPTY_DOC = {"workouts": [], "checkIns": [], "history": []}


class LocalStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._doc: Dict[str, List[Dict[str, Any]]] = {k: [] for k in _EMPTY_DOC}
        self._loaded = False

    def load(self) -> None:
        if self._loaded:
            return
        if self.path and self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    raw = json.load(f)
            except (OSError, ValueError) as e:
                raise TransientIOError(f"Cannot read local store {self.path}: {e}") from e
            self._doc = {k: list(raw.get(k) or []) for k in _EMPTY_DOC}
        self._loaded = True

    def rows(self, collection: str) -> List[Dict[str, Any]]:
        self.load()
        return [dict(r) for r in self._doc[collection]]

    def save(self, collection: str, rows: List[Dict[str, Any]]) -> None:
        self.load()
        doc = {**self._doc, collection: rows}
        if self.path:
            self._write(doc)
        self._doc = doc

    def _write(self, doc: Dict[str, Any]) -> None:
        target_dir = self.path.parent
        fd = None
        temp_path = None
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=target_dir, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise TransientIOError(f"Cannot write local store {self.path}: {e}") from e


def _by_date(row: Dict[str, Any]):
    return (row["date"], row["created_at"], row["id"])


class LocalWorkoutRepository(WorkoutRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    def _find(self, rows: List[Dict[str, Any]], workout_id: str) -> int:
        for i, r in enumerate(rows):
            if r["id"] == workout_id:
                return i
        raise NotFoundError(f"Workout {workout_id} not found")

    async def get_all(self) -> List[WorkoutDay]:
        rows = sorted(self._store.rows("workouts"), key=_by_date)
        return [WorkoutDay.model_validate(r) for r in rows]

    async def get_by_date_range(self, start: str, end: str) -> List[WorkoutDay]:
        return [w for w in await self.get_all() if start <= w.date <= end]

    async def get_by_date(self, date: str) -> List[WorkoutDay]:
        return await self.get_by_date_range(date, date)

    async def count(self) -> int:
        return len(self._store.rows("workouts"))

    async def create(self, workout: WorkoutDayIn) -> WorkoutDay:
        created = await self.create_many([workout])
        return created[0]

    async def create_many(self, workouts: Iterable[WorkoutDayIn]) -> List[WorkoutDay]:
        now = utcnow_iso()
        new_rows = [
            {**w.model_dump(mode="json"), "id": _new_id(), "created_at": now, "updated_at": now}
            for w in workouts
        ]
        self._store.save("workouts", self._store.rows("workouts") + new_rows)
        return [WorkoutDay.model_validate(r) for r in new_rows]

    async def update(self, workout_id: str, fields: Dict[str, Any]) -> WorkoutDay:
        _check_fields(fields)
        rows = self._store.rows("workouts")
        i = self._find(rows, workout_id)
        changes = {k: [_plain(t) for t in v] if k == "tags" and v is not None else _plain(v)
                   for k, v in fields.items()}
        rows[i] = {**rows[i], **changes, "updated_at": utcnow_iso()}
        updated = WorkoutDay.model_validate(rows[i])
        self._store.save("workouts", rows)
        return updated

    async def move_workout(self, workout_id: str, new_date: str, old_date: str) -> WorkoutDay:
        rows = self._store.rows("workouts")
        moving = rows[self._find(rows, workout_id)]
        others = [r for r in rows if r["date"] == new_date and r["id"] != workout_id]
        if any(r["intensity"] != Intensity.REST.value for r in others):
            raise _conflict(new_date)
        if moving["intensity"] != Intensity.REST.value:
            superseded = {r["id"] for r in others}
            rows = [r for r in rows if r["id"] not in superseded]
        i = self._find(rows, workout_id)
        rows[i] = {
            **rows[i],
            "date": new_date,
            "moved_from_date": old_date,
            "status": WorkoutStatus.RESCHEDULED.value,
            "completed_at": None,
            "updated_at": utcnow_iso(),
        }
        moved = WorkoutDay.model_validate(rows[i])
        self._store.save("workouts", rows)
        return moved

    async def delete(self, workout_id: str) -> None:
        rows = self._store.rows("workouts")
        i = self._find(rows, workout_id)
        del rows[i]
        self._store.save("workouts", rows)

    async def delete_all(self) -> None:
        self._store.save("workouts", [])


class LocalCheckInRepository(CheckInRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    async def get_all(self) -> List[CheckIn]:
        rows = sorted(self._store.rows("checkIns"), key=lambda r: r["date"], reverse=True)
        return [CheckIn.model_validate(r) for r in rows]

    async def get_by_date(self, date: str) -> Optional[CheckIn]:
        for r in self._store.rows("checkIns"):
            if r["date"] == date:
                return CheckIn.model_validate(r)
        return None

    async def upsert(self, check_in: CheckInIn) -> CheckIn:
        rows = self._store.rows("checkIns")
        now = utcnow_iso()
        values = check_in.model_dump(mode="json")
        for i, r in enumerate(rows):
            if r["date"] == check_in.date:
                rows[i] = {**r, **values, "updated_at": now}
                saved = rows[i]
                break
        else:
            saved = {**values, "id": _new_id(), "created_at": now, "updated_at": now}
            rows.append(saved)
        result = CheckIn.model_validate(saved)
        self._store.save("checkIns", rows)
        return result

    async def delete(self, check_in_id: str) -> None:
        rows = self._store.rows("checkIns")
        kept = [r for r in rows if r["id"] != check_in_id]
        if len(kept) == len(rows):
            raise NotFoundError(f"Check-in {check_in_id} not found")
        self._store.save("checkIns", kept)


class LocalHistoryRepository(HistoryRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    def _newest_first(self) -> List[Dict[str, Any]]:
        # Stored in insertion order; reverse keeps same-timestamp entries stable
        return list(reversed(self._store.rows("history")))

    async def get_all(self) -> List[HistoryEntry]:
        return [HistoryEntry.model_validate(r) for r in self._newest_first()[:HISTORY_LIMIT]]

    async def get_by_workout(self, workout_id: str) -> List[HistoryEntry]:
        return [
            HistoryEntry.model_validate(r)
            for r in self._newest_first()
            if r["workout_id"] == workout_id
        ]

    async def create(self, entry: HistoryEntryIn) -> HistoryEntry:
        row = {**entry.model_dump(mode="json"), "id": _new_id(), "created_at": utcnow_iso()}
        self._store.save("history", self._store.rows("history") + [row])
        return HistoryEntry.model_validate(row)


class LocalBackend(Backend):
    """Local-storage fallback. path=None keeps everything in memory."""

    def __init__(self, path: Optional[Path] = None):
        self.store = LocalStore(path)
        self.name = f"Local JSON ({self.store.path})" if self.store.path else "Local memory"
        self.workouts = LocalWorkoutRepository(self.store)
        self.check_ins = LocalCheckInRepository(self.store)
        self.history = LocalHistoryRepository(self.store)

    async def init(self) -> None:
        self.store.load()


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------
DEFAULT_LOCAL_STORE = Path("data") / "plan_store.json"


def backend_from_env() -> Backend:
    url = db.database_url_from_env()
    if url:
        backend: Backend = SqlBackend(url)
    else:
        local_path = os.getenv("PLAN_LOCAL_STORE")
        backend = LocalBackend(Path(local_path) if local_path else DEFAULT_LOCAL_STORE)
        log.warning("No remote database configured, using the local fallback store.")
    log.info(f"Using backend: {backend.name}")
    return backend
