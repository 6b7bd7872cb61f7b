# db.py
# =============================================================================
# Relational store for the remote backend (SQLAlchemy 2.x async).
# PostgreSQL via asyncpg in production, SQLite via aiosqlite for local runs
# and tests. Tags are stored comma-separated, dates and timestamps as strings.
# =============================================================================

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import Float, Integer, String, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Connection URL
# Priority:
#   1) env PLAN_DB_URL (any async SQLAlchemy URL)
#   2) Cloud SQL (PostgreSQL) if CLOUD_SQL_CONNECTION_NAME is set
#   3) None -> caller falls back to the local JSON store
# -----------------------------------------------------------------------------
def database_url_from_env() -> Optional[str]:
    url = os.getenv("PLAN_DB_URL")
    if url:
        return url
    cloud_sql = os.getenv("CLOUD_SQL_CONNECTION_NAME")  # e.g. project:region:instance
    if cloud_sql:
        db_user = os.getenv("DB_USER", "postgres")
        db_pass = os.getenv("DB_PASSWORD", "")
        db_name = os.getenv("DB_NAME", "plan_tracker")
        return f"postgresql+asyncpg://{db_user}:{db_pass}@/{db_name}?host=/cloudsql/{cloud_sql}"
    return None


def describe_url(url: str) -> str:
    """Safe description of the DB type (no credentials)."""
    if url.startswith("sqlite"):
        return "SQLite"
    if "/cloudsql/" in url:
        return "Cloud SQL PostgreSQL"
    if url.startswith("postgresql"):
        return "PostgreSQL"
    return url.split(":", 1)[0]


def make_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # aiosqlite connections are not shared between event loops
        return create_async_engine(url, echo=False, poolclass=NullPool)
    return create_async_engine(
        url, echo=False, pool_pre_ping=True,
        pool_size=5, max_overflow=10, pool_timeout=30,
    )


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------
class Base(DeclarativeBase):
    pass


class WorkoutDayRow(Base):
    __tablename__ = "workout_days"
    __table_args__ = {"extend_existing": True}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    date: Mapped[str] = mapped_column(String, nullable=False, index=True)   # YYYY-MM-DD
    title: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[str] = mapped_column(String, nullable=False, default="")
    phase: Mapped[str] = mapped_column(String, nullable=False, default="Custom")
    week: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tags: Mapped[Optional[str]] = mapped_column(String, nullable=True)      # comma-separated
    intensity: Mapped[str] = mapped_column(String, nullable=False)
    planned_distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    planned_duration_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_duration_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="planned")
    completed_at: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    moved_from_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    activity_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class CheckInRow(Base):
    __tablename__ = "checkins"
    __table_args__ = {"extend_existing": True}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    date: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    weight_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sleep_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    steps: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    energy_1_10: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pain_0_10: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pain_location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class HistoryRow(Base):
    __tablename__ = "history"
    __table_args__ = {"extend_existing": True}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    workout_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)     # moved, status_changed, edited
    from_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    to_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    from_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    details: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)


# -----------------------------------------------------------------------------
# Startup: create tables & run migrations
# -----------------------------------------------------------------------------
_WORKOUT_MIGRATIONS = [
    ("activity_type", "ALTER TABLE workout_days ADD COLUMN activity_type VARCHAR"),
    ("moved_from_date", "ALTER TABLE workout_days ADD COLUMN moved_from_date VARCHAR"),
]


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    # Each column uses its own transaction so a failed SELECT doesn't abort
    # the ALTER TABLE in PostgreSQL (PG aborts entire txn on any error).
    for col_name, col_sql in _WORKOUT_MIGRATIONS:
        try:
            async with engine.begin() as conn:
                await conn.execute(text(f"SELECT {col_name} FROM workout_days LIMIT 1"))
        except Exception:
            try:
                async with engine.begin() as conn:
                    await conn.execute(text(col_sql))
                    log.info(f"Added {col_name} column to workout_days table")
            except Exception as e:
                log.warning(f"Migration for {col_name} (workout_days): {e}")
