"""Domain errors raised by the persistence backends and the workout manager."""

from __future__ import annotations


class PlanTrackerError(Exception):
    pass


class NotFoundError(PlanTrackerError):
    """A workout or check-in id does not exist in the target collection."""


class ConflictError(PlanTrackerError):
    """The target date of a move already holds a non-rest workout."""

    def __init__(self, message: str, date: str | None = None):
        super().__init__(message)
        self.date = date


class PlanAlreadyInitializedError(ConflictError):
    pass


class BackupFormatError(PlanTrackerError):
    """Import payload is not valid JSON or lacks the workouts array."""


class TransientIOError(PlanTrackerError):
    """The persistence backend failed (network, database or file error)."""
