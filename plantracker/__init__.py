"""Training plan tracker: scheduled workouts, daily check-ins, undo and progress stats."""

__version__ = "1.0.0"
