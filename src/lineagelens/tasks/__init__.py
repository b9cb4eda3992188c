"""Background task scheduling."""

from lineagelens.tasks.scheduler import BackgroundScheduler, PeriodicTask

__all__ = [
    "BackgroundScheduler",
    "PeriodicTask",
]
