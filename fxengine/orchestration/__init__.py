"""Scheduling helpers for periodic evaluations."""

from .scheduler import Clock, ManualClock, PeriodicTask, SystemClock

__all__ = [
    "Clock",
    "ManualClock",
    "PeriodicTask",
    "SystemClock",
]
