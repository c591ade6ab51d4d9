from .analytics import DayTotal, HourBucket
from .counter import CounterSnapshot, IncrementRequest

__all__ = [
    "CounterSnapshot",
    "DayTotal",
    "HourBucket",
    "IncrementRequest",
]
