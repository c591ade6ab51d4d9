from .counter import DailyCounter
from .increment_event import IncrementEvent

__all__ = [
    "DailyCounter",
    "IncrementEvent",
]
