from __future__ import annotations

from dataclasses import dataclass

from ..storage import StorageBackend
from ..utils.dates import Clock, local_now
from .analytics import AnalyticsAggregator
from .counter_store import CounterStore
from .increment_log import IncrementLog


@dataclass
class CounterServices:
    """一次组合出来的服务集合：所有组件共用同一个显式传入的存储后端。"""

    backend: StorageBackend
    counter_store: CounterStore
    increment_log: IncrementLog
    analytics: AnalyticsAggregator


def build_services(backend: StorageBackend, *, clock: Clock = local_now) -> CounterServices:
    increment_log = IncrementLog(backend)
    return CounterServices(
        backend=backend,
        counter_store=CounterStore(backend, clock=clock, increment_log=increment_log),
        increment_log=increment_log,
        analytics=AnalyticsAggregator(backend, clock=clock, increment_log=increment_log),
    )


__all__ = [
    "AnalyticsAggregator",
    "CounterServices",
    "CounterStore",
    "IncrementLog",
    "build_services",
]
