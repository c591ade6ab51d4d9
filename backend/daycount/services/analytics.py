"""统计：日合计（升序）+ 当天 24 小时分桶。只读，从不修改任何表。"""

from __future__ import annotations

from ..schemas import DayTotal, HourBucket
from ..storage import CounterTransaction, StorageBackend
from ..utils.dates import Clock, date_key, local_now, validate_date_key
from .increment_log import IncrementLog

HOURS_PER_DAY = 24


class AnalyticsAggregator:
    def __init__(
        self,
        backend: StorageBackend,
        *,
        clock: Clock = local_now,
        increment_log: IncrementLog | None = None,
    ):
        self.backend = backend
        self.clock = clock
        self.increment_log = increment_log or IncrementLog(backend)

    async def daily_totals(self) -> list[DayTotal]:
        async def _work(tx: CounterTransaction):
            return await tx.list_counters()

        rows = await self.backend.run_query(_work)
        # DateKey 定长补零，字符串序就是时间序；这里再排一次，不依赖后端的排序实现
        return [DayTotal(date=r.date, count=r.count) for r in sorted(rows, key=lambda r: r.date)]

    async def recent_totals(self, days: int = 7) -> list[DayTotal]:
        """最近 N 个有记录的日期（升序）。"""
        if days <= 0:
            return []
        totals = await self.daily_totals()
        return totals[-days:]

    async def hourly_trend(self, date: str | None = None) -> list[HourBucket]:
        """按小时汇总某一天的增量（默认今天），固定返回 24 个桶。

        只依赖增量日志，不读 counters：清零不会影响这里的结果。
        """
        target = validate_date_key(date) if date is not None else date_key(self.clock())
        buckets = [0] * HOURS_PER_DAY
        for item in await self.increment_log.hour_sums(target):
            if 0 <= item.hour < HOURS_PER_DAY:
                buckets[item.hour] += item.total
        return [HourBucket(hour=hour, count=count) for hour, count in enumerate(buckets)]
