"""增量日志：只追加，不更新、不删除；按小时统计完全从这里推导。"""

from __future__ import annotations

from ..storage import CounterTransaction, HourSum, StorageBackend
from ..utils.dates import validate_date_key
from ..utils.errors import InvalidAmount


class IncrementLog:
    def __init__(self, backend: StorageBackend):
        self.backend = backend

    async def record(
        self,
        tx: CounterTransaction,
        *,
        date: str,
        hour: int,
        timestamp: str,
        amount: int,
    ) -> int:
        """在调用方的事务里追加一条增量事件，返回事件 id。"""
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be within 0..23, got {hour}")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount)
        return await tx.append_increment(date, hour, timestamp, amount)

    async def hour_sums(self, date: str) -> list[HourSum]:
        validate_date_key(date)

        async def _work(tx: CounterTransaction) -> list[HourSum]:
            return await tx.hour_sums(date)

        return await self.backend.run_query(_work)

    async def total_for(self, date: str) -> int:
        return sum(s.total for s in await self.hour_sums(date))
