from __future__ import annotations

import logging

from ..schemas import CounterSnapshot
from ..storage import CounterTransaction, StorageBackend
from ..utils.dates import Clock, date_key, iso_instant, local_now
from ..utils.errors import InvalidAmount, StorageError
from .increment_log import IncrementLog

logger = logging.getLogger(__name__)


def _validate_amount(amount: object) -> int:
    # bool 是 int 的子类，需要单独排除；1.5 / "2" 这类一律拒绝
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount


class CounterStore:
    """counters 表的唯一写入方：幂等补行、原子累加、清零。"""

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

    async def initialize(self) -> None:
        """建表 + 补今天的 0 行。每次进程启动都可以安全调用。"""
        today = date_key(self.clock())

        async def _work(tx: CounterTransaction) -> None:
            await tx.ensure_schema()
            await tx.ensure_counter(today)

        await self.backend.run_transaction(_work)
        logger.info("[COUNTER] Storage initialized (backend=%s, today=%s)", self.backend.name, today)

    async def increment_today(self, amount: int = 1) -> CounterSnapshot:
        amount = _validate_amount(amount)
        now = self.clock()
        today = date_key(now)
        timestamp = iso_instant(now)

        async def _work(tx: CounterTransaction) -> CounterSnapshot:
            await tx.ensure_counter(today)
            affected = await tx.increment_counter(today, amount)
            if affected == 0:
                # 兜底：理论上 ensure 之后行一定存在；单写者模型下不应发生
                logger.warning("[COUNTER] Row for %s vanished before update, inserting", today)
                await tx.insert_counter(today, amount)
            await self.increment_log.record(
                tx, date=today, hour=now.hour, timestamp=timestamp, amount=amount
            )
            row = await tx.get_counter(today)
            if row is None:
                raise StorageError(f"counter row for {today} missing after increment")
            return CounterSnapshot(date=row.date, count=row.count)

        snapshot = await self.backend.run_transaction(_work)
        logger.debug("[COUNTER] +%s -> %s=%s", amount, snapshot.date, snapshot.count)
        return snapshot

    async def reset_today(self) -> CounterSnapshot:
        """把今天清零。不写增量日志，所以按小时统计不受影响。"""
        today = date_key(self.clock())

        async def _work(tx: CounterTransaction) -> CounterSnapshot:
            await tx.ensure_counter(today)
            await tx.set_counter(today, 0)
            return CounterSnapshot(date=today, count=0)

        snapshot = await self.backend.run_transaction(_work)
        logger.info("[COUNTER] Reset %s to 0", today)
        return snapshot

    async def get_today(self) -> CounterSnapshot:
        today = date_key(self.clock())
        return await self.get_count(today)

    async def get_count(self, date: str) -> CounterSnapshot:
        """只读查询；缺行按 0 返回（不对外暴露 NotFound，下一次写入会自动补行）。"""

        async def _work(tx: CounterTransaction) -> CounterSnapshot:
            row = await tx.get_counter(date)
            return CounterSnapshot(date=date, count=row.count if row else 0)

        return await self.backend.run_query(_work)
