"""零点补行调度器：每个本地自然日开始时确保有一行 count=0。"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from .storage import CounterTransaction, StorageBackend
from .utils.dates import Clock, date_key, local_now, seconds_until_next_midnight
from .utils.errors import exception_summary

logger = logging.getLogger(__name__)


class RolloverState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"
    STOPPED = "stopped"


class RolloverHandle:
    """start() 的返回值；cancel() 可重复调用，触发之后再调用也安全。"""

    def __init__(self, owner: "RolloverScheduler"):
        self._owner = owner

    def cancel(self) -> None:
        self._owner.cancel()


class RolloverScheduler:
    """一次性定时器 + 触发后重新布防：IDLE → ARMED → (FIRED → ARMED)* → STOPPED。"""

    JOB_ID = "counter_rollover"

    def __init__(
        self,
        backend: StorageBackend,
        *,
        clock: Clock = local_now,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.backend = backend
        self.clock = clock
        # 关键约束：
        # - max_instances=1：避免任务重入
        # - coalesce=True：错过的多次触发合并为一次
        self.scheduler = scheduler or AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._owns_scheduler = scheduler is None
        self.state = RolloverState.IDLE
        self.next_run_at: datetime | None = None

    def start(self) -> RolloverHandle:
        """启动并布防到下一个本地零点。需要在事件循环内调用。"""
        if self.state is RolloverState.STOPPED:
            raise RuntimeError("rollover scheduler has been stopped")

        if self.state is RolloverState.IDLE:
            if not getattr(self.scheduler, "running", False):
                self.scheduler.start()
            self._arm()
        return RolloverHandle(self)

    def _arm(self) -> None:
        if self.state is RolloverState.STOPPED:
            return

        now = self.clock()
        run_at = now + timedelta(seconds=seconds_until_next_midnight(now))
        self.scheduler.add_job(
            self.run_rollover,
            trigger=DateTrigger(run_date=run_at),
            id=self.JOB_ID,
            name="Seed the counter row for the new day",
            replace_existing=True,
            # 进程休眠/卡顿错过零点时仍然执行一次
            misfire_grace_time=None,
        )
        self.next_run_at = run_at
        self.state = RolloverState.ARMED
        logger.info("[ROLLOVER] Armed for %s", run_at.isoformat(timespec="seconds"))

    async def run_rollover(self) -> None:
        """定时器触发：补新一天的 0 行，然后无论成功与否都重新布防。"""
        if self.state is RolloverState.STOPPED:
            return
        self.state = RolloverState.FIRED

        new_date = date_key(self.clock())

        async def _seed(tx: CounterTransaction) -> None:
            await tx.ensure_counter(new_date)

        try:
            await self.backend.run_transaction(_seed)
            logger.info("[ROLLOVER] Seeded counter row for %s", new_date)
        except Exception as e:
            # 尽力而为：下次 initialize() / increment 时会自动补行
            logger.warning("[ROLLOVER] Seed for %s failed: %s", new_date, exception_summary(e))
        finally:
            self._arm()

    def cancel(self) -> None:
        if self.state is RolloverState.STOPPED:
            return
        self.state = RolloverState.STOPPED
        self.next_run_at = None

        try:
            self.scheduler.remove_job(self.JOB_ID)
        except JobLookupError:
            pass

        if self._owns_scheduler and getattr(self.scheduler, "running", False):
            self.scheduler.shutdown(wait=False)
        logger.info("[ROLLOVER] Scheduler stopped")
