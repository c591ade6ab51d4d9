"""关系型后端：SQLAlchemy 异步引擎（SQLite / PostgreSQL）。"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.pool import StaticPool

from ..database import Base, create_storage_engine
from ..models import DailyCounter, IncrementEvent
from ..utils.errors import StorageError, exception_summary
from .base import CounterRow, HourSum, T, TransactionWork, check_writable

logger = logging.getLogger(__name__)

counters = DailyCounter.__table__
increments = IncrementEvent.__table__


class _SqlTransaction:
    def __init__(self, conn: AsyncConnection, *, read_only: bool = False):
        self._conn = conn
        self.read_only = read_only

    async def ensure_schema(self) -> None:
        check_writable(self, "ensure_schema")
        await self._conn.run_sync(Base.metadata.create_all)

    def _insert_ignore(self, date: str):
        dialect = self._conn.dialect.name
        if dialect == "sqlite":
            return sqlite_insert(counters).values(date=date, count=0).on_conflict_do_nothing(
                index_elements=["date"]
            )
        if dialect.startswith("postgresql"):
            return pg_insert(counters).values(date=date, count=0).on_conflict_do_nothing(
                index_elements=["date"]
            )
        return None

    async def ensure_counter(self, date: str) -> None:
        check_writable(self, "ensure_counter")
        stmt = self._insert_ignore(date)
        if stmt is not None:
            await self._conn.execute(stmt)
            return
        # 其他方言：先查后插（写事务本身已串行）
        if await self.get_counter(date) is None:
            await self.insert_counter(date, 0)

    async def increment_counter(self, date: str, amount: int) -> int:
        check_writable(self, "increment_counter")
        result = await self._conn.execute(
            update(counters)
            .where(counters.c.date == date)
            .values(count=counters.c.count + amount)
        )
        return int(result.rowcount or 0)

    async def insert_counter(self, date: str, count: int) -> None:
        check_writable(self, "insert_counter")
        await self._conn.execute(insert(counters).values(date=date, count=count))

    async def set_counter(self, date: str, count: int) -> int:
        check_writable(self, "set_counter")
        result = await self._conn.execute(
            update(counters).where(counters.c.date == date).values(count=count)
        )
        return int(result.rowcount or 0)

    async def get_counter(self, date: str) -> CounterRow | None:
        result = await self._conn.execute(
            select(counters.c.date, counters.c.count).where(counters.c.date == date).limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return CounterRow(date=row[0], count=int(row[1] or 0))

    async def list_counters(self) -> list[CounterRow]:
        result = await self._conn.execute(
            select(counters.c.date, counters.c.count).order_by(counters.c.date.asc())
        )
        return [CounterRow(date=r[0], count=int(r[1] or 0)) for r in result.fetchall()]

    async def append_increment(self, date: str, hour: int, timestamp: str, amount: int) -> int:
        check_writable(self, "append_increment")
        result = await self._conn.execute(
            insert(increments).values(date=date, hour=hour, timestamp=timestamp, amount=amount)
        )
        return int(result.inserted_primary_key[0])

    async def hour_sums(self, date: str) -> list[HourSum]:
        result = await self._conn.execute(
            select(increments.c.hour, func.sum(increments.c.amount))
            .where(increments.c.date == date)
            .group_by(increments.c.hour)
            .order_by(increments.c.hour.asc())
        )
        return [HourSum(hour=int(r[0]), total=int(r[1] or 0)) for r in result.fetchall()]


class SqlStorageBackend:
    """基于 SQLAlchemy 的存储后端。

    - 写事务：`engine.begin()`，异常时整体回滚；进程内用 asyncio.Lock 串行化。
    - 读事务：独立连接，不拿写锁；结束时回滚（只读）。
      例外：StaticPool（:memory:）下所有连接是同一条，读也要拿写锁。
    """

    name = "sql"

    def __init__(self, database_url: str, *, echo: bool = False, engine: AsyncEngine | None = None):
        self.database_url = database_url
        self._echo = echo
        self._engine = engine
        self._owns_engine = engine is None
        self._write_lock = asyncio.Lock()

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StorageError("sql backend is not open")
        return self._engine

    async def open(self) -> None:
        if self._engine is None:
            self._engine = create_storage_engine(self.database_url, echo=self._echo)
            self._owns_engine = True
        logger.info("[STORAGE] SQL backend opened (dialect=%s)", self._engine.dialect.name)

    async def close(self) -> None:
        if self._engine is None:
            return
        if self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        logger.info("[STORAGE] SQL backend closed")

    async def run_transaction(self, work: TransactionWork[T]) -> T:
        engine = self.engine
        async with self._write_lock:
            try:
                async with engine.begin() as conn:
                    return await work(_SqlTransaction(conn))
            except SQLAlchemyError as e:
                logger.warning("[STORAGE] Transaction rolled back: %s", exception_summary(e))
                raise StorageError(exception_summary(e)) from e
            except OSError as e:
                raise StorageError(exception_summary(e)) from e

    async def run_query(self, work: TransactionWork[T]) -> T:
        engine = self.engine
        if isinstance(engine.sync_engine.pool, StaticPool):
            # :memory: 只有一条共享连接：读的回滚会波及进行中的写事务，必须与写串行
            async with self._write_lock:
                return await self._query(engine, work)
        return await self._query(engine, work)

    async def _query(self, engine: AsyncEngine, work: TransactionWork[T]) -> T:
        try:
            async with engine.connect() as conn:
                try:
                    return await work(_SqlTransaction(conn, read_only=True))
                finally:
                    await conn.rollback()
        except SQLAlchemyError as e:
            raise StorageError(exception_summary(e)) from e
        except OSError as e:
            raise StorageError(exception_summary(e)) from e
