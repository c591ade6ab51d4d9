"""键值模拟后端：没有关系型引擎时，用一份 JSON 文档模拟 counters / increments 两张表。

整份文档存在一个 key 下；每个写事务在副本上执行，成功后整体重写，失败时直接丢弃副本，
因此不会出现“写了一半”的状态。
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from pydantic import BaseModel, Field, ValidationError

from ..utils.errors import StorageError, exception_summary
from .base import CounterRow, HourSum, T, TransactionWork, check_writable
from .kv import KeyValueStore

logger = logging.getLogger(__name__)


class StoredIncrement(BaseModel):
    id: int
    date: str
    hour: int
    timestamp: str
    amount: int


class CounterDocument(BaseModel):
    """落盘的文档格式。"""

    version: int = 1
    counters: dict[str, int] = Field(default_factory=dict)
    increments: list[StoredIncrement] = Field(default_factory=list)
    next_increment_id: int = 1


class _DocumentTransaction:
    def __init__(self, doc: CounterDocument, *, exists: bool, read_only: bool = False):
        self.doc = doc
        self.exists = exists
        self.read_only = read_only
        self.dirty = False

    def _require_schema(self, table: str) -> None:
        # 与 SQL 后端保持一致：建表之前读写都会失败
        if not self.exists:
            raise StorageError(f"no such table: {table}")

    async def ensure_schema(self) -> None:
        check_writable(self, "ensure_schema")
        if not self.exists:
            self.exists = True
            self.dirty = True

    async def ensure_counter(self, date: str) -> None:
        check_writable(self, "ensure_counter")
        self._require_schema("counters")
        if date not in self.doc.counters:
            self.doc.counters[date] = 0
            self.dirty = True

    async def increment_counter(self, date: str, amount: int) -> int:
        check_writable(self, "increment_counter")
        self._require_schema("counters")
        if date not in self.doc.counters:
            return 0
        self.doc.counters[date] = int(self.doc.counters[date]) + int(amount)
        self.dirty = True
        return 1

    async def insert_counter(self, date: str, count: int) -> None:
        check_writable(self, "insert_counter")
        self._require_schema("counters")
        if date in self.doc.counters:
            raise StorageError(f"UNIQUE constraint failed: counters.date ({date})")
        self.doc.counters[date] = int(count)
        self.dirty = True

    async def set_counter(self, date: str, count: int) -> int:
        check_writable(self, "set_counter")
        self._require_schema("counters")
        if date not in self.doc.counters:
            return 0
        self.doc.counters[date] = int(count)
        self.dirty = True
        return 1

    async def get_counter(self, date: str) -> CounterRow | None:
        self._require_schema("counters")
        if date not in self.doc.counters:
            return None
        return CounterRow(date=date, count=int(self.doc.counters[date]))

    async def list_counters(self) -> list[CounterRow]:
        self._require_schema("counters")
        return [CounterRow(date=d, count=int(self.doc.counters[d])) for d in sorted(self.doc.counters)]

    async def append_increment(self, date: str, hour: int, timestamp: str, amount: int) -> int:
        check_writable(self, "append_increment")
        self._require_schema("increments")
        event_id = self.doc.next_increment_id
        self.doc.increments.append(
            StoredIncrement(id=event_id, date=date, hour=hour, timestamp=timestamp, amount=amount)
        )
        self.doc.next_increment_id = event_id + 1
        self.dirty = True
        return event_id

    async def hour_sums(self, date: str) -> list[HourSum]:
        self._require_schema("increments")
        sums: dict[int, int] = defaultdict(int)
        for event in self.doc.increments:
            if event.date == date:
                sums[event.hour] += event.amount
        return [HourSum(hour=h, total=sums[h]) for h in sorted(sums)]


class DocumentStorageBackend:
    name = "document"

    def __init__(self, store: KeyValueStore, *, key: str = "counters_storage_v1"):
        self.store = store
        self.key = key
        self._write_lock = asyncio.Lock()
        self._opened = False
        # 最近一次提交后的文档；提交时整体替换，不原地修改
        self._committed: CounterDocument | None = None

    async def _read_document(self) -> CounterDocument | None:
        try:
            raw = await self.store.get(self.key)
        except OSError as e:
            raise StorageError(exception_summary(e)) from e
        if raw is None:
            return None
        try:
            return CounterDocument.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"corrupt document under key {self.key!r}: {exception_summary(e)}") from e

    async def open(self) -> None:
        self._committed = await self._read_document()
        self._opened = True
        logger.info(
            "[STORAGE] Document backend opened (key=%s, days=%s)",
            self.key,
            len(self._committed.counters) if self._committed else 0,
        )

    async def close(self) -> None:
        self._opened = False
        self._committed = None
        logger.info("[STORAGE] Document backend closed")

    def _ensure_open(self) -> None:
        if not self._opened:
            raise StorageError("document backend is not open")

    async def run_transaction(self, work: TransactionWork[T]) -> T:
        self._ensure_open()
        async with self._write_lock:
            base = self._committed
            working = base.model_copy(deep=True) if base is not None else CounterDocument()
            tx = _DocumentTransaction(working, exists=base is not None)
            result = await work(tx)
            if tx.dirty:
                try:
                    await self.store.set(self.key, working.model_dump_json())
                except (OSError, ValueError) as e:
                    logger.warning("[STORAGE] Document rewrite failed: %s", exception_summary(e))
                    raise StorageError(exception_summary(e)) from e
                self._committed = working
            return result

    async def run_query(self, work: TransactionWork[T]) -> T:
        self._ensure_open()
        snapshot = self._committed
        tx = _DocumentTransaction(
            snapshot if snapshot is not None else CounterDocument(),
            exists=snapshot is not None,
            read_only=True,
        )
        return await work(tx)
