"""存储后端的统一契约。

两种实现（sql / document）对每个原语都必须给出完全相同的可观察行为：
- 一次 `run_transaction` 里的所有语句要么全部生效，要么全部不生效；
- 事务之间串行执行，语句不会交错；
- 任何 I/O / 约束 / 序列化失败都包装成 `StorageError`，且不留下部分写入。
"""

from __future__ import annotations

from typing import Awaitable, Callable, NamedTuple, Protocol, TypeVar

from ..utils.errors import StorageError


T = TypeVar("T")


class CounterRow(NamedTuple):
    date: str
    count: int


class HourSum(NamedTuple):
    hour: int
    total: int


class CounterTransaction(Protocol):
    """事务内可用的原语（作用于 counters / increments 两张逻辑表）。"""

    read_only: bool

    async def ensure_schema(self) -> None: ...

    async def ensure_counter(self, date: str) -> None: ...

    async def increment_counter(self, date: str, amount: int) -> int: ...

    async def insert_counter(self, date: str, count: int) -> None: ...

    async def set_counter(self, date: str, count: int) -> int: ...

    async def get_counter(self, date: str) -> CounterRow | None: ...

    async def list_counters(self) -> list[CounterRow]: ...

    async def append_increment(self, date: str, hour: int, timestamp: str, amount: int) -> int: ...

    async def hour_sums(self, date: str) -> list[HourSum]: ...


TransactionWork = Callable[[CounterTransaction], Awaitable[T]]


class StorageBackend(Protocol):
    name: str

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def run_transaction(self, work: TransactionWork[T]) -> T: ...

    async def run_query(self, work: TransactionWork[T]) -> T: ...


def check_writable(tx: CounterTransaction, op: str) -> None:
    if tx.read_only:
        raise StorageError(f"{op}: not allowed in a read-only transaction")
