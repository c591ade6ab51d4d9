from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from daycount.storage import (  # noqa: E402
    DocumentStorageBackend,
    MemoryKeyValueStore,
    SqlStorageBackend,
)


MEMORY_SQLITE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """可手动拨动的本地时钟。"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_sql_backend() -> SqlStorageBackend:
    return SqlStorageBackend(MEMORY_SQLITE_URL)


def make_document_backend(store: MemoryKeyValueStore | None = None) -> DocumentStorageBackend:
    return DocumentStorageBackend(store or MemoryKeyValueStore())


class FailingSetStore(MemoryKeyValueStore):
    """写入时抛 OSError 的键值存储（模拟磁盘故障）。"""

    def __init__(self, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.fail_writes = False

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        await super().set(key, value)
