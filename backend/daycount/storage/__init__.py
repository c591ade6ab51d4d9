from __future__ import annotations

from typing import TYPE_CHECKING

from .base import CounterRow, CounterTransaction, HourSum, StorageBackend
from .document import CounterDocument, DocumentStorageBackend
from .kv import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .sql import SqlStorageBackend

if TYPE_CHECKING:
    from ..config import Settings


def build_storage_backend(settings: "Settings") -> StorageBackend:
    """按配置选择存储实现（组合时决定，调用方只依赖 StorageBackend 契约）。"""
    if settings.storage_backend == "document":
        return DocumentStorageBackend(
            FileKeyValueStore(settings.resolve_document_dir()),
            key=settings.document_key,
        )
    return SqlStorageBackend(settings.database_url or "", echo=settings.sql_echo)


__all__ = [
    "CounterDocument",
    "CounterRow",
    "CounterTransaction",
    "DocumentStorageBackend",
    "FileKeyValueStore",
    "HourSum",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlStorageBackend",
    "StorageBackend",
    "build_storage_backend",
]
