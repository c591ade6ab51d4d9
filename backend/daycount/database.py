from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

# Base class for models
Base = declarative_base()


def _is_sqlite(url: str) -> bool:
    return str(url or "").startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"))


def create_storage_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """按 URL 创建异步引擎（同时支持 SQLite 与 PostgreSQL）。

    针对 SQLite 做一些“更像生产”的默认优化：
    - busy_timeout：降低并发写入下的 “database is locked”
    - WAL：读事务不会被写事务阻塞，且只会看到已提交的数据
    - :memory: 必须共用同一个连接（StaticPool），否则每个连接都是一份空库
    """
    if _is_memory_sqlite(database_url):
        engine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            future=True,
            connect_args={"timeout": 30} if _is_sqlite(database_url) else {},
        )

    # 只有 SQLite 才需要 PRAGMA；PostgreSQL 会忽略
    if _is_sqlite(database_url):
        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            if not _is_memory_sqlite(database_url):
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA busy_timeout=30000;")
            cursor.close()

    return engine
