from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PACKAGE_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _PACKAGE_DIR.parent
_REPO_ROOT = _BACKEND_DIR.parent

STORAGE_BACKENDS = ("sql", "document")


def _load_root_dotenv() -> None:
    """
    统一从仓库根目录读取 `.env`（并保证其优先级最高）。

    说明：
    - 启动脚本通常会 `cd backend`，导致工具默认只会找子目录下的 `.env`。
    - 这里显式加载：先加载 `backend/.env`，再加载根目录 `.env`，并且 `override=True`，确保根目录 `.env` 优先。
    """

    backend_env = _BACKEND_DIR / ".env"
    root_env = _REPO_ROOT / ".env"

    for env_file in (backend_env, root_env):
        if env_file.exists():
            load_dotenv(env_file, override=True, encoding="utf-8")


class Settings(BaseSettings):
    """Application settings"""

    # Server（供 run.py 使用）
    backend_host: str = "127.0.0.1"
    backend_port: int = 31020
    backend_reload: bool = False

    # Storage
    # - sql：关系型数据库（默认 SQLite，也可以用 DATABASE_URL 指向 PostgreSQL）
    # - document：没有关系型引擎时的键值模拟层（整份 JSON 文档存在一个 key 下）
    storage_backend: str = "sql"

    # 优先使用 DATABASE_URL；不配置时再使用 SQLITE_DB_PATH 生成 sqlite URL
    database_url: str | None = None
    sqlite_db_path: str = "daycount.db"
    # 是否输出 SQLAlchemy 的 SQL 日志，排查事务时再临时打开
    sql_echo: bool = False

    # document 后端：文件目录 + 存储 key（一个 key 对应一个文件）
    document_store_dir: str = "data"
    document_key: str = "counters_storage_v1"

    # API
    api_prefix: str = "/api"
    debug: bool = True

    # CORS（逗号分隔；默认 "*" 时会强制关闭 allow_credentials）
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False

    # 零点自动补当天的 0 计数行
    rollover_enabled: bool = True

    # “最近 N 天”列表默认的天数
    recent_days: int = 7

    @model_validator(mode="after")
    def _build_database_url_if_missing(self) -> "Settings":
        if self.database_url and self.database_url.strip():
            return self

        db_path = Path(self.sqlite_db_path)
        if not db_path.is_absolute():
            db_path = (_REPO_ROOT / db_path).resolve()

        self.database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"
        return self

    @model_validator(mode="after")
    def _normalize_storage(self) -> "Settings":
        backend = (self.storage_backend or "sql").strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"STORAGE_BACKEND 只支持 {', '.join(STORAGE_BACKENDS)}，当前为 {self.storage_backend!r}"
            )
        self.storage_backend = backend

        if not (self.document_key or "").strip():
            self.document_key = "counters_storage_v1"

        if int(self.recent_days or 0) <= 0:
            self.recent_days = 7
        return self

    def resolve_document_dir(self) -> Path:
        path = Path(self.document_store_dir)
        if path.is_absolute():
            return path
        return (_REPO_ROOT / path).resolve()

    model_config = SettingsConfigDict(
        case_sensitive=False
    )


_load_root_dotenv()
settings = Settings()
