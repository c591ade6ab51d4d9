"""FastAPI application entry point"""
import logging
import uuid
from pathlib import Path
import tomllib

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import analytics_router, counter_router
from .config import Settings, settings as default_settings
from .scheduler import RolloverHandle, RolloverScheduler
from .services import CounterServices, build_services
from .storage import build_storage_backend
from .utils.errors import InvalidAmount, InvalidDateKey, StorageError, exception_summary

logger = logging.getLogger(__name__)


def _read_app_version() -> str:
    """尽量从仓库根目录的 pyproject.toml 读取版本，避免多处硬编码导致不一致。"""
    try:
        repo_root = Path(__file__).resolve().parents[2]
        pyproject = repo_root / "pyproject.toml"
        if not pyproject.exists():
            return "0.1.0"
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        version = ((data.get("project") or {}).get("version") or "").strip()
        return version or "0.1.0"
    except Exception:
        return "0.1.0"


APP_VERSION = _read_app_version()


def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _normalize_request_id(value: str | None) -> str | None:
    """对外部传入的 request id 做一次简单归一化，避免日志注入/过长字符串。"""
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if not s or len(s) > 64:
        return None
    if any(ord(ch) < 32 for ch in s):
        return None
    return s


def _error_response(request: Request, status_code: int, detail: str, message: str | None = None) -> JSONResponse:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    payload: dict[str, object] = {"detail": detail}
    if message:
        payload["message"] = message
    if rid:
        payload["request_id"] = rid
    headers = {"X-Request-Id": rid} if rid else None
    return JSONResponse(payload, status_code=status_code, headers=headers)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    cfg = app_settings or default_settings

    # 默认降低 SQLAlchemy 的日志噪声；排查 SQL 时再用 SQL_ECHO=true 打开
    if not cfg.sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    app = FastAPI(
        title="Daycount API",
        description="Daily counter with per-day totals and hourly trends",
        version=APP_VERSION,
    )
    app.state.settings = cfg
    app.state.services = None
    app.state.rollover = None

    cors_origins = _split_csv(cfg.cors_allow_origins)
    if not cors_origins or cors_origins == ["*"]:
        cors_origins = ["*"]
        cors_allow_credentials = False
    else:
        cors_allow_credentials = bool(cfg.cors_allow_credentials)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """为每个请求生成/透传 X-Request-Id，并写入响应头。"""
        incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
        rid = _normalize_request_id(incoming) or uuid.uuid4().hex
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler_with_request_id(request: Request, exc: HTTPException):
        response = await fastapi_http_exception_handler(request, exc)
        rid = getattr(getattr(request, "state", None), "request_id", None)
        if rid:
            response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler_with_request_id(request: Request, exc: RequestValidationError):
        response = await request_validation_exception_handler(request, exc)
        rid = getattr(getattr(request, "state", None), "request_id", None)
        if rid:
            response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(InvalidAmount)
    async def invalid_amount_handler(request: Request, exc: InvalidAmount):
        return _error_response(request, 400, "INVALID_AMOUNT", str(exc))

    @app.exception_handler(InvalidDateKey)
    async def invalid_date_handler(request: Request, exc: InvalidDateKey):
        return _error_response(request, 400, "INVALID_DATE", str(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("[STORAGE] Request failed: %s", exception_summary(exc))
        message = exception_summary(exc, max_len=200) if cfg.debug else None
        return _error_response(request, 503, "STORAGE_UNAVAILABLE", message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = getattr(getattr(request, "state", None), "request_id", None)
        logger.exception("[UNHANDLED] request_id=%s", rid or "-")

        # 对外默认不泄露内部异常细节；debug 时给一个可读摘要便于定位
        detail = "INTERNAL_ERROR"
        if cfg.debug:
            detail = exception_summary(exc, max_len=200)
        return _error_response(request, 500, detail)

    # Register API routers
    app.include_router(counter_router, prefix=cfg.api_prefix)
    app.include_router(analytics_router, prefix=cfg.api_prefix)

    @app.on_event("startup")
    async def startup_event():
        """Open storage, seed today's row and arm the midnight rollover"""
        try:
            services = await open_services(cfg)
        except StorageError as e:
            # 不让存储故障把进程拖垮：接口返回 503，修复存储后重启即可
            logger.error("[STARTUP] Storage unavailable: %s", exception_summary(e))
            return
        app.state.services = services
        if cfg.rollover_enabled:
            app.state.rollover = RolloverScheduler(services.backend).start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop rollover and close storage"""
        handle: RolloverHandle | None = app.state.rollover
        if handle is not None:
            handle.cancel()
        services: CounterServices | None = app.state.services
        if services is not None:
            await services.backend.close()
        app.state.services = None

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"message": "Daycount API", "version": APP_VERSION}

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint（包含存储可用性探测）。"""
        services: CounterServices | None = request.app.state.services
        if services is None:
            raise HTTPException(status_code=503, detail="SERVICE_NOT_READY")
        try:
            today = await services.counter_store.get_today()
        except StorageError as e:
            logger.exception("[HEALTH] Storage check failed: %s", exception_summary(e))
            raise HTTPException(status_code=503, detail="STORAGE_UNAVAILABLE") from e

        return {"status": "healthy", "storage": services.backend.name, "today": today.date}

    return app


async def open_services(cfg: Settings) -> CounterServices:
    """按配置打开存储并执行一次 initialize()（建表 + 补今天的 0 行）。"""
    backend = build_storage_backend(cfg)
    await backend.open()
    services = build_services(backend)
    try:
        await services.counter_store.initialize()
    except StorageError as e:
        # 补行失败可以自愈（下一次 increment 会 ensure）；建表失败时后续请求会返回 503
        logger.warning("[STARTUP] Storage initialization failed (backend=%s): %s", backend.name, exception_summary(e))
    return services


app = create_app()
