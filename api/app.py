"""
FastAPI application factory for the enforcement offenders API.

Usage:
    python -m api.app
    APP_DB_PATH=/data/enforcement.sqlite APP_LOG_FORMAT=json python -m api.app

Interactive docs are served at /docs once the server is up.

Settings come from APP_* environment variables (utils.config.AppConfig) and
risk thresholds from RISK_* variables (utils.config.RiskPolicy).  Each app
owns its event bus, stats engine and summary cache on ``app.state``.
"""

import json
import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.database import ensure_schema, get_db_path, set_db_path
from api.routes import dashboard, offenders, records, reports
from enforcement.errors import NotFound
from enforcement.events import CASE_CREATED, NOTICE_CREATED, EventBus
from enforcement.stats import OffenderStatsEngine
from utils.cache import TTLCache
from utils.config import AppConfig, RiskPolicy
from utils.database import connect, get_table_count

_cfg = AppConfig.from_env()

API_PREFIX = "/api/v1"
OFFENDERS_LINK = f"{API_PREFIX}/offenders"
SLOW_REQUEST_MS = 500

# Fields attached to request log records via ``extra=``
_REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "client_ip")

_logger = logging.getLogger("enforcement_api")


# ── Logging ───────────────────────────────────────────────────────────────────

class _JsonFormatter(logging.Formatter):
    """One JSON object per line, request fields included when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (field, getattr(record, field))
            for field in _REQUEST_FIELDS if hasattr(record, field)
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _KeyValueFormatter(logging.Formatter):
    """Plain-text lines with request fields appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [f"{f}={getattr(record, f)}" for f in _REQUEST_FIELDS if hasattr(record, f)]
        return f"{line} {' '.join(pairs)}" if pairs else line


def configure_logging(log_format: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter() if log_format == "json" else _KeyValueFormatter())
    logging.basicConfig(handlers=[handler], level=logging.INFO, force=True)


configure_logging(_cfg.log_format)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _error(status_code: int, error: str, detail: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, "status_code": status_code, **extra},
    )


def _database_status(db_path: Path) -> tuple[int, dict]:
    """Probe the store for /health; returns (http status, body)."""
    if not db_path.exists():
        return 503, {"status": "no_database", "database": str(db_path)}
    try:
        conn = connect(db_path)
        try:
            count = get_table_count(conn, "offenders")
        finally:
            conn.close()
    except sqlite3.Error as exc:
        _logger.warning("health_check_failed error=%s", exc)
        return 503, {"status": "degraded", "database": str(db_path), "error": str(exc)}
    return 200, {"status": "ok", "database": str(db_path), "offenders": count}


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_schema(get_db_path())
    _logger.info("startup database=%s", get_db_path())
    yield
    app.state.summary_subscription.close()


# ── Factory ───────────────────────────────────────────────────────────────────

def create_app(db_path: Path | None = None, policy: RiskPolicy | None = None) -> FastAPI:
    """Build the API.

    Args:
        db_path: SQLite file to serve; defaults to APP_DB_PATH.  The schema
            is created if the file is new.
        policy: Risk thresholds; defaults to ``RiskPolicy.from_env()``.

    Returns:
        The configured FastAPI application.
    """
    if db_path is not None:
        set_db_path(db_path)
    ensure_schema(get_db_path())

    app = FastAPI(
        title="Enforcement Offenders API",
        summary="Offender aggregation and risk classification for regulatory enforcement data.",
        description=(
            "Aggregates enforcement cases and notices by offender.\n\n"
            "- **Repeat offender**: more than one case or notice in total.\n"
            "- **Risk tiers**: *High* needs cases from several agencies, an "
            "escalating fine trend and recent activity; otherwise repeat "
            "offenders are *Moderate* and the rest *Low*.\n"
            "- **Money** is returned as a decimal string plus a display form "
            "(`£100,333.33`)."
        ),
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "offenders", "description": "Offender list and detail views."},
            {"name": "dashboard", "description": "Summary card and agency list."},
            {"name": "reports", "description": "Industry breakdown and top offenders."},
            {"name": "records", "description": "Record new cases and notices."},
            {"name": "meta", "description": "Health check."},
        ],
    )

    bus = EventBus()
    app.state.config = _cfg
    app.state.bus = bus
    app.state.engine = OffenderStatsEngine(policy or RiskPolicy.from_env())
    # the cache only needs to know that something changed
    app.state.summary_subscription = bus.subscribe(CASE_CREATED, NOTICE_CREATED, maxsize=1)
    app.state.summary_cache = TTLCache(
        maxsize=32,
        ttl_seconds=_cfg.summary_cache_ttl,
        invalidate_on=app.state.summary_subscription,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cfg.cors_origins,
        allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = uuid.uuid4().hex[:8]
        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)
        response.headers["X-Request-ID"] = request_id
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else "unknown",
        }
        _logger.info("request", extra=fields)
        if elapsed_ms > SLOW_REQUEST_MS:
            _logger.warning("slow_request", extra=fields)
        return response

    # ── Error handlers ────────────────────────────────────────────────────────

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        _logger.info("offender_not_found id=%s", exc.offender_id)
        return _error(404, "Offender not found", str(exc),
                      links={"offenders": OFFENDERS_LINK})

    @app.exception_handler(ValueError)
    async def bad_request_handler(request: Request, exc: ValueError):
        return _error(400, "Bad request", str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        _logger.exception("unhandled_error path=%s", request.url.path)
        return _error(500, "Internal server error", str(exc))

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """200 with the offender count, or 503 when the store is unreachable."""
        status_code, body = _database_status(get_db_path())
        if status_code != 200:
            return JSONResponse(status_code=status_code, content=body)
        return body

    for module in (offenders, dashboard, reports, records):
        app.include_router(module.router, prefix=API_PREFIX)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:create_app",
        factory=True,
        host=_cfg.api_host,
        port=_cfg.api_port,
        log_level="info",
    )
