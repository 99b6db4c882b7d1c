"""Accounts API application: logging, middleware, routers and entry point."""

import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from accounts_api import __version__
from accounts_api.api.routes import api_router
from accounts_api.core.config import settings
from accounts_api.core.exceptions import register_exception_handlers
from accounts_api.core.rate_limit import limiter
from accounts_api.db.session import check_database_connection

TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    """Human-readable logs in development, JSON lines everywhere else."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(TEXT_LOG_FORMAT) if settings.is_development else JSONFormatter()
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level)


configure_logging()
logger = logging.getLogger(__name__)
access_logger = logging.getLogger("requests")

STARTED_AT = time.monotonic()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One log line per request; 4xx/5xx at WARNING. Health probes are skipped."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        started = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        try:
            response = await call_next(request)
        except Exception:
            access_logger.exception(
                "%s %s failed after %.1fms (client %s)",
                request.method, request.url.path, (time.perf_counter() - started) * 1000, client_ip,
            )
            raise

        access_logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            "%s %s -> %d in %.1fms (client %s)",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - started) * 1000, client_ip,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Accounts API {__version__} ({settings.environment})")
    if not check_database_connection():
        raise RuntimeError("Failed to connect to database. Server will not start.")
    yield
    logger.info("Accounts API stopped")


app = FastAPI(
    title="Accounts API",
    description="User registration, authentication and administration",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.state.limiter = limiter
register_exception_handlers(app)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(AccessLogMiddleware)
# Registered last so it wraps everything else (Starlette applies middleware LIFO)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_origins_list != ["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)

app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
def health():
    """Liveness probe; does not touch the database."""
    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


@app.get("/")
def index():
    return {
        "success": True,
        "message": "Accounts API Server",
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "users": settings.api_prefix,
            "docs": "/docs" if settings.is_development else None,
        },
    }


def run() -> None:
    """Console entry point: verify the store, then serve.

    Exits with status 1 when the database cannot be reached.
    """
    import uvicorn

    if not check_database_connection():
        logger.error("Failed to connect to database. Server will not start.")
        sys.exit(1)

    logger.info(f"Server running on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
