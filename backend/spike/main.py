"""
Spike Server — FastAPI Application Factory
===========================================

What:  Creates and configures the FastAPI application instance and runs it.
How:   Factory pattern: create_app() returns a configured FastAPI instance
       with exception handlers, routers and the middleware pipeline installed.
       serve() is the `spike-server` console entry point (uvicorn).
Who:   uvicorn (spike.main:app), the console script, and tests (create_app()).
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌────────────────────────────────────────────────────────────────────┐
    │                           FastAPI App                              │
    │                                                                    │
    │  Middleware Chain (outermost first):                               │
    │  ┌───────────┐ ┌──────────┐ ┌─────────┐ ┌──────┐ ┌────────────┐    │
    │  │ RequestID │→│ Recovery │→│ Timeout │→│ CORS │→│ Access Log │    │
    │  └───────────┘ └──────────┘ └─────────┘ └──────┘ └────────────┘    │
    │                                                                    │
    │  Routes:                                                           │
    │  ┌───────────────────┐ ┌────────────────┐ ┌─────────────────────┐  │
    │  │ POST /auth/regist │ │ POST auth/login│ │ GET /users/profile  │  │
    │  └───────────────────┘ └────────────────┘ └─────────────────────┘  │
    │                                                                    │
    │  Exception Handlers (all answer with the unified envelope):        │
    │  ┌──────────────────────────────────────────────────────────────┐  │
    │  │ SpikeError→own status │ body invalid→400 │ HTTPException→its │  │
    │  └──────────────────────────────────────────────────────────────┘  │
    └────────────────────────────────────────────────────────────────────┘

    No catch-all Exception handler is registered: unexpected faults travel up
    to the Recovery stage, which logs them once and writes the 500 envelope.

Lifecycle:
    Startup:
    1. Initialize structured logging
    2. Apply database migrations (when DB_AUTO_MIGRATE); failure aborts startup
    3. Log startup complete

    Shutdown:
    1. uvicorn stops accepting connections and drains in-flight requests
       (bounded by SHUTDOWN_TIMEOUT_MS)
    2. Dispose database engine (close all connections)
    3. Log shutdown complete
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from spike import resp
from spike.config import Settings
from spike.config import settings as default_settings
from spike.database import Database
from spike.exceptions import SpikeError
from spike.log import setup_logging
from spike.middleware.context import get_request_context
from spike.middleware.pipeline import build_pipeline
from spike.routes import health, users

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manage application lifecycle: startup and shutdown procedures.

    Startup sequence:
        1. Setup structured logging
        2. Run migrations if enabled (an exception here aborts startup)
        3. Log successful startup

    Shutdown sequence:
        1. Dispose database engine (close all pooled connections)
        2. Log shutdown
    """
    settings: Settings = app.state.settings
    database: Database = app.state.database

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info(
        "%s starting up",
        settings.app_name,
        extra={"addr": f"{settings.app_host}:{settings.app_port}", "request_timeout_ms": settings.request_timeout_ms},
    )

    if settings.db_auto_migrate:
        try:
            await database.run_migrations()
        except Exception:
            logger.error("Database migration failed; refusing to start", exc_info=True)
            await database.dispose()
            raise

    logger.info("Server ready at http://%s:%d", settings.app_host, settings.app_port)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("%s shutting down", settings.app_name)
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers that answer with the unified envelope.

    Handler hierarchy:
        SpikeError (and subclasses) → exc.http_status / exc.code / exc.message
        RequestValidationError      → 400 / 10001 / "invalid request body"
        HTTPException (404, 405...) → its status / 10001 for 4xx, 10000 otherwise

    Security: handlers NEVER expose internal details (stack traces, SQL) in the
    response. `exc.context` is logged server-side only.
    """

    @app.exception_handler(SpikeError)
    async def handle_spike_error(request: Request, exc: SpikeError):
        rid = get_request_context(request).request_id
        if exc.http_status >= 500:
            logger.error("%s: %s | Context: %s", type(exc).__name__, exc.message, exc.context, extra={"request_id": rid})
        else:
            logger.warning("%s: %s", type(exc).__name__, exc.message, extra={"request_id": rid})
        return resp.error(exc.http_status, exc.code, exc.message, rid)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """Body is not valid JSON or not an object with string fields."""
        rid = get_request_context(request).request_id
        # Never log raw inputs
        errors = [{key: err.get(key) for key in ("loc", "type", "msg")} for err in exc.errors()]
        logger.warning("invalid request body: %s", errors, extra={"request_id": rid})
        return resp.error(400, resp.Code.INVALID_PARAM, "invalid request body", rid)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        rid = get_request_context(request).request_id
        code = resp.Code.INVALID_PARAM if 400 <= exc.status_code < 500 else resp.Code.INTERNAL_ERROR
        response = resp.error(exc.status_code, code, str(exc.detail).lower(), rid)
        if exc.headers:
            response.headers.update(exc.headers)
        return response


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration; defaults to the environment-loaded module instance
        database: Database handle; defaults to one built from `settings`
                  (no connection is opened until the first query)

    Returns: Fully configured FastAPI instance ready to receive requests.
    """
    settings = settings or default_settings
    database = database or Database.from_settings(settings)

    app = FastAPI(
        title="Spike Server API",
        description="User registration, login and profile API behind a fixed middleware pipeline.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(users.router)
    app.include_router(health.router)

    # ── Middleware Pipeline ───────────────────────────────────────────────
    # RequestID → Recovery → Timeout → CORS → AccessLog → router
    build_pipeline(app, timeout=settings.request_timeout, cors=settings.cors_config)

    return app


def serve(settings: Optional[Settings] = None) -> None:
    """
    Run the server until SIGINT/SIGTERM (`spike-server` console script).

    uvicorn handles the signals: it stops accepting connections, waits up to
    SHUTDOWN_TIMEOUT_MS for in-flight requests, then runs the lifespan shutdown.
    """
    settings = settings or default_settings
    setup_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.app_host,
        port=settings.app_port,
        # Keep our handler; the AccessLog stage replaces uvicorn's access log
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=max(1, settings.shutdown_timeout_ms // 1000),
    )


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `spike.main:app` to be importable
app = create_app()


if __name__ == "__main__":
    serve()
