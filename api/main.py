"""
api/main.py -- FastAPI application entry point for the auth provider.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan wires the object graph onto app.state at startup:
  settings -> engine -> OwnerStore/TokenStore -> AccessTokenRegistry
  -> TokenEngine -> EmailDispatchClient -> AccountService
and starts the blacklist purge task. Shutdown cancels the task and releases
the DB engine and HTTP session. A ConfigurationError during startup aborts
the process -- tokens are never issued with incomplete signing config.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.messages import envelope, transport_error
from api.models import HealthResponse
from api.routes.v1.account import router as account_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.reference import router as reference_router
from auth.dispatch import EmailDispatchClient
from auth.registry import AccessTokenRegistry
from auth.service import AccountService
from auth.store import OwnerStore, TokenStore, open_engine
from auth.tokens import TokenEngine
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authprovider.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired blacklist entries every BLACKLIST_PURGE_INTERVAL_SECONDS.

    asyncio.sleep yields to the event loop between iterations. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(app.state.settings.blacklist_purge_interval_seconds)
        removed = app.state.token_registry.purge_expired()
        logger.debug("Blacklist sweep removed %d entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service graph on startup and tear it down on shutdown."""
    logger.info("Auth provider starting up (environment=%s)", _settings.environment)
    app.state.settings = _settings
    app.state.db_engine = open_engine(_settings.database_url)
    app.state.owner_store = OwnerStore(app.state.db_engine)
    app.state.token_store = TokenStore(app.state.db_engine)
    app.state.token_registry = AccessTokenRegistry(grace=timedelta(minutes=_settings.blacklist_grace_minutes))
    app.state.token_engine = TokenEngine(
        _settings, app.state.owner_store, app.state.token_store, app.state.token_registry
    )
    app.state.dispatch = EmailDispatchClient(_settings)
    app.state.account_service = AccountService(
        _settings, app.state.owner_store, app.state.token_engine, app.state.dispatch
    )
    logger.info("Token engine initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.dispatch.close()
    app.state.db_engine.dispose()
    logger.info("Auth provider shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth Provider API",
    description="Registration, email verification, password reset and session tokens for users and companies.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # AccessToken cookie
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Accept-Language"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # slowapi resolves the limiter from app.state


@app.middleware("http")
async def access_log(request: Request, call_next):
    """One line per request. Query strings are left out: reset links carry ids."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(account_router, prefix="/api/v1", tags=["Account"])
app.include_router(reference_router, prefix="/api/v1", tags=["Reference"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves in the same {"error": {code, message, detail}} envelope
# with a localized message. Internal exception text never reaches a client.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = transport_error(request, 429, "rate_limited", detail=str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 naming each failing field and the reason. Submitted values are not echoed."""
    problems = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    ]
    return transport_error(request, 422, "validation_error", detail="; ".join(problems))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Dependencies raise with a {code, message} dict; anything else is wrapped."""
    if isinstance(exc.detail, dict):
        return envelope(exc.status_code, exc.detail.get("code", "error"), exc.detail.get("message", ""))
    return envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Store outages and bugs end up here: logged with traceback, reported as 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return transport_error(request, 500, "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint -- never rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database probe."""
    try:
        request.app.state.owner_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
