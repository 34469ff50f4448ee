"""
api/main.py -- FastAPI application factory for authrelay.

A thin HTTP facade over a managed identity backend: login, registration,
logout, profile update and password change are forwarded to the backend and
the responses relayed as JSON.

Run with:  python main.py
           uvicorn asgi:app --reload

Dependency injection:
  create_app(backend=..., profiles=...) wires the identity backend and the
  profile mirror store into app.state. Anything not injected is built from
  Settings in the lifespan (Supabase clients, SQL mirror). Tests inject
  in-memory fakes and never touch the network.

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. log_requests       -- one log line per request with status and latency

Error envelope: every 4xx/5xx body is {"error": "<message>"}.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.token_cache import TokenCache
from core.config import VERSION, Settings, get_settings
from identity.backend import IdentityBackend
from identity.supabase import SupabaseIdentityBackend, create_supabase_client
from profiles.store import ProfileStore, SqlProfileStore, SupabaseProfileStore

logger = logging.getLogger("authrelay.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: float) -> None:
    """Drop expired token cache entries every `interval` seconds.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        removed = app.state.token_cache.purge_expired()
        if removed:
            logger.debug("Token cache purge removed %d entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


async def _build_profile_store(settings: Settings) -> ProfileStore:
    if settings.profile_store_url:
        logger.info("Profile mirror: SQL store")
        return SqlProfileStore(settings.profile_store_url)
    # Separate client from the identity backend's: a client that signs users
    # in would otherwise send their JWT with every table write.
    logger.info("Profile mirror: Supabase table %r", settings.profiles_table)
    return SupabaseProfileStore(await create_supabase_client(settings), settings.profiles_table)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build whatever was not injected, start the cache purge task, tear down on exit.

    Startup order matters:
      1. Identity backend -- fails fast on missing SUPABASE_URL / SUPABASE_KEY.
      2. Profile store.
      3. Purge task last -- references app.state.token_cache.
    """
    settings: Settings = app.state.settings
    logger.info("authrelay %s starting up", VERSION)

    if app.state.backend is None:
        app.state.backend = await SupabaseIdentityBackend.create(settings)
    if app.state.profiles is None:
        app.state.profiles = await _build_profile_store(settings)

    purge_task: Optional[asyncio.Task] = None
    if app.state.token_cache.enabled:
        purge_task = asyncio.create_task(_purge_loop(app, max(app.state.token_cache.ttl, 1)))
        logger.info("Token cache enabled (ttl=%ds)", app.state.token_cache.ttl)

    yield

    if purge_task is not None:
        purge_task.cancel()
    if isinstance(app.state.profiles, SqlProfileStore):
        app.state.profiles.close()
    logger.info("authrelay shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers,
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded, with Retry-After in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error(429, "Too many requests.", headers={"Retry-After": str(retry_after)})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or ill-typed JSON bodies are a client error: 400, not 422."""
    logger.info("Invalid request body on %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(400, "Invalid request body")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException (routes, Auth Gate, router 404/405) as {"error": detail}."""
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception is logged with its traceback; the client receives only a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    backend: Optional[IdentityBackend] = None,
    profiles: Optional[ProfileStore] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Assemble the FastAPI app.

    Args:
        backend:  IdentityBackend to use. None builds SupabaseIdentityBackend at startup.
        profiles: Profile mirror store. None builds one from Settings at startup.
        settings: Defaults to the get_settings() singleton.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(
        title="authrelay",
        description="HTTP facade over a managed identity backend.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend
    app.state.profiles = profiles
    app.state.token_cache = TokenCache(ttl=settings.token_cache_ttl_seconds)
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    app.middleware("http")(log_requests)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(users_router, prefix="/api", tags=["User"])

    @app.get("/api/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return liveness and which collaborators are wired. Never rate limited."""
        return HealthResponse(
            version=VERSION,
            components={
                "app": "ok",
                "backend": "ok" if app.state.backend is not None else "unavailable",
                "profiles": "ok" if app.state.profiles is not None else "unavailable",
            },
        )

    return app
