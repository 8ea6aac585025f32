"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (database, Redis).
Middleware, CORS, exception handlers and routers are all registered here.

create_app() takes an optional Settings so tests can build isolated apps
(in-memory SQLite, cheap bcrypt, tight rate limits) side by side.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from helpdesk import __version__
from helpdesk.api import api_router
from helpdesk.config import Settings
from helpdesk.config import settings as default_settings
from helpdesk.db.engine import Database
from helpdesk.errors import register_exception_handlers
from helpdesk.middleware.rate_limit import MemoryCounter, RateLimitMiddleware, RedisCounter
from helpdesk.middleware.request_id import RequestIdMiddleware
from helpdesk.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(
        "helpdesk.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    if settings.auto_create_tables:
        await app.state.db.create_all()
        logger.info("helpdesk.tables_created")

    if app.state.redis is not None:
        try:
            await app.state.redis.ping()
            logger.info("helpdesk.redis_connected", url=settings.redis_url)
        except RedisError as e:
            # Rate limiting degrades to "allow" while Redis is down
            logger.warning("helpdesk.redis_unavailable", error=str(e))

    yield

    logger.info("helpdesk.shutdown")
    if app.state.redis is not None:
        await app.state.redis.aclose()
    await app.state.db.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings

    app = FastAPI(
        title="Helpdesk API",
        description="Multi-tenant helpdesk — companies, people, tickets and ticket chat",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = Database.from_settings(settings)
    # from_url doesn't connect until the first command
    app.state.redis = redis_from_url(settings.redis_url) if settings.redis_url else None

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RequestId → Security → RateLimit → handler

    app.add_middleware(
        RateLimitMiddleware,
        counter=RedisCounter(app.state.redis) if app.state.redis is not None else MemoryCounter(),
        window_seconds=settings.rate_limit_window_seconds,
        default_limit=settings.rate_limit_requests,
        auth_limit=settings.rate_limit_auth_requests,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: helpdesk.main:app)
app = create_app()
