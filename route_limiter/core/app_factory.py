"""Application factory for the rate-limited FastAPI service.

Centralizes app construction (store, limiter, middleware, handlers, routers)
so tests can build isolated apps with an injected store and clock.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from route_limiter.adapters.counter_store import AbstractCounterStore, build_counter_store
from route_limiter.api.routes import health_router
from route_limiter.core.config import settings
from route_limiter.core.exception_handlers import setup_exception_handlers
from route_limiter.core.logging import configure_logging
from route_limiter.core.middleware import request_id_middleware
from route_limiter.limiter import RateLimiter

logger = logging.getLogger(__name__)

_FROM_SETTINGS = object()


def create_app(
    *,
    store: AbstractCounterStore | None | object = _FROM_SETTINGS,
    clock: Callable[[], float] = time.time,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Counter store to use. Defaults to the store described by the
            ``REDIS_*`` settings; pass None to run without a store.
        clock: Time source for admission decisions.
        configure_logs: Whether to (re)configure root logging.

    Returns:
        Configured FastAPI app with the rate limiter installed and the
        ``APP_RATE_LIMIT_ROUTES`` rules registered.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    counter_store = build_counter_store(settings.redis) if store is _FROM_SETTINGS else store

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if counter_store is not None:
            await counter_store.connect()
        try:
            yield
        finally:
            if counter_store is not None:
                await counter_store.close()

    app = FastAPI(
        title="Route Limiter",
        description=(
            "Fixed-window rate limiting per route backed by a shared counter store. "
            "Limited responses carry X-RateLimit-Limit, X-RateLimit-Remaining and "
            "X-RateLimit-Reset; rejected requests get 429 with Retry-After."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware: the last one installed runs first, so request ids wrap the limiter
    limiter = RateLimiter(counter_store, app, clock=clock)
    app.middleware("http")(request_id_middleware)
    app.state.rate_limiter = limiter

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)

    limiter.register_rules(settings.app.rate_limit_routes)
    logger.info(
        "app.created",
        extra={
            "rate_limited_routes": len(limiter.registry),
            "store_configured": counter_store is not None,
        },
    )

    return app
