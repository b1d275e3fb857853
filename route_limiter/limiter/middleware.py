"""Rate limiter middleware factory for FastAPI/Starlette applications.

Two ways to apply a limit:

Route-filtered (``path`` and ``method`` given)::

    limiter = RateLimiter(store, app)
    limiter.register(path="/search", method="GET", total=30, expire_ms=60_000)

The limiter's HTTP middleware intercepts matching requests automatically;
``register`` returns None.

Direct mount (``path`` and ``method`` omitted)::

    guard = limiter.register(total=3, expire_ms=60_000)

    @app.get("/direct", dependencies=[Depends(guard)])
    async def direct(): ...

Every request reaching the dependency counts against the route it runs under.
When the limiter is also installed on the app, its headers reach responses
the endpoint builds itself (``JSONResponse`` and friends).

Both modes share one pipeline: bypass policy, key resolution, atomic increment,
response headers. The store is injected; passing None (or a store that reports
itself disconnected) turns the limiter into a transparent pass-through.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Iterable

from fastapi import FastAPI, HTTPException, Request, Response, status

from route_limiter.adapters.counter_store.base import AbstractCounterStore
from route_limiter.core.config import RouteRule, settings
from route_limiter.core.errors import ConfigurationAppError
from route_limiter.limiter.engine import AdmissionDecision, AdmissionEngine
from route_limiter.limiter.headers import (
    REJECTION_DETAIL,
    build_rate_limit_headers,
    build_rejection_response,
)
from route_limiter.limiter.policy import AdmissionPolicy
from route_limiter.limiter.routes import (
    KeyBuilder,
    RouteConfig,
    RouteRegistry,
    Whitelist,
    WindowKeyResolver,
)

logger = logging.getLogger(__name__)

RateLimitDependency = Callable[[Request, Response], Awaitable[None]]


class RateLimiter:
    """Register per-route limits and enforce them on incoming requests."""

    def __init__(
        self,
        store: AbstractCounterStore | None = None,
        app: FastAPI | None = None,
        *,
        key_prefix: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared counter store; None disables limiting.
            app: Application to install the route-filtered middleware on.
            key_prefix: Counter key namespace (defaults to settings).
            clock: Time source function returning UNIX time in seconds.
        """
        self._store = store
        self._resolver = WindowKeyResolver(key_prefix or settings.app.rate_limit_key_prefix)
        self._registry = RouteRegistry(self._resolver)
        self._engine = AdmissionEngine(store, clock=clock) if store is not None else None
        self._policy = AdmissionPolicy(store, self._engine, self._resolver)
        if app is not None:
            self.init_app(app)

    @property
    def store(self) -> AbstractCounterStore | None:
        return self._store

    @property
    def registry(self) -> RouteRegistry:
        return self._registry

    def init_app(self, app: FastAPI) -> None:
        """Install the route-filtered middleware on ``app``."""
        app.middleware("http")(self.dispatch)

    def register(
        self,
        *,
        path: str | None = None,
        method: str | None = None,
        total: int | None = None,
        expire_ms: int | None = None,
        skip_headers: bool | None = None,
        ignore_store_errors: bool | None = None,
        whitelist: Whitelist | None = None,
        key_builder: KeyBuilder | None = None,
    ) -> RateLimitDependency | None:
        """Register a rate limit.

        Omitted values fall back to the ``APP_RATE_LIMIT_*`` settings.

        Args:
            path: Path template to intercept (route-filtered mode).
            method: HTTP method to intercept, or ``ALL`` (route-filtered mode).
            total: Requests allowed per window.
            expire_ms: Window duration in milliseconds.
            skip_headers: Suppress the rate limit headers.
            ignore_store_errors: Allow requests when the store errors.
            whitelist: Predicate on the request; truthy skips the limiter.
            key_builder: Optional per-client key segment.

        Returns:
            None in route-filtered mode; a FastAPI dependency in direct-mount
            mode.

        Raises:
            ConfigurationAppError: If the configuration is invalid.
        """
        app_settings = settings.app
        route = RouteConfig(
            path=path,
            method=method,
            total=app_settings.rate_limit_default_total if total is None else total,
            expire_ms=(
                app_settings.rate_limit_default_expire_ms if expire_ms is None else expire_ms
            ),
            skip_headers=(
                app_settings.rate_limit_skip_headers if skip_headers is None else skip_headers
            ),
            ignore_store_errors=(
                app_settings.rate_limit_ignore_store_errors
                if ignore_store_errors is None
                else ignore_store_errors
            ),
            whitelist=whitelist,
            key_builder=key_builder,
        )

        logger.info(
            "rate_limit.route_registered",
            extra={
                "mode": "direct" if route.direct_mount else "route",
                "route_path": route.path,
                "route_method": route.method,
                "limit": route.total,
                "window_ms": route.expire_ms,
            },
        )

        if route.direct_mount:
            return self._build_dependency(route)

        self._registry.add(route)
        return None

    def register_rules(self, rules: Iterable[RouteRule]) -> None:
        """Register route-filtered limits declared in configuration."""
        for rule in rules:
            self.register(**rule.model_dump())

    def _build_dependency(self, route: RouteConfig) -> RateLimitDependency:
        async def enforce_rate_limit(request: Request, response: Response) -> None:
            decision = await self._policy.check(request, route)
            if decision is None:
                return

            headers = build_rate_limit_headers(decision, skip_headers=route.skip_headers)
            if not decision.allowed:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=REJECTION_DETAIL,
                    headers=headers or None,
                )
            response.headers.update(headers)
            # Picked up by dispatch when the endpoint returns its own Response
            request.state.rate_limit_headers = headers

        return enforce_rate_limit

    async def dispatch(self, request: Request, call_next) -> Response:
        """HTTP middleware enforcing route-filtered limits.

        Every registered route matching the request is evaluated in
        registration order. The first rejection stops evaluation and answers
        429; otherwise the headers of the most restrictive decision are sent.
        Headers left on ``request.state`` by direct-mount dependencies are
        copied onto the final response as well.
        """
        evaluated: list[tuple[RouteConfig, AdmissionDecision]] = []
        for route in self._registry.match(request):
            decision = await self._policy.check(request, route)
            if decision is None:
                continue
            if not decision.allowed:
                return build_rejection_response(
                    build_rate_limit_headers(decision, skip_headers=route.skip_headers)
                )
            evaluated.append((route, decision))

        response: Response = await call_next(request)

        mounted_headers = getattr(request.state, "rate_limit_headers", None)
        if mounted_headers:
            response.headers.update(mounted_headers)
        if evaluated:
            route, decision = min(evaluated, key=lambda item: item[1].remaining)
            response.headers.update(
                build_rate_limit_headers(decision, skip_headers=route.skip_headers)
            )
        return response

    async def current_quota(self, path: str, method: str) -> AdmissionDecision | None:
        """Read the quota of a registered route without consuming it.

        Returns:
            The decision the next request would get, or None when no store is
            usable.

        Raises:
            ConfigurationAppError: If no route is registered for path/method.
            StoreAppError: If the store read fails.
        """
        route = self._registry.get(path, method)
        if route is None:
            raise ConfigurationAppError(
                code="route_not_registered",
                message="No rate limit is registered for this path and method",
                details={"context": {"path": path, "method": method}},
            )
        if route.key_builder is not None:
            raise ConfigurationAppError(
                code="route_keyed_per_client",
                message="Quota of a per-client route depends on the request",
                details={"context": {"path": path, "method": method}},
            )
        if self._engine is None or not await self._store.is_available():
            return None

        key = self._resolver.route_key(route.path, route.method)
        return await self._engine.peek(key, route.total, route.expire_ms)

    async def store_status(self) -> str:
        """Report the store state: connected, unavailable or not_configured."""
        if self._store is None:
            return "not_configured"
        return "connected" if await self._store.is_available() else "unavailable"
