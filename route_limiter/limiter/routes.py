"""Route configuration, registry and counter key resolution.

A ``RouteConfig`` is created once per ``RateLimiter.register`` call and never
mutated. Route-filtered configs live in a ``RouteRegistry`` consulted on every
request; direct-mount configs are captured by the dependency they produce.

Counter keys are derived from route identity only, so every request that hits
the same logical route shares one counter record per window. An optional
``key_builder`` can append a per-client segment.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from starlette.requests import Request
from starlette.routing import compile_path

from route_limiter.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

ALL_METHODS = "ALL"

Whitelist = Callable[[Request], Any]
KeyBuilder = Callable[[Request], str]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class RouteConfig:
    """Immutable rate limit configuration for one registration.

    Attributes:
        total: Requests allowed per window (0 rejects everything).
        expire_ms: Window duration in milliseconds.
        path: Starlette path template; None in direct-mount mode.
        method: HTTP method (or ``ALL``); None in direct-mount mode.
        skip_headers: Suppress X-RateLimit-* and Retry-After headers.
        ignore_store_errors: Let requests through when the store errors.
        whitelist: Predicate; a truthy result skips the limiter entirely.
        key_builder: Optional per-client key segment.
    """

    total: int
    expire_ms: int
    path: str | None = None
    method: str | None = None
    skip_headers: bool = False
    ignore_store_errors: bool = False
    whitelist: Whitelist | None = None
    key_builder: KeyBuilder | None = None
    path_regex: re.Pattern[str] | None = field(
        init=False, default=None, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not _is_int(self.total) or self.total < 0:
            raise ConfigurationAppError(
                code="invalid_total",
                message="total must be an integer >= 0",
                details={"field": "total", "actual_value": self.total},
            )
        if not _is_int(self.expire_ms) or self.expire_ms < 1:
            raise ConfigurationAppError(
                code="invalid_expire_ms",
                message="expire_ms must be an integer > 0",
                details={"field": "expire_ms", "actual_value": self.expire_ms},
            )
        if (self.path is None) != (self.method is None):
            raise ConfigurationAppError(
                code="incomplete_route",
                message="path and method must be given together (or both omitted for direct mount)",
                details={"field": "path" if self.path is None else "method"},
            )
        if self.whitelist is not None and not callable(self.whitelist):
            raise ConfigurationAppError(
                code="invalid_whitelist",
                message="whitelist must be a callable taking the request",
                details={"field": "whitelist"},
            )
        if self.key_builder is not None and not callable(self.key_builder):
            raise ConfigurationAppError(
                code="invalid_key_builder",
                message="key_builder must be a callable taking the request",
                details={"field": "key_builder"},
            )

        if self.path is None:
            return

        if not isinstance(self.path, str) or not self.path.startswith("/"):
            raise ConfigurationAppError(
                code="invalid_path",
                message="path must start with '/'",
                details={"field": "path", "actual_value": self.path},
            )
        if not isinstance(self.method, str) or not self.method.strip():
            raise ConfigurationAppError(
                code="invalid_method",
                message="method must be a non-empty HTTP method name",
                details={"field": "method", "actual_value": self.method},
            )
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "method", self.method.strip().upper())
        path_regex, _, _ = compile_path(self.path)
        object.__setattr__(self, "path_regex", path_regex)

    @property
    def direct_mount(self) -> bool:
        return self.path is None


@dataclass(frozen=True)
class WindowSpec:
    """Store key and window parameters for one admission check."""

    key: str
    total: int
    window_ms: int


class WindowKeyResolver:
    """Decide whether a request is limited by a route, and under which key."""

    def __init__(self, key_prefix: str) -> None:
        self._key_prefix = key_prefix

    def route_key(self, path: str, method: str) -> str:
        return f"{self._key_prefix}:{path}:{method}"

    def matches(self, request: Request, route: RouteConfig) -> bool:
        if route.direct_mount:
            return True
        if route.method != ALL_METHODS and route.method != request.method.upper():
            return False
        assert route.path_regex is not None
        return route.path_regex.match(request.scope["path"]) is not None

    def resolve(self, request: Request, route: RouteConfig) -> WindowSpec:
        """Build the counter key and window for a matched request.

        Direct-mount configs have no path of their own; the FastAPI route the
        dependency runs under (its template, not the concrete URL) is used.
        """
        if route.direct_mount:
            matched_route = request.scope.get("route")
            path = getattr(matched_route, "path", None) or request.url.path
            method = request.method.upper()
        else:
            path, method = route.path, route.method

        key = self.route_key(path, method)
        if route.key_builder is not None:
            key = f"{key}:{route.key_builder(request)}"

        return WindowSpec(key=key, total=route.total, window_ms=route.expire_ms)


class RouteRegistry:
    """Explicit mapping of (method, path) to route-filtered configs."""

    def __init__(self, resolver: WindowKeyResolver) -> None:
        self._resolver = resolver
        self._routes: dict[tuple[str, str], RouteConfig] = {}

    def __len__(self) -> int:
        return len(self._routes)

    def add(self, route: RouteConfig) -> None:
        if route.direct_mount:
            raise ConfigurationAppError(
                code="direct_mount_not_registrable",
                message="Direct-mount configurations are not kept in the registry",
            )
        assert route.path is not None and route.method is not None
        identity = (route.method, route.path)
        if identity in self._routes:
            logger.warning(
                "rate_limit.route_replaced",
                extra={"route_path": route.path, "route_method": route.method},
            )
        self._routes[identity] = route

    def get(self, path: str, method: str) -> RouteConfig | None:
        return self._routes.get((method.strip().upper(), path))

    def match(self, request: Request) -> list[RouteConfig]:
        """Return every registered route matching the request, in registration order."""
        return [route for route in self._routes.values() if self._resolver.matches(request, route)]
