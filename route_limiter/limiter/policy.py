"""Bypass rules wrapped around the admission engine.

Checks run in a fixed order and stop at the first one that applies:

1. No usable store (not configured or disconnected): allow, no headers.
2. Whitelisted request: allow, no headers, the store is never touched.
3. Admission engine. A store failure is swallowed when the route sets
   ``ignore_store_errors`` and re-raised otherwise.

``check`` returns None for every bypass and the engine's decision (allowed or
not) otherwise.
"""

from __future__ import annotations

import inspect
import logging

from starlette.requests import Request

from route_limiter.adapters.counter_store.base import AbstractCounterStore
from route_limiter.core.errors import StoreAppError, StoreUnavailableError
from route_limiter.limiter.engine import AdmissionDecision, AdmissionEngine
from route_limiter.limiter.routes import RouteConfig, WindowKeyResolver

logger = logging.getLogger(__name__)


async def _is_whitelisted(route: RouteConfig, request: Request) -> bool:
    if route.whitelist is None:
        return False
    result = route.whitelist(request)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


class AdmissionPolicy:
    """Apply bypass rules, then delegate to the admission engine."""

    def __init__(
        self,
        store: AbstractCounterStore | None,
        engine: AdmissionEngine | None,
        resolver: WindowKeyResolver,
    ) -> None:
        self._store = store
        self._engine = engine
        self._resolver = resolver

    def _bypass(self, reason: str, request: Request) -> None:
        logger.debug(
            "rate_limit.bypassed",
            extra={
                "reason": reason,
                "request_path": request.url.path,
                "request_method": request.method,
            },
        )

    async def check(self, request: Request, route: RouteConfig) -> AdmissionDecision | None:
        """Evaluate a matched request.

        Args:
            request: Incoming request.
            route: Configuration the request matched.

        Returns:
            The admission decision, or None when the limiter was bypassed.

        Raises:
            StoreAppError: When the store fails and the route does not ignore
                store errors.
        """
        if self._store is None or self._engine is None:
            self._bypass("store_not_configured", request)
            return None
        if not await self._store.is_available():
            self._bypass("store_disconnected", request)
            return None

        if await _is_whitelisted(route, request):
            self._bypass("whitelisted", request)
            return None

        window = self._resolver.resolve(request, route)
        try:
            decision = await self._engine.evaluate(window.key, window.total, window.window_ms)
        except StoreUnavailableError:
            self._bypass("store_disconnected", request)
            return None
        except StoreAppError as exc:
            if not route.ignore_store_errors:
                logger.error(
                    "rate_limit.store_error",
                    extra={"key": window.key, "error_code": exc.code, "ignored": False},
                )
                raise
            logger.warning(
                "rate_limit.store_error",
                extra={"key": window.key, "error_code": exc.code, "ignored": True},
            )
            return None

        log_extra = {
            "key": window.key,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset_at": decision.reset_at,
            "window_ms": window.window_ms,
        }
        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
            )
        return decision
