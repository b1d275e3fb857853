"""Factory for creating the counter store from configuration."""

from __future__ import annotations

import logging

from route_limiter.adapters.counter_store.base import AbstractCounterStore
from route_limiter.adapters.counter_store.redis_store import RedisCounterStore
from route_limiter.core.config import RedisSettings, settings
from route_limiter.core.logging import redact_url

logger = logging.getLogger(__name__)


def build_counter_store(redis_settings: RedisSettings | None = None) -> AbstractCounterStore | None:
    """Create the counter store described by settings.

    Returns None when no Redis URL is configured; the limiter then runs as a
    transparent pass-through.

    Args:
        redis_settings: Optional settings; defaults to global settings.

    Returns:
        A (not yet connected) RedisCounterStore, or None.
    """

    cfg = redis_settings or settings.redis

    if not cfg.url:
        logger.warning(
            "counter_store.not_configured",
            extra={"hint": "Set REDIS_URL to enable rate limiting"},
        )
        return None

    logger.info("counter_store.configured", extra={"store": "redis", "url": redact_url(cfg.url)})
    return RedisCounterStore.from_url(
        cfg.url,
        socket_timeout=cfg.socket_timeout_seconds,
        socket_connect_timeout=cfg.socket_connect_timeout_seconds,
        reconnect_interval_seconds=cfg.reconnect_interval_seconds,
    )
