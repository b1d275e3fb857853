"""Fixed-window rate limiting for FastAPI routes.

The pipeline per request is: bypass policy, counter key resolution, atomic
increment in the shared store, then response headers or a 429 rejection.
"""

from __future__ import annotations

from route_limiter.limiter.engine import AdmissionDecision, AdmissionEngine
from route_limiter.limiter.middleware import RateLimiter
from route_limiter.limiter.policy import AdmissionPolicy
from route_limiter.limiter.routes import RouteConfig, RouteRegistry, WindowKeyResolver, WindowSpec

__all__ = [
    "AdmissionDecision",
    "AdmissionEngine",
    "AdmissionPolicy",
    "RateLimiter",
    "RouteConfig",
    "RouteRegistry",
    "WindowKeyResolver",
    "WindowSpec",
]
