"""Translate admission decisions into HTTP headers and rejection responses."""

from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from route_limiter.limiter.engine import AdmissionDecision

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

REJECTION_DETAIL = "Rate limit exceeded. Try again later."


def build_rate_limit_headers(decision: AdmissionDecision, *, skip_headers: bool) -> dict[str, str]:
    """Build the quota headers for an evaluated request.

    Args:
        decision: Admission decision for the request.
        skip_headers: When True no header is emitted, even on rejection.

    Returns:
        Header name to value mapping (possibly empty).
    """

    if skip_headers:
        return {}

    headers = {
        LIMIT_HEADER: str(decision.limit),
        REMAINING_HEADER: str(decision.remaining),
        RESET_HEADER: str(decision.reset_at),
    }
    if not decision.allowed:
        headers[RETRY_AFTER_HEADER] = str(decision.retry_after_seconds or 1)
    return headers


def build_rejection_response(headers: dict[str, str]) -> JSONResponse:
    """429 response emitted instead of calling the downstream handler."""

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": REJECTION_DETAIL},
        headers=headers or None,
    )
