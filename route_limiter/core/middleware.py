"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id so rate-limit decisions
logged during the request can be tied back to the response the client saw.

The middleware:
- Accepts the incoming correlation header (``LOG_REQUEST_ID_HEADER``) or
  generates a UUID
- Stores request_id in contextvars for the whole request lifecycle
- Echoes the id and the total duration in the response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from route_limiter.core.config import settings
from route_limiter.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and timing header to every response.

    Must be installed outside the rate limiter middleware so that
    ``rate_limit.*`` log events and 429 responses carry the id as well.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with ``X-Request-ID`` and
            ``X-Request-Duration-ms`` headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
