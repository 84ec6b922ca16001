"""Custom middleware"""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)


async def add_security_headers(request: Request, call_next: Callable) -> Response:
    """Add security headers to responses."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    # サジェスト応答はキャッシュ不可
    if request.url.path.startswith("/v1/suggestions"):
        response.headers["Cache-Control"] = "no-store"
    return response


async def log_requests(request: Request, call_next: Callable) -> Response:
    """Log requests with a request id and the requesting user."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    start_time = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.1f}"
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({elapsed_ms:.1f}ms) request_id={request_id} "
        f"user={request.headers.get('X-User-Id', '-')}"
    )
    return response
