"""Per-request timing log and response header."""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from taskhub.api.middleware.correlation_id import get_correlation_id

logger = logging.getLogger(__name__)

TIMING_HEADER = "X-Process-Time-Ms"
_PROBES = frozenset({"/healthz", "/readyz", "/metrics"})


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers[TIMING_HEADER] = f"{elapsed_ms:.1f}"
        level = logging.DEBUG if request.url.path in _PROBES else logging.INFO
        logger.log(
            level,
            "%s %s %s %.1fms rid=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            get_correlation_id(),
        )
        return response
