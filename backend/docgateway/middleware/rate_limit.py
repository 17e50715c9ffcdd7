"""
Document Gateway: Rate Limiting Middleware
===========================================

What:  Per-IP sliding window limit on API requests.
How:   Each client IP keeps the timestamps of its requests inside the window.
       A request arriving with `rate_limit_requests` timestamps already in the
       window is rejected with 429 and a RATE_LIMITED envelope.

Scope:
    State is in-process. Several workers each enforce the limit separately,
    so the effective limit is per worker.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from docgateway.config import settings
from docgateway.middleware.request_id import request_id_var
from docgateway.schemas.envelope import ErrorEnvelope

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Excluded paths (probes and API docs) are never counted.
    """

    EXCLUDED_PATHS = {"/health", "/diagnostics", "/docs", "/openapi.json", "/redoc"}

    # Full sweep of idle IPs once this many requests have been recorded
    CLEANUP_EVERY = 1000

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._recorded = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )

        now = time.time()
        window_start = now - settings.rate_limit_window

        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= settings.rate_limit_requests:
            retry_after = int(timestamps[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                settings.rate_limit_window,
            )
            envelope = ErrorEnvelope(
                error=f"Too many requests. Retry in {retry_after} seconds.",
                error_code="RATE_LIMITED",
                details={"retry_after": retry_after},
                request_id=request_id_var.get("") or None,
            )
            return JSONResponse(
                status_code=429,
                content=envelope.model_dump(by_alias=True),
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._recorded += 1
        if self._recorded % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
