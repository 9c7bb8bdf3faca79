"""
API Middleware

Request logging (the request id is bound into every log line emitted while
the request is served), per-client rate limiting and security headers.
"""

import asyncio
import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

# Health checks are never rate limited
EXEMPT_PATHS = ("/api/v1/health",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id and log each request with its duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate request ID
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        # Process request
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Unhandled error", error=str(e), error_type=type(e).__name__)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000

        # Log response
        level = "warning" if response.status_code >= 500 else "info"
        getattr(logger, level)(
            "Request served",
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
            client=request.client.host if request.client else None,
        )

        # Add timing header
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window limit of ``max_requests`` per client address.

    Counters live in this process; the API always runs as one worker.
    """

    def __init__(self, app, max_requests: int = 100, window_seconds: int = 60):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def _limit_headers(self, remaining: int) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(remaining),
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(EXEMPT_PATHS):
            return await call_next(request)

        # Get client identifier
        client = request.client.host if request.client else "unknown"
        now = time.monotonic()

        async with self._lock:
            hits = self._hits[client]
            # Remove old requests outside window
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()

            # Check if over limit
            if len(hits) >= self.max_requests:
                logger.warning("Rate limit exceeded", client=client, limit=self.max_requests)
                return JSONResponse(
                    {"error": "rate_limited", "detail": "Rate limit exceeded"},
                    status_code=429,
                    headers={"Retry-After": str(self.window_seconds), **self._limit_headers(0)},
                )

            # Record request
            hits.append(now)
            remaining = self.max_requests - len(hits)

        # Add rate limit headers after the request
        response = await call_next(request)
        response.headers.update(self._limit_headers(remaining))
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # the interactive docs load assets from a CDN
        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'self'"

        return response
