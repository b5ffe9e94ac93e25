"""
HTTP middleware for the companion gateway.

- CORS (permissive; preflight answered with headers and no body)
- Security headers
- Rate limiting per IP
- Request size limits
- Bearer-token authentication for the data endpoints
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from companion.gateway.auth import AuthError
from companion.storage.store import Store, StoreError
from companion.utils.logging import get_logger

logger = get_logger("middleware")

# Rate limiting: max requests per IP per window
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX = 60  # requests per window

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


class CORSMiddleware(BaseHTTPMiddleware):
    """Answer preflight requests directly and tag every response with CORS headers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        # Remove server header (information disclosure)
        if "server" in response.headers:
            del response.headers["server"]

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple in-memory rate limiting per client IP."""

    def __init__(self, app, max_requests: int = RATE_LIMIT_MAX, window: int = RATE_LIMIT_WINDOW):
        super().__init__(app)
        self.max_requests = max_requests
        self.window = window
        self._requests: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()

        # Clean old entries
        self._requests[client_ip] = [
            t for t in self._requests[client_ip] if now - t < self.window
        ]

        if len(self._requests[client_ip]) >= self.max_requests:
            logger.warning(
                "rate_limit_exceeded",
                client_ip=client_ip,
                count=len(self._requests[client_ip]),
            )
            return JSONResponse(
                {"error": "Rate limit exceeded. Try again later."},
                status_code=429,
                headers={"Retry-After": str(self.window)},
            )

        self._requests[client_ip].append(now)
        return await call_next(request)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests that exceed the size limit."""

    def __init__(self, app, max_size_bytes: int = 1024 * 1024):
        super().__init__(app)
        self.max_size_bytes = max_size_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_size_bytes:
            return JSONResponse(
                {"error": "Request too large."},
                status_code=413,
            )
        return await call_next(request)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token to a user id for protected endpoints."""

    # The chat endpoint authenticates inside the turn orchestrator
    PUBLIC_PATHS = {"/health", "/api/v1/chat", "/docs", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if path in self.PUBLIC_PATHS:
            return await call_next(request)

        auth_manager = request.app.state.auth_manager
        store = Store(request.app.state.config.database_path)
        try:
            store.open()
            user_id = auth_manager.authenticate(store, request.headers.get("Authorization"))
        except AuthError:
            return JSONResponse(
                {"error": "Invalid or expired token."},
                status_code=401,
            )
        except StoreError as e:
            logger.error("auth_store_unavailable", path=path, error=str(e))
            return JSONResponse(
                {"error": "Service unavailable."},
                status_code=503,
            )
        finally:
            store.close()

        request.state.user_id = user_id
        return await call_next(request)
