"""
Security middleware: per-IP rate limiting, security headers, CORS and trusted hosts.
"""
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List

from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger

MINUTE = 60
HOUR = 3600


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiting keyed on client IP."""

    def __init__(self, app, requests_per_minute: int = 60, requests_per_hour: int = 1000):
        """
        Args:
            app: ASGI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
        """
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self.cleanup_interval = 300
        self.last_cleanup = time.time()

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"

        now = time.time()
        if now - self.last_cleanup > self.cleanup_interval:
            self._cleanup(now)
            self.last_cleanup = now

        if not self._allow(client_ip, now):
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(MINUTE)},
            )

        return await call_next(request)

    def _allow(self, client_ip: str, now: float) -> bool:
        window = self.hits[client_ip]
        while window and now - window[0] >= HOUR:
            window.popleft()

        last_minute = sum(1 for t in window if now - t < MINUTE)
        if last_minute >= self.requests_per_minute or len(window) >= self.requests_per_hour:
            return False

        window.append(now)
        return True

    def _cleanup(self, now: float):
        for ip in list(self.hits.keys()):
            window = self.hits[ip]
            while window and now - window[0] >= HOUR:
                window.popleft()
            if not window:
                del self.hits[ip]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        return response


def setup_cors(app, allowed_origins: List[str], allow_credentials: bool = True):
    """Allow the portal frontend origins to call the API."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Content-Disposition"],
    )


def setup_trusted_hosts(app, allowed_hosts: List[str]):
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=allowed_hosts
    )
