"""
Request logging for unauthenticated calls to protected routes.
Token validation itself is done by the FastAPI dependencies in auth.dependencies.
"""
from typing import List

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger

# Exact paths that never need a token
PUBLIC_PATHS: List[str] = [
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/auth/login",
    "/api/auth/register",
]


def is_public_path(path: str, public_paths: List[str] = None) -> bool:
    paths = public_paths or PUBLIC_PATHS
    normalized = path.rstrip("/") or "/"
    return normalized in paths or normalized.startswith("/docs/")


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """
    Logs requests that reach protected routes without an Authorization header.

    Requests are never blocked here so that the dependencies can answer with
    the proper 401 body.
    """

    def __init__(self, app, public_paths: List[str] = None):
        super().__init__(app)
        self.public_paths = public_paths or PUBLIC_PATHS

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if request.method != "OPTIONS" and not is_public_path(path, self.public_paths):
            if not request.headers.get("authorization"):
                client = request.client.host if request.client else "unknown"
                logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")

        return await call_next(request)
