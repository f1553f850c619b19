"""
Request size limiting middleware for FastAPI.
Protects the estimation API from oversized payloads.
"""
from typing import Optional
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from costengine.core.config import config

logger = logging.getLogger(__name__)


# Endpoints under this prefix are size limited
PROTECTED_PREFIX = "/api/v1/"


class RequestSizeLimiterMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for request size limiting.

    Applies size limits only to API routes.
    Other routes pass through untouched.
    """

    def __init__(self, app: ASGIApp, max_body_size: Optional[int] = None):
        super().__init__(app)
        self.max_body_size = max_body_size if max_body_size is not None else config.MAX_REQUEST_BODY_SIZE

    def _reject(self, path: str, body_size: int) -> JSONResponse:
        logger.info(
            f"Request body size exceeded for {path}: "
            f"{body_size} bytes (limit: {self.max_body_size})"
        )
        return JSONResponse(
            status_code=413,
            content={
                "status": "error",
                "error": "request_too_large",
                "message": f"Request body size exceeds allowed limit of {self.max_body_size} bytes.",
            }
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request and apply size limits if applicable.

        Args:
            request: FastAPI request object
            call_next: Next middleware or route handler

        Returns:
            Response object
        """
        path = request.url.path
        if not path.startswith(PROTECTED_PREFIX):
            return await call_next(request)

        # Check Content-Length header if present
        content_length = request.headers.get("Content-Length")
        if content_length:
            try:
                declared_size = int(content_length)
            except ValueError:
                declared_size = None
            if declared_size is not None and declared_size > self.max_body_size:
                return self._reject(path, declared_size)

        # Chunked bodies carry no Content-Length
        body_bytes = await request.body()
        if len(body_bytes) > self.max_body_size:
            return self._reject(path, len(body_bytes))

        return await call_next(request)
