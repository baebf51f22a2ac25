from __future__ import annotations

from time import perf_counter
from typing import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from .logging import get_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one structured ``request_log`` event per API call."""

    def __init__(self, app: ASGIApp, *, include_prefixes: Iterable[str] = ("/api",)) -> None:
        super().__init__(app)
        self._prefixes = tuple(include_prefixes)
        self._logger = get_logger(name="request")

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if self._prefixes and not any(request.url.path.startswith(prefix) for prefix in self._prefixes):
            return await call_next(request)

        start = perf_counter()
        response = await call_next(request)
        duration = perf_counter() - start

        self._logger.info(
            "request_log",
            method=request.method,
            path=request.url.path,
            query=str(request.url.query) or None,
            status=response.status_code,
            client_ip=(request.client.host if request.client else None),
            duration_ms=round(duration * 1000, 3),
        )
        return response


__all__ = ["RequestLoggingMiddleware"]
