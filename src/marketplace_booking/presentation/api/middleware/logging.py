"""HTTP request/response logging middleware for the booking API."""

import time
import logging
from typing import Callable, Optional, Set
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ....infrastructure.logging import (
    generate_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    get_logger
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Headers never written to the log
REDACTED_HEADERS = {
    'authorization',
    'cookie',
    'set-cookie',
    'x-api-key',
    'proxy-authorization',
}

DEFAULT_EXCLUDED_PATHS = {
    '/health',
    '/docs',
    '/redoc',
    '/openapi.json',
    '/favicon.ico'
}


class RequestResponseLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each HTTP exchange and tags it with a correlation ID.

    The ID is taken from the incoming ``X-Correlation-ID`` header when present,
    bound to the logging context for the duration of the request, and echoed
    back on the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        max_body_size: int = 1024,
        exclude_paths: Optional[Set[str]] = None
    ):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.max_body_size = max_body_size
        self.exclude_paths = exclude_paths if exclude_paths is not None else DEFAULT_EXCLUDED_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        set_correlation_id(correlation_id)
        start_time = time.perf_counter()

        try:
            await self._log_request(request)
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            response.headers[CORRELATION_HEADER] = correlation_id
            self._log_response(request, response, duration_ms)
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_method": request.method,
                    "request_path": request.url.path,
                    "request_query": str(request.query_params),
                    "duration_ms": round(duration_ms, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__
                },
                exc_info=True
            )
            raise

        finally:
            clear_correlation_id()

    async def _log_request(self, request: Request) -> None:
        request_body = None
        if self.log_request_body:
            request_body = await self._read_body(request)

        client_host = request.client.host if request.client else 'unknown'
        logger.info(
            f"HTTP Request: {request.method} {request.url.path}",
            extra={
                "request_method": request.method,
                "request_path": request.url.path,
                "request_query": str(request.query_params) if request.query_params else None,
                "request_headers": self._sanitize_headers(dict(request.headers)),
                "request_body": request_body,
                "actor_role": request.headers.get('x-actor-role'),
                "client_host": client_host,
            }
        )

    def _log_response(self, request: Request, response: Response, duration_ms: float) -> None:
        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            f"HTTP Response: {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.2f}ms)",
            extra={
                "request_method": request.method,
                "request_path": request.url.path,
                "response_status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )

    def _sanitize_headers(self, headers: dict) -> dict:
        return {
            key: "[REDACTED]" if key.lower() in REDACTED_HEADERS else value
            for key, value in headers.items()
        }

    async def _read_body(self, request: Request) -> str:
        if 'application/json' not in request.headers.get('content-type', '').lower():
            return "[NON_JSON_CONTENT]"

        body = await request.body()
        if len(body) > self.max_body_size:
            return f"[BODY_TOO_LARGE:{len(body)}_bytes]"
        return body.decode('utf-8', errors='replace')
