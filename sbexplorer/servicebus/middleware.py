"""
Correlation ID Middleware for the Explorer API

Scopes a correlation id to each request: taken from the request header when
the caller sends one, generated otherwise, and echoed on the response.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

import time
import uuid
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .constants import CORRELATION_HEADER
from .logging_utils import LogContext, StructuredLogger


logger = StructuredLogger('sbexplorer.servicebus.middleware')


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Binds the request correlation id for logging and error responses."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())

        with LogContext.request(correlation_id):
            start_time = time.perf_counter()
            response: Response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id

            logger.info(
                f"{request.method} {request.url.path} - {response.status_code}",
                operation="request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2)
            )
            return response
