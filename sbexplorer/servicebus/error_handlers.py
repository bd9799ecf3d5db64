"""
FastAPI Exception Handlers for the Explorer API

Maps explorer exceptions to standardized HTTP error responses.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..core.logging_config import redact
from .exceptions import (
    ExplorerError,
    BrokerAuthenticationError,
    BrokerConnectionError,
    BrokerOperationError,
    EntityNotFoundError,
    InvalidCredentialError,
    InvalidRequestError,
    MessageOperationError,
    NotConnectedError,
)
from .error_models import ErrorResponse
from .logging_utils import LogContext, StructuredLogger


logger = StructuredLogger('sbexplorer.servicebus.api.errors')


# Exception to HTTP status code mapping; subclasses are listed before their bases
EXCEPTION_STATUS_CODES = {
    BrokerAuthenticationError: status.HTTP_401_UNAUTHORIZED,
    BrokerConnectionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    InvalidCredentialError: status.HTTP_400_BAD_REQUEST,
    NotConnectedError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    EntityNotFoundError: status.HTTP_404_NOT_FOUND,
    MessageOperationError: status.HTTP_502_BAD_GATEWAY,
    BrokerOperationError: status.HTTP_502_BAD_GATEWAY,
}


def get_status_code_for_exception(exc: Exception) -> int:
    """
    Get HTTP status code for exception type.

    Args:
        exc: Exception instance

    Returns:
        HTTP status code
    """
    exc_type = type(exc)
    if exc_type in EXCEPTION_STATUS_CODES:
        return EXCEPTION_STATUS_CODES[exc_type]

    for exception_type, status_code in EXCEPTION_STATUS_CODES.items():
        if isinstance(exc, exception_type):
            return status_code

    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def explorer_exception_handler(request: Request, exc: ExplorerError) -> JSONResponse:
    """
    Handle ExplorerError exceptions.

    Args:
        request: FastAPI request
        exc: ExplorerError instance

    Returns:
        JSONResponse with standardized error format
    """
    correlation_id = LogContext.correlation_id()
    status_code = get_status_code_for_exception(exc)

    error_response = ErrorResponse.from_exception(exc, correlation_id)

    logger.log_failure(
        "api_error",
        exc,
        level=logging.WARNING if status_code < 500 else logging.ERROR,
        error_message=redact(exc.message),
        error_code=exc.error_code,
        status_code=status_code,
        correlation_id=correlation_id,
        path=request.url.path
    )

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump()
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions as 500 InternalError."""
    correlation_id = LogContext.correlation_id()

    error_response = ErrorResponse.from_exception(exc, correlation_id)

    logger.error(
        f"Unexpected error: {type(exc).__name__}",
        exc_info=True,
        operation="unexpected_error",
        error_type=type(exc).__name__,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        correlation_id=correlation_id,
        path=request.url.path
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump()
    )


def register_exception_handlers(app) -> None:
    """
    Register exception handlers with a FastAPI app.

    Args:
        app: FastAPI app instance
    """
    app.add_exception_handler(ExplorerError, explorer_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
