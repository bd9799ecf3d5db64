"""
Error Response Models for the Explorer API

Standardized error response format for API endpoints.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ExplorerError


class ErrorDetails(BaseModel):
    """Additional error context details."""

    entity_type: Optional[str] = Field(None, description="Type of entity (queue, topic, subscription)")
    entity_name: Optional[str] = Field(None, description="Name or path of entity")
    sequence_number: Optional[int] = Field(None, description="Sequence number of the message")
    session_id: Optional[str] = Field(None, description="Console session identifier")
    correlation_id: Optional[str] = Field(None, description="Request correlation identifier")
    operation: Optional[str] = Field(None, description="Operation that failed")
    reason: Optional[str] = Field(None, description="Failure reason")

    model_config = ConfigDict(extra="allow")


class ErrorInfo(BaseModel):
    """Error information in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: ErrorDetails = Field(default_factory=ErrorDetails, description="Additional context")


class ErrorResponse(BaseModel):
    """Standard API error response format."""

    error: ErrorInfo = Field(..., description="Error information")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": {
                "code": "EntityNotFound",
                "message": "Queue 'orders' not found",
                "details": {
                    "entity_type": "queue",
                    "entity_name": "orders",
                    "correlation_id": "abc-123"
                }
            }
        }
    })

    @classmethod
    def from_exception(cls, exc: Exception, correlation_id: Optional[str] = None) -> "ErrorResponse":
        """
        Create ErrorResponse from exception.

        Args:
            exc: Exception to convert
            correlation_id: Optional correlation ID to include

        Returns:
            ErrorResponse instance
        """
        if isinstance(exc, ExplorerError):
            error_dict = exc.to_dict()["error"]
            details_dict = dict(error_dict.get("details", {}))
            if correlation_id:
                details_dict["correlation_id"] = correlation_id

            return cls(
                error=ErrorInfo(
                    code=error_dict["code"],
                    message=error_dict["message"],
                    details=ErrorDetails(**details_dict)
                )
            )

        details_dict = {}
        if correlation_id:
            details_dict["correlation_id"] = correlation_id

        return cls(
            error=ErrorInfo(
                code="InternalError",
                message="An unexpected error occurred",
                details=ErrorDetails(**details_dict)
            )
        )
