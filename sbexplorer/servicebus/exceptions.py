"""
Explorer Exception Hierarchy

Exception types for console operations with error codes and context.

Connectivity and malformed-request errors propagate to the console as hard
failures. Message-level errors are raised by broker adapters and always
handled inside the lifecycle engines.

Author: Ayodele Oladeji
Date: 2026-10-12
"""

from typing import Optional, Dict, Any


class ExplorerError(Exception):
    """
    Base exception for all explorer errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'EntityNotFound')
        details: Additional context (entity_type, entity_name, etc.)
    """

    error_code: str = "ExplorerError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for API responses."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# ========== Connectivity Errors ==========

class BrokerConnectionError(ExplorerError):
    """Raised when the broker cannot be reached."""
    error_code = "BrokerUnreachable"

    def __init__(self, message: str, reason: Optional[str] = None):
        details = {"reason": reason} if reason else {}
        super().__init__(message, details=details)


class BrokerAuthenticationError(BrokerConnectionError):
    """Raised when the broker rejects the supplied credential."""
    error_code = "Unauthorized"


class InvalidCredentialError(ExplorerError):
    """Raised when a connection string cannot be parsed."""
    error_code = "InvalidCredential"

    def __init__(self, reason: str, message: Optional[str] = None):
        message = message or f"Invalid connection string: {reason}"
        super().__init__(message, details={"reason": reason})


class NotConnectedError(ExplorerError):
    """Raised when an operation is requested without a broker credential."""
    error_code = "NotConnected"

    def __init__(self, session_id: Optional[str] = None):
        details = {"session_id": session_id} if session_id else {}
        super().__init__("No connection string provided", details=details)


# ========== Request Errors ==========

class InvalidRequestError(ExplorerError):
    """Raised when a console request is malformed."""
    error_code = "InvalidRequest"

    def __init__(
        self,
        reason: str,
        operation: Optional[str] = None,
        message: Optional[str] = None
    ):
        details = {"reason": reason}
        if operation:
            details["operation"] = operation
        super().__init__(message or f"Invalid request: {reason}", details=details)


class InvalidEntityNameError(InvalidRequestError):
    """Raised when an entity name is invalid."""
    error_code = "InvalidEntityName"

    def __init__(self, entity_type: str, entity_name: str, reason: str):
        super().__init__(
            reason,
            message=f"Invalid {entity_type} name '{entity_name}': {reason}"
        )
        self.details.update({"entity_type": entity_type, "entity_name": entity_name})


# ========== Entity Errors ==========

class EntityNotFoundError(ExplorerError):
    """Raised when a queue, topic or subscription does not exist."""
    error_code = "EntityNotFound"

    def __init__(
        self,
        entity_type: str,
        entity_name: str,
        message: Optional[str] = None
    ):
        message = message or f"{entity_type.capitalize()} '{entity_name}' not found"
        details = {"entity_type": entity_type, "entity_name": entity_name}
        super().__init__(message, details=details)


# ========== Message Errors ==========

class MessageOperationError(ExplorerError):
    """Raised when a single message operation (complete, abandon, send) fails."""
    error_code = "MessageOperationFailed"

    def __init__(
        self,
        operation: str,
        sequence_number: Optional[int] = None,
        reason: Optional[str] = None
    ):
        message = f"Message {operation} failed"
        if sequence_number is not None:
            message += f" for sequence number {sequence_number}"
        if reason:
            message += f": {reason}"
        details: Dict[str, Any] = {"operation": operation}
        if sequence_number is not None:
            details["sequence_number"] = sequence_number
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details)


class MessageLockLostError(MessageOperationError):
    """Raised when a message lock expired or is unknown to the broker."""
    error_code = "MessageLockLost"

    def __init__(self, operation: str, sequence_number: Optional[int] = None):
        super().__init__(operation, sequence_number, reason="message lock lost")


class BrokerOperationError(ExplorerError):
    """Raised for broker failures that are neither connectivity nor per-message."""
    error_code = "BrokerOperationFailed"
