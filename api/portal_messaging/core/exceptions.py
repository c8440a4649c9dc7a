"""
Custom exception hierarchy for the portal messaging service.

This module defines a standardized exception hierarchy for consistent
error handling across the application.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base exception for all application errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__


# Authentication Exceptions


class AuthenticationError(BaseAppException):
    """Raised when the caller did not supply a bearer token to forward."""

    def __init__(
        self, detail: str = "Authentication failed", error_code: Optional[str] = None
    ):
        super().__init__(
            detail, status.HTTP_401_UNAUTHORIZED, error_code=error_code or "AUTH_ERROR"
        )


class MissingTokenError(AuthenticationError):
    """Raised when the Authorization header is absent or malformed."""

    def __init__(self):
        super().__init__(
            "Bearer token is required for this operation", error_code="MISSING_TOKEN"
        )


# Resource Exceptions


class ResourceNotFoundError(BaseAppException):
    """Raised when a resource is not found."""

    def __init__(self, resource_type: str, resource_id: str):
        detail = f"{resource_type} with ID '{resource_id}' not found"
        super().__init__(
            detail, status.HTTP_404_NOT_FOUND, error_code="RESOURCE_NOT_FOUND"
        )


class ConversationNotFoundError(ResourceNotFoundError):
    """Raised when no conversation exists for a counterparty."""

    def __init__(self, counterparty_id: str):
        super().__init__("Conversation", counterparty_id)


# Data Validation Exceptions


class ValidationError(BaseAppException):
    """Raised when data validation fails."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = (
            f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        )
        super().__init__(
            detail, status.HTTP_422_UNPROCESSABLE_ENTITY, error_code=error_code
        )


# Service Exceptions


class ExternalAPIError(BaseAppException):
    """Raised when calls to the employment service fail."""

    def __init__(self, service: str, detail: str, error_code: Optional[str] = None):
        # Map to controlled vocabulary to prevent high cardinality
        service_map = {
            "employment": "EMPLOYMENT",
            "messaging": "MESSAGING",
        }
        normalized_service = service_map.get(service.lower(), "EXTERNAL")
        super().__init__(
            f"{service} API error: {detail}",
            status.HTTP_502_BAD_GATEWAY,
            error_code=error_code or f"{normalized_service}_API_ERROR",
        )


class MessagesUnavailableError(ExternalAPIError):
    """Raised when neither the inbox nor the sent messages could be loaded."""

    def __init__(self, participant_id: str):
        super().__init__(
            "messaging",
            f"Failed to load messages for participant '{participant_id}'",
            error_code="MESSAGES_UNAVAILABLE",
        )


class MessageSendError(ExternalAPIError):
    """Raised when the employment service rejects or fails a send."""

    def __init__(self, detail: str):
        super().__init__(
            "messaging", f"Failed to send message: {detail}", error_code="SEND_FAILED"
        )


class ParticipantResolutionError(ExternalAPIError):
    """Raised when the viewer's participant id cannot be determined."""

    def __init__(self, detail: str):
        super().__init__(
            "employment", detail, error_code="PARTICIPANT_UNRESOLVED"
        )
