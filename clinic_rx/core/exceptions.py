from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from fastapi import status
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)


class BaseCustomException(Exception):
    """Base class for custom exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Exception for validation errors"""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class DraftValidationError(ValidationError):
    """Required-field validation failed for a prescription draft.

    ``field_errors`` maps a field path (``patient``, ``medications``,
    ``medications[0].dose``) to the messages for that field.
    """

    def __init__(
        self,
        field_errors: Dict[str, List[str]],
        message: str = "Prescription draft is incomplete"
    ):
        self.field_errors = field_errors
        super().__init__(
            message=message,
            details={"field_errors": field_errors},
            error_code="DRAFT_VALIDATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class ConflictError(BaseCustomException):
    """Exception for conflict errors"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class DraftStateError(ConflictError):
    """The draft is not in a state that allows the requested operation"""

    def __init__(
        self,
        message: str = "Operation not allowed in the current draft state",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, details=details, error_code="DRAFT_STATE_ERROR")


class SubmissionBlockedError(ConflictError):
    """Submission refused while an interaction check is outstanding"""

    def __init__(
        self,
        message: str = "Interaction check in progress; wait for it to finish before submitting",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, details=details, error_code="SUBMISSION_BLOCKED")


class OverrideRequiredError(BaseCustomException):
    """Severe or contraindicated interactions need an explicit clinician override"""

    def __init__(
        self,
        findings: Optional[List[Dict[str, Any]]] = None,
        message: str = "Severe drug interactions require explicit override"
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details={"findings": findings or []},
            error_code="INTERACTION_OVERRIDE_REQUIRED"
        )


class ExternalServiceError(BaseCustomException):
    """Exception for external service errors"""

    def __init__(
        self,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "EXTERNAL_SERVICE_ERROR"
        )


class ConfigurationError(BaseCustomException):
    """Exception for configuration errors"""

    def __init__(
        self,
        message: str = "Configuration error",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
            error_code=error_code or "CONFIGURATION_ERROR"
        )


# Response models for errors
class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


def create_error_response(exception: BaseCustomException) -> Dict[str, Any]:
    """Create standardized error response"""
    response = {
        "success": False,
        "error": exception.__class__.__name__.replace("Error", " Error").strip(),
        "message": exception.message,
        "error_code": exception.error_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if exception.details:
        response["details"] = exception.details

    return response


def handle_external_service_error(
    error: Exception,
    service_name: str,
    operation: str = "request"
) -> ExternalServiceError:
    """Handle external service errors"""
    logger.error(f"External service error for {service_name}: {error}")

    return ExternalServiceError(
        message=f"External service {service_name} unavailable",
        details={
            "service_name": service_name,
            "operation": operation,
            "original_error": str(error)
        },
        error_code="EXTERNAL_SERVICE_ERROR"
    )
