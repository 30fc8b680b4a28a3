# lifelog/core/exceptions.py
from typing import Dict, Any, Optional, Type
from fastapi import HTTPException, status


class BusinessException(Exception):
    """Base exception for business rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "business_error"

    def __init__(
        self, message: str, code: str = None, details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert this exception to an HTTPException"""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "error": self.code,
                "message": self.message,
                **({"details": self.details} if self.details else {}),
            },
        )


# Resource-related exceptions
class ResourceNotFoundException(BusinessException):
    """Exception raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "resource_not_found"


class ConflictException(BusinessException):
    """Exception raised when a write collides with existing state."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"


class DuplicateResourceException(ConflictException):
    """Exception raised when attempting to create a duplicate resource."""

    error_code = "resource_already_exists"


class ConcurrentUpdateException(ConflictException):
    """Exception raised when a record changed underneath an update twice in a row."""

    error_code = "concurrent_update"


class ValidationException(BusinessException):
    """Exception raised when input validation fails."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "validation_error"


class ProcessingException(BusinessException):
    """Exception raised when processing or interpreting data fails."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "processing_error"


class ConditionEvaluationException(ProcessingException):
    """Exception raised when a condition type or field has no evaluator."""

    error_code = "condition_evaluation_error"


class PointCreditException(ProcessingException):
    """Exception raised when points could not be credited for an achievement."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "point_credit_failed"


# Authentication and Authorization exceptions
class AuthenticationException(BusinessException):
    """Exception raised for authentication failures."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "authentication_error"


class AuthorizationException(BusinessException):
    """Exception raised for authorization failures."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "authorization_error"


# External Service exceptions
class ExternalServiceException(BusinessException):
    """Exception raised when an external service call fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "external_service_error"


# Map exception classes to HTTP status codes
EXCEPTION_STATUS_CODES: Dict[Type[BusinessException], int] = {
    ResourceNotFoundException: status.HTTP_404_NOT_FOUND,
    ConflictException: status.HTTP_409_CONFLICT,
    DuplicateResourceException: status.HTTP_409_CONFLICT,
    ConcurrentUpdateException: status.HTTP_409_CONFLICT,
    ValidationException: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ProcessingException: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConditionEvaluationException: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PointCreditException: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthenticationException: status.HTTP_401_UNAUTHORIZED,
    AuthorizationException: status.HTTP_403_FORBIDDEN,
    ExternalServiceException: status.HTTP_502_BAD_GATEWAY,
    BusinessException: status.HTTP_400_BAD_REQUEST,
}
