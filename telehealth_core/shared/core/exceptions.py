# 📄 File: telehealth_core/shared/core/exceptions.py
# 🧭 Purpose (Layman Explanation):
# Defines the special error types the subscription system uses to say clearly what
# went wrong (subscription missing, illegal status change, quota used up, database down).
# 🧪 Purpose (Technical Summary):
# Custom exception hierarchy with HTTP status codes, error details, serialization for
# API responses and an ErrorKind tag used to fold business failures into typed results.
# 🔗 Dependencies:
# FastAPI HTTPException, typing, enum, HTTP status constants
# 🔄 Connected Modules / Calls From:
# Lifecycle services, quota tracker, stores, orchestrator, API translation layer

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    """Failure categories shared by every lifecycle operation."""
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    PRIVILEGE_NOT_GRANTED = "privilege_not_granted"
    QUOTA_EXCEEDED = "quota_exceeded"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    VALIDATION = "validation"
    SYSTEMIC_FAILURE = "systemic_failure"


class TelehealthException(Exception):
    """
    Base exception class for the telehealth subscription core.
    All custom exceptions should inherit from this class.
    """

    error_kind: ErrorKind = ErrorKind.SYSTEMIC_FAILURE

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
        self.error_code = error_code or self.__class__.__name__.upper()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error": {
                "code": self.error_code,
                "kind": self.error_kind.value,
                "message": self.message,
                "details": self.details,
                "status_code": self.status_code
            }
        }

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=self.status_code,
            detail=self.to_dict()["error"]
        )


# =============================================================================
# BUSINESS RULE EXCEPTIONS
# =============================================================================

class NotFoundError(TelehealthException):
    """
    Exception raised when requested resource is not found.
    Used for missing subscriptions and plans.
    """

    error_kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code="NOT_FOUND"
        )


class SubscriptionNotFoundError(NotFoundError):
    """Raised when a subscription id does not resolve to a stored subscription."""

    def __init__(self, subscription_id: str):
        super().__init__(
            message=f"Subscription {subscription_id} not found",
            resource_type="subscription",
            resource_id=str(subscription_id)
        )


class InvalidTransitionError(TelehealthException):
    """
    Exception raised when a status change is not a legal edge of the
    transition graph or a guard rule rejects it.
    """

    error_kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        message: str = "Invalid status transition",
        current_status: Optional[str] = None,
        target_status: Optional[str] = None,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if current_status:
            details["current_status"] = current_status
        if target_status:
            details["target_status"] = target_status
        if rule:
            details["rule"] = rule

        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code="INVALID_TRANSITION"
        )


class PrivilegeNotGrantedError(TelehealthException):
    """Raised when the subscription's plan does not include a privilege."""

    error_kind = ErrorKind.PRIVILEGE_NOT_GRANTED

    def __init__(
        self,
        privilege_name: str,
        plan_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        details["privilege_name"] = privilege_name
        if plan_id:
            details["plan_id"] = plan_id

        super().__init__(
            message=f"Privilege '{privilege_name}' is not included in the plan",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code="PRIVILEGE_NOT_GRANTED"
        )


class QuotaExceededError(TelehealthException):
    """Raised when a consumption would go past the plan allowance."""

    error_kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(
        self,
        privilege_name: str,
        used: Optional[int] = None,
        allowed: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        details["privilege_name"] = privilege_name
        if used is not None:
            details["used"] = used
        if allowed is not None:
            details["allowed"] = allowed

        super().__init__(
            message=f"Usage limit reached for {privilege_name}",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
            error_code="QUOTA_EXCEEDED"
        )


class ValidationError(TelehealthException):
    """
    Exception raised for malformed requests.
    Used for unknown plans, identical plan changes, missing fields.
    """

    error_kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            error_code="VALIDATION_ERROR"
        )


# =============================================================================
# CONCURRENCY AND INFRASTRUCTURE EXCEPTIONS
# =============================================================================

class ConcurrencyConflictError(TelehealthException):
    """
    Raised by a store when a versioned write finds the row changed since it
    was read. Transient: the caller should re-read and retry.
    """

    error_kind = ErrorKind.CONCURRENCY_CONFLICT

    def __init__(
        self,
        message: str = "Stale write detected",
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if entity_type:
            details["entity_type"] = entity_type
        if entity_id:
            details["entity_id"] = entity_id
        if expected_version is not None:
            details["expected_version"] = expected_version

        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code="CONCURRENCY_CONFLICT"
        )


class SystemicFailureError(TelehealthException):
    """
    Store or catalog unreachable. Not a business-rule rejection: it propagates
    and aborts any enclosing batch.
    """

    error_kind = ErrorKind.SYSTEMIC_FAILURE

    def __init__(
        self,
        message: str = "Systemic failure",
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if component:
            details["component"] = component

        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code="SYSTEMIC_FAILURE"
        )


class DatabaseError(SystemicFailureError):
    """
    Exception raised for database operation failures.
    Used for connection issues, query failures, etc.
    """

    def __init__(
        self,
        message: str = "Database error",
        operation: Optional[str] = None,
        table: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table

        super().__init__(message=message, component="database", details=details)
        self.error_code = "DATABASE_ERROR"


# Business failures are folded into typed results; everything else propagates.
BUSINESS_ERRORS = (
    NotFoundError,
    InvalidTransitionError,
    PrivilegeNotGrantedError,
    QuotaExceededError,
    ValidationError,
)


# =============================================================================
# EXCEPTION UTILITIES
# =============================================================================

def exception_to_dict(exception: Exception) -> Dict[str, Any]:
    """
    Convert any exception to dictionary format.

    Args:
        exception: Exception to convert

    Returns:
        Dict: Exception data as dictionary
    """
    if isinstance(exception, TelehealthException):
        return exception.to_dict()

    return {
        "error": {
            "code": exception.__class__.__name__.upper(),
            "kind": ErrorKind.SYSTEMIC_FAILURE.value,
            "message": str(exception),
            "details": {},
            "status_code": 500
        }
    }


def is_client_error(exception: Exception) -> bool:
    """Check if exception represents a client error (4xx)."""
    if isinstance(exception, (TelehealthException, HTTPException)):
        return 400 <= exception.status_code < 500
    return False
