# lessonflow/core/exceptions.py
"""
Domain-specific exceptions for the lesson lifecycle engine.

These exceptions carry a stable ``code`` plus structured ``details`` so callers
can render a specific message (e.g. hours until the lesson) instead of a
generic failure. They are converted to HTTP errors only at the route layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the acting user is not a party allowed to perform the action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message or "An error occurred processing your request",
            "code": self.code,
            "details": self.details if self.details else {},
        }


# Lesson lifecycle exceptions


class InvalidTransition(BusinessRuleException):
    """Raised when a lesson state change is not legal from its current state."""

    def __init__(
        self,
        *,
        action: str,
        current_status: str,
        current_confirmation: str,
        attempted_status: Optional[str] = None,
        attempted_confirmation: Optional[str] = None,
    ) -> None:
        self.action = action
        self.current_status = current_status
        self.current_confirmation = current_confirmation
        self.attempted_status = attempted_status
        self.attempted_confirmation = attempted_confirmation
        super().__init__(
            message=(
                f"Cannot {action} a lesson in state {current_status}/{current_confirmation}"
            ),
            code="INVALID_TRANSITION",
            details={
                "action": action,
                "current_status": current_status,
                "current_confirmation": current_confirmation,
                "attempted_status": attempted_status,
                "attempted_confirmation": attempted_confirmation,
            },
        )


class WindowClosed(BusinessRuleException):
    """Raised when cancel/join is attempted outside its allowed time window."""

    def __init__(self, *, action: str, hours_until: float, can_reschedule: bool) -> None:
        self.action = action
        self.hours_until = hours_until
        self.can_reschedule = can_reschedule
        if action == "cancel":
            message = "Cannot cancel within 2 hours of lesson start"
            if can_reschedule:
                message += ". Please reschedule instead."
            code = "TOO_LATE"
        else:
            message = f"The {action} window is closed for this lesson"
            code = "WINDOW_CLOSED"
        super().__init__(
            message=message,
            code=code,
            details={
                "action": action,
                "hours_until": hours_until,
                "can_reschedule": can_reschedule,
            },
        )


class ConcurrencyConflict(ConflictException):
    """Raised when a conditional lesson write lost a race with another writer."""

    def __init__(
        self,
        *,
        lesson_id: str,
        expected_status: str,
        expected_confirmation: str,
    ) -> None:
        self.lesson_id = lesson_id
        super().__init__(
            message=f"Lesson {lesson_id} was modified concurrently",
            code="CONCURRENCY_CONFLICT",
            details={
                "lesson_id": lesson_id,
                "expected_status": expected_status,
                "expected_confirmation": expected_confirmation,
            },
        )


class UpstreamUnavailable(ServiceException):
    """Raised when a store sub-fetch fails; the aggregator degrades it to an empty list."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, *, source: str, error: Optional[BaseException] = None) -> None:
        self.source = source
        error_type = type(error).__name__ if error is not None else None
        super().__init__(
            message=f"{source} is temporarily unavailable",
            code="UPSTREAM_UNAVAILABLE",
            details={"source": source, "error_type": error_type},
        )


class RepositoryException(ServiceException):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
