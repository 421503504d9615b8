"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import utcnow

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotAuthenticatedError(ProblemDetailsException):
    """Raised when an action that records an actor is attempted anonymously."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"retryable": False}
        if code:
            extensions["code"] = code
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "error_id": error_id,
            "timestamp": utcnow().isoformat() + "Z",
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            instance=instance,
            extensions=extensions,
        )


# Business logic exceptions

class VehicleConflictError(ConflictError):
    """The requested dates overlap an active hold or an occupying booking."""

    def __init__(
        self,
        vehicle_id: str,
        start_at: datetime,
        end_at: datetime,
        conflicts: list[Dict[str, Any]],
    ):
        super().__init__(
            detail=(
                f"Vehicle {vehicle_id} is already reserved between "
                f"{start_at.isoformat()}Z and {end_at.isoformat()}Z"
            ),
            conflicting_resource={
                "vehicle_id": vehicle_id,
                "start_at": start_at.isoformat() + "Z",
                "end_at": end_at.isoformat() + "Z",
                "conflicts": conflicts,
            },
            code="VEHICLE_CONFLICT",
        )


class HoldExpiredError(ProblemDetailsException):
    """Exception when a hold has expired and the vehicle is no longer reserved."""

    def __init__(
        self,
        hold_id: str,
        expired_at: datetime,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"Hold {hold_id} expired at {expired_at.isoformat()}Z; check availability and reserve again"

        super().__init__(
            status_code=410,
            title="Hold Expired",
            detail=detail,
            type_uri="https://example.com/problems/hold-expired",
            instance=instance,
            extensions={
                "code": "HOLD_EXPIRED",
                "retryable": False,
                "hold_id": hold_id,
                "expired_at": expired_at.isoformat() + "Z",
            },
        )


class IllegalTransitionError(ConflictError):
    """A status change that is not an edge of the booking lifecycle graph."""

    def __init__(
        self,
        booking_id: str,
        from_status: str,
        to_status: str,
        allowed: list[str],
    ):
        if allowed:
            hint = f"allowed next statuses: {', '.join(allowed)}"
        else:
            hint = f"'{from_status}' is a final status"
        super().__init__(
            detail=f"Cannot move booking {booking_id} from '{from_status}' to '{to_status}' ({hint})",
            conflicting_resource={
                "booking_id": booking_id,
                "from_status": from_status,
                "to_status": to_status,
                "allowed": allowed,
            },
            code="ILLEGAL_TRANSITION",
        )


class ActivationBlockedError(ConflictError):
    """A booking cannot go active while a readiness step is still open."""

    def __init__(self, booking_id: str, step_id: str, step_title: str):
        super().__init__(
            detail=f"Booking {booking_id} is not ready to activate: {step_title}",
            conflicting_resource={
                "booking_id": booking_id,
                "next_step": step_id,
            },
            code="ACTIVATION_BLOCKED",
        )


class NotificationDispatchError(Exception):
    """Raised by a notification dispatcher when delivery fails."""

    def __init__(self, event_type: str, reason: str):
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Failed to dispatch '{event_type}' notification: {reason}")


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error = InternalServerError(instance=str(request.url))

    logger.error(
        "Unhandled exception",
        extra={
            "error_id": error.problem_details["error_id"],
            "path": request.url.path,
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=error.problem_details,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request body and parameter errors as a 422 problem with one violation per field."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Unprocessable Request",
            "status": 422,
            "detail": "The request body or parameters failed validation",
            "violations": violations,
        },
    )
