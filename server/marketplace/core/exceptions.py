"""
Error types rendered as RFC 9457 Problem Details.

Every error carries a stable ``code`` extension (INVALID_ARGUMENT,
NOT_FOUND, FAILED_PRECONDITION, ...) so clients can map failures to
actionable messages without parsing ``detail``. Precondition failures
add a machine-readable ``reason`` such as SLOT_RESERVED.

https://tools.ietf.org/rfc/rfc9457.txt
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base class for errors that map to a Problem Details response.

    Subclasses set ``status``, ``title``, ``code`` and ``slug`` as class
    attributes and pass occurrence-specific fields as ``extensions``.
    """

    status = 500
    title = "Internal Server Error"
    code = "INTERNAL"
    slug = "internal-server-error"
    retryable = False

    def __init__(
        self,
        detail: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = self.status
        self.detail = detail
        self.instance = instance
        self.extensions = extensions or {}
        super().__init__(status_code=self.status, detail=detail, headers=headers)

    @property
    def problem_details(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": f"{PROBLEM_BASE_URI}/{self.slug}",
            "title": self.title,
            "status": self.status,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.detail:
            body["detail"] = self.detail
        if self.instance:
            body["instance"] = self.instance
        body.update(self.extensions)
        return body

    def __str__(self) -> str:
        return f"{self.code}: {self.detail or self.title}"


class ValidationError(ProblemDetailsException):
    """Malformed input: unparseable timestamp, out-of-range rating, bad signature."""

    status = 400
    title = "Invalid Argument"
    code = "INVALID_ARGUMENT"
    slug = "invalid-argument"

    def __init__(
        self,
        detail: str = "The request data failed validation",
        violations: Optional[List[Dict[str, Any]]] = None,
        instance: Optional[str] = None,
    ):
        super().__init__(detail, {"violations": violations} if violations else None, instance)


class AuthenticationError(ProblemDetailsException):
    status = 401
    title = "Authentication Required"
    code = "UNAUTHENTICATED"
    slug = "authentication-required"

    def __init__(self, detail: str = "Authentication credentials are required"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationError(ProblemDetailsException):
    """Caller is not entitled to act on this booking, slot or listing."""

    status = 403
    title = "Permission Denied"
    code = "PERMISSION_DENIED"
    slug = "permission-denied"

    def __init__(self, detail: str = "Insufficient permissions for this operation"):
        super().__init__(detail)


class NotFoundError(ProblemDetailsException):
    status = 404
    title = "Resource Not Found"
    code = "NOT_FOUND"
    slug = "resource-not-found"

    def __init__(self, resource_type: str = "resource", resource_id: Optional[str] = None):
        detail = f"The requested {resource_type}"
        if resource_id:
            detail += f" with ID '{resource_id}'"
        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id
        super().__init__(f"{detail} could not be found", extensions)


class FailedPreconditionError(ProblemDetailsException):
    """Operation is invalid for the entity's current state."""

    status = 409
    title = "Failed Precondition"
    code = "FAILED_PRECONDITION"
    slug = "failed-precondition"

    def __init__(
        self,
        detail: str = "The operation is not valid for the current state of the resource",
        reason: Optional[str] = None,
    ):
        self.reason = reason
        super().__init__(detail, {"reason": reason} if reason else None)


class AlreadyExistsError(ProblemDetailsException):
    status = 409
    title = "Already Exists"
    code = "ALREADY_EXISTS"
    slug = "already-exists"

    def __init__(self, resource_type: str = "resource", resource_id: Optional[str] = None):
        detail = f"The {resource_type}"
        if resource_id:
            detail += f" with ID '{resource_id}'"
        super().__init__(f"{detail} already exists", {"resource_type": resource_type})


class InternalServerError(ProblemDetailsException):
    """
    A failure the caller may retry, for instance a refund that did not go
    through after the cancellation itself committed.
    """

    retryable = True

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
    ):
        super().__init__(
            detail,
            {
                "error_id": error_id or str(uuid.uuid4()),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


class PaymentGatewayError(ProblemDetailsException):
    """The payment processor rejected or failed a call."""

    status = 502
    title = "Payment Processor Error"
    code = "PAYMENT_PROCESSOR"
    slug = "payment-processor-error"

    def __init__(
        self,
        detail: str = "The payment processor could not complete the request",
        processor_code: Optional[str] = None,
        retryable: bool = False,
    ):
        self.retryable = retryable
        self.processor_code = processor_code
        super().__init__(detail, {"processor_code": processor_code} if processor_code else None)


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """Render a ProblemDetailsException; the request path fills in ``instance``."""
    body = exc.problem_details
    body.setdefault("instance", request.url.path)
    if exc.status >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "code": exc.code, "detail": exc.detail})
    return JSONResponse(
        status_code=exc.status,
        content=body,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body validation failures as InvalidArgument problems."""
    violations = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]
    problem = ValidationError(detail="The request data failed validation", violations=violations)
    return await problem_details_handler(request, problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log with an error id and answer 500 without internals."""
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path},
    )

    problem = InternalServerError(error_id=error_id)
    problem.retryable = False
    return await problem_details_handler(request, problem)
