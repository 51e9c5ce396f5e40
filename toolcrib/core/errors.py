from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("toolcrib.errors")


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


class ServiceError(Exception):
    """Base class for failures the API reports to callers.

    ``status_code`` and ``code`` travel to the client; ``message`` is always
    safe to show. Anything that is not a ``ServiceError`` is treated as an
    internal failure and never leaks its text.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "bad_request"
    message: str = "Request could not be processed"

    def __init__(self, message: str | None = None, *, details: Any | None = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# ---- authentication / authorization
class Unauthenticated(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    message = "Authorization required"


class InvalidCredentials(Unauthenticated):
    code = "invalid_credentials"
    message = "Invalid credentials"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    message = "You do not have permission to perform this action"


# ---- validation
class ValidationFailed(ServiceError):
    code = "validation_error"
    message = "Validation failed"


# ---- not found
class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Not found"


class ToolNotFound(NotFound):
    code = "tool_not_found"
    message = "Tool not found"


class LoanNotFound(NotFound):
    code = "loan_not_found"
    message = "Loan not found"


class UserNotFound(NotFound):
    code = "user_not_found"
    message = "User not found"


class ProductNotFound(NotFound):
    code = "product_not_found"
    message = "Product not found"


class WithdrawalNotFound(NotFound):
    code = "withdrawal_not_found"
    message = "Withdrawal not found"


# ---- conflicts
class Conflict(ServiceError):
    code = "conflict"
    message = "Conflicting request"


class DuplicateTicket(Conflict):
    code = "duplicate_ticket"
    message = "Ticket number already exists"


class DuplicateCode(Conflict):
    code = "duplicate_code"
    message = "Tool code already exists"


class DuplicateUser(Conflict):
    code = "duplicate_user"
    message = "Document number or email already registered"


class AlreadyReturned(Conflict):
    code = "already_returned"
    message = "Loan has already been returned"


class TicketSequenceExhausted(Conflict):
    code = "ticket_sequence_exhausted"
    message = "No ticket numbers left for today"


class ReferencedRecord(Conflict):
    code = "referenced_record"
    message = "Record is referenced by history and cannot be deleted"


# ---- inventory
class InsufficientStock(ServiceError):
    code = "insufficient_stock"
    message = "Insufficient stock"


class HasOutstandingLoans(ServiceError):
    code = "has_outstanding_loans"
    message = "Tool has units out on loan"


class LedgerInconsistency(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    message = "Internal server error"


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(
            "request.failed",
            exc_info=exc,
            extra={"extra_data": {"path": request.url.path, "error": repr(exc)}},
        )
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_400_BAD_REQUEST,
        code="validation_error",
        message="Validation failed",
        details={"errors": _jsonable_errors(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    # Full detail goes to the log only.
    logger.error(
        "request.unhandled_error",
        exc_info=exc,
        extra={"extra_data": {"path": request.url.path, "method": request.method}},
    )
    return ErrorEnvelope(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="Internal server error",
    )


def _jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    cleaned = []
    for error in errors:
        item = {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        item["loc"] = [str(part) for part in item.get("loc", ())]
        cleaned.append(item)
    return cleaned


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
