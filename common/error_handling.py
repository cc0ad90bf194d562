"""
Error handling with standardized responses

Every error answered by the ledger has the shape
``{"error": <message>, "code": <ERROR_CODE>, "trace_id": ...}``.
"""
from typing import Optional, Dict, Any
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
import logging
import traceback
import time

logger = logging.getLogger(__name__)

class StandardErrorResponse(BaseModel):
    """Standard error response format"""
    error: str
    code: str
    field: Optional[str] = None
    timestamp: float
    trace_id: Optional[str] = None

class ErrorCodes:
    """Standard error codes"""
    # Authentication & Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    ACCOUNT_FROZEN = "ACCOUNT_FROZEN"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Business Logic
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    RECEIVER_NOT_FOUND = "RECEIVER_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"

    # System Errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    PERSISTENCE_CONFLICT = "PERSISTENCE_CONFLICT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

SERVER_ERROR_MESSAGE = "Server error"

class BusinessLogicError(Exception):
    """Client-facing error: the request cannot succeed as submitted"""
    code = ErrorCodes.VALIDATION_ERROR
    status_code = 400

    def __init__(self, message: str, code: str = None, field: str = None,
                 context: Dict[str, Any] = None, status_code: int = None):
        self.message = message
        self.code = code or self.code
        self.field = field
        self.context = context or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

class ServiceError(Exception):
    """Infrastructure error: the request failed for reasons outside the client's control"""
    code = ErrorCodes.INTERNAL_SERVER_ERROR
    status_code = 500

    def __init__(self, message: str = SERVER_ERROR_MESSAGE, code: str = None,
                 original_error: Exception = None):
        self.message = message
        self.code = code or self.code
        self.original_error = original_error
        super().__init__(message)

def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 500,
    field: str = None,
    trace_id: str = None,
) -> JSONResponse:
    """Create standardized error response"""
    body = StandardErrorResponse(
        error=message,
        code=error_code,
        field=field,
        timestamp=time.time(),
        trace_id=trace_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))

def _trace_id(request: Request) -> Optional[str]:
    return getattr(request.state, "trace_id", None)

async def business_logic_exception_handler(request: Request, exc: BusinessLogicError):
    """Handle business logic exceptions"""
    trace_id = _trace_id(request)

    logger.warning(f"Business logic error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "field": exc.field,
        "context": exc.context,
    })

    return create_error_response(
        error_code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        field=exc.field,
        trace_id=trace_id,
    )

async def service_exception_handler(request: Request, exc: ServiceError):
    """Handle service-level exceptions without exposing the underlying cause"""
    trace_id = _trace_id(request)

    logger.error(f"Service error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "original_error": repr(exc.original_error) if exc.original_error else None,
    })

    return create_error_response(
        error_code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        trace_id=trace_id,
    )

def _validation_message(request: Request, errors) -> tuple:
    """Map pydantic errors onto the ledger's client messages.

    Missing fields win over malformed ones, matching the order in which a
    transfer request is checked.
    """
    missing = [e for e in errors if e.get("type") in ("missing", "string_too_short")]
    if missing:
        field = str(missing[0].get("loc", ["", ""])[-1])
        if request.url.path.startswith("/transactions"):
            return ErrorCodes.MISSING_FIELD, "Missing transaction details", field
        return ErrorCodes.MISSING_FIELD, f"Missing required field '{field}'", field

    for e in errors:
        if "amount" in e.get("loc", ()):
            return ErrorCodes.INVALID_AMOUNT, "Invalid amount", "amount"

    first = errors[0] if errors else {}
    field = ".".join(str(loc) for loc in first.get("loc", []))
    return ErrorCodes.VALIDATION_ERROR, f"Invalid value for '{field}'", field

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation exceptions"""
    trace_id = _trace_id(request)
    code, message, field = _validation_message(request, exc.errors())

    logger.warning(f"Validation error: {message}", extra={
        "trace_id": trace_id,
        "validation_errors": [e.get("type") for e in exc.errors()],
    })

    return create_error_response(
        error_code=code,
        message=message,
        status_code=400,
        field=field,
        trace_id=trace_id,
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle FastAPI HTTP exceptions"""
    trace_id = _trace_id(request)

    status_to_code = {
        400: ErrorCodes.VALIDATION_ERROR,
        401: ErrorCodes.UNAUTHORIZED,
        403: ErrorCodes.FORBIDDEN,
        404: ErrorCodes.NOT_FOUND,
        503: ErrorCodes.SERVICE_UNAVAILABLE,
    }
    error_code = status_to_code.get(exc.status_code, ErrorCodes.INTERNAL_SERVER_ERROR)

    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}", extra={
        "status_code": exc.status_code,
        "trace_id": trace_id,
    })

    return create_error_response(
        error_code=error_code,
        message=str(exc.detail),
        status_code=exc.status_code,
        trace_id=trace_id,
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    trace_id = _trace_id(request)

    logger.error(f"Unexpected error: {exc!r}", extra={
        "trace_id": trace_id,
        "traceback": traceback.format_exc(),
    })

    # Don't expose internal error details
    return create_error_response(
        error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
        message=SERVER_ERROR_MESSAGE,
        status_code=500,
        trace_id=trace_id,
    )

def add_error_handlers(app):
    """Add all error handlers to FastAPI app"""
    app.add_exception_handler(BusinessLogicError, business_logic_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
