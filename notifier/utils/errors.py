from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class NotifierError(Exception):
    """
    Base exception for the scheduling core.

    Subclasses carry the HTTP status and log level used when one escapes
    a route, so a single handler covers the whole hierarchy.
    """

    default_code = "NOTIFIER_ERROR"
    error_type = "NOTIFIER_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    log_level = "ERROR"

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code


class TransientSendFailure(NotifierError):
    """Gateway or network failure on send. Retried up to max_retries."""

    default_code = "SEND_FAILED"
    error_type = "TRANSIENT_SEND_FAILURE"
    http_status = status.HTTP_502_BAD_GATEWAY


class ValidationFailure(NotifierError):
    """Missing address or notifications disabled for the target. Never retried."""

    default_code = "VALIDATION_FAILED"
    error_type = "VALIDATION_FAILURE"
    http_status = status.HTTP_400_BAD_REQUEST
    log_level = "WARNING"


class DeduplicationHit(NotifierError):
    """A pending or sent row already exists for the same dedup key."""

    default_code = "DUPLICATE"
    error_type = "DUPLICATE"
    http_status = status.HTTP_409_CONFLICT
    log_level = "WARNING"


class StoreFailure(NotifierError):
    """Insert or update against the store failed."""

    default_code = "DB_ERROR"
    error_type = "STORE_FAILURE"


class InvalidTriggerError(NotifierError):
    """Unknown discriminator or malformed trigger payload."""

    default_code = "INVALID_TRIGGER"
    error_type = "INVALID_TRIGGER"
    http_status = status.HTTP_400_BAD_REQUEST


class AuthenticationError(NotifierError):
    """Trigger secret missing or wrong."""

    default_code = "UNAUTHORIZED"
    error_type = "AUTHENTICATION_ERROR"
    http_status = status.HTTP_401_UNAUTHORIZED


def setup_error_handlers(app: FastAPI):
    """Setup custom error handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "HTTP exception", status_code=exc.status_code, detail=str(exc.detail)
        )
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        formatted_errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning("Request validation failed", errors=formatted_errors)

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=formatted_errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(NotifierError)
    async def notifier_exception_handler(request: Request, exc: NotifierError):
        logger.log(
            exc.log_level,
            "Request failed",
            error_type=exc.error_type,
            error_code=exc.error_code,
            detail=exc.message,
        )

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=exc.http_status,
            meta={"error_type": exc.error_type},
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error", error=str(exc))

        # Database internals never reach the caller
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.opt(exception=exc).error("Unhandled exception", path=request.url.path)

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )
