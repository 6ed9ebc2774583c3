"""
Mimi's Kitchen API - Custom Exceptions
=======================================
Business-level exceptions and the handlers that convert them to JSON responses.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("mimis.errors")


class AppError(Exception):
    """Base exception for all business logic errors."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Something went wrong"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(AppError):
    """Raised when a requested resource doesn't exist (or isn't the caller's)."""
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AppError):
    """Raised for malformed or out-of-range input."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(AppError):
    """Raised when an operation is illegal for the aggregate's current state."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(AppError):
    """Raised for unique constraint violations at the business level."""
    status_code = status.HTTP_409_CONFLICT


class AuthenticationError(AppError):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    """Raised when user lacks permission."""
    status_code = status.HTTP_403_FORBIDDEN


class PaymentGatewayError(AppError):
    """Raised for payment gateway errors."""
    status_code = status.HTTP_502_BAD_GATEWAY


class WebhookSignatureError(AppError):
    """Raised when an inbound webhook cannot be authenticated."""
    status_code = status.HTTP_400_BAD_REQUEST


# ==========================================
# Handlers
# ==========================================

async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        {"status": "fail", "message": exc.message},
        status_code=exc.status_code,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"status": "fail", "message": "Validation error", "details": jsonable_encoder(exc.errors())},
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    from config.settings import DEBUG

    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if DEBUG else "Something went wrong"
    return JSONResponse(
        {"status": "error", "message": message},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
