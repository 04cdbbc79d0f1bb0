"""
Centralized exception handling for BizDesk API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    errorMessage: str = e.orig.diag.message_detail
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses. Anything unrecognised is
    logged with its traceback and surfaced as a generic InternalError.
    """
    if isinstance(e, IntegrityError) and hasattr(e.orig, "diag"):
        if e.orig.diag.sqlstate == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if e.orig.diag.sqlstate == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors())
    if isinstance(e, APIException):
        raise e
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    raise InternalError() from e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ForeignKeyViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InactiveAccount(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The account is not in active status"
    headers = {"X-Error": "InactiveAccount"}


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Unauthorized"
    headers = {"X-Error": "InvalidToken"}


class NoPermission(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden: insufficient role"
    headers = {"X-Error": "NoPermission"}


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class DisallowedEmailDomain(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "DisallowedEmailDomain"}

    def __init__(self, domains: list[str]):
        allowed = ", ".join(f"@{domain}" for domain in domains)
        super().__init__(detail=f"Only {allowed} emails allowed")


class DuplicateAccount(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "An account with this email already exists"
    headers = {"X-Error": "DuplicateAccount"}


class DuplicateDuty(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "You already have an active duty session"
    headers = {"X-Error": "DuplicateDuty"}


class InactiveDuty(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The duty session is not active"
    headers = {"X-Error": "InactiveDuty"}


class DailyLocationCapReached(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "DailyLocationCapReached"}

    def __init__(self, cap: int):
        detail = f"Daily location cap reached ({cap} points). No more points accepted today."
        super().__init__(detail=detail)


class InvalidGSTIN(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid GSTIN format"
    headers = {"X-Error": "InvalidGSTIN"}


class RateLimited(APIException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    headers = {"X-Error": "RateLimited"}

    def __init__(self, limit: int, window: int):
        detail = f"Rate limit exceeded. Max {limit} lookups per {window} seconds."
        super().__init__(detail=detail)


class GSTProviderNotConfigured(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "GST verification API is not configured."
    headers = {"X-Error": "GSTProviderNotConfigured"}


class GSTProviderUnreachable(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "GST verification provider is unreachable. Try again later."
    headers = {"X-Error": "GSTProviderUnreachable"}


class GSTProviderRejected(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid GST or API error"
    headers = {"X-Error": "GSTProviderRejected"}

    def __init__(self, detail: str | None = None):
        super().__init__(detail=detail or self.detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class InternalError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"
    headers = {"X-Error": "InternalError"}
