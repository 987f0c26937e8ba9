"""
    Centralized exception handling for the FastAPI application.
"""
from contextlib import contextmanager
from typing import Any, Dict, Optional
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.detail = detail
        self.headers = headers
        super().__init__(self.detail)

class ValidationException(APIException):
    """Exception for missing or malformed input."""
    def __init__(self, detail: str, index: Optional[int] = None):
        super().__init__(status_code=400, detail=detail)
        self.index = index

class InvalidIdentifierException(APIException):
    """Exception for identifiers that are not well-formed."""
    def __init__(self, identifier: str):
        super().__init__(status_code=400, detail=f"Invalid identifier '{identifier}'.")

class UnauthorizedException(APIException):
    """Exception for requests without valid credentials."""
    def __init__(self, detail: str = "Not authorized, no token"):
        super().__init__(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})

class InvalidCredentialsException(UnauthorizedException):
    """Exception for a failed login. Never says which half was wrong."""
    def __init__(self):
        super().__init__(detail="Invalid email or password.")

class TokenExpiredException(UnauthorizedException):
    def __init__(self):
        super().__init__(detail="Token has expired, please login again.")

class TokenInvalidException(UnauthorizedException):
    def __init__(self):
        super().__init__(detail="Not authorized, token failed.")

class ImageNotFoundException(APIException):
    """Exception for when an image is not found."""
    def __init__(self, image_id: str):
        super().__init__(status_code=404, detail=f"Image with ID '{image_id}' not found.")

class NoImagesFoundException(APIException):
    """Exception for browse/search queries without matches."""
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)

class UserNotFoundException(APIException):
    """Exception for when a user account is not found."""
    def __init__(self):
        super().__init__(status_code=404, detail="User not found.")

class ConflictException(APIException):
    """Exception for writes that collide with existing data."""
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)

class S3Exception(APIException):
    """Exception for S3 failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class DynamoDBException(APIException):
    """Exception for DynamoDB failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

@contextmanager
def dynamodb_errors(action: str):
    """Translates boto failures raised inside the block into DynamoDBException."""
    try:
        yield
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB {action} failed: {e}")
        raise DynamoDBException(f"Failed to {action}: {e}")

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    if exc.status_code >= 500:
        log.error(f"API Exception: {exc.detail}", exc_info=exc)
    else:
        log.info(f"API Exception: {exc.status_code} {exc.detail}")
    content: Dict[str, Any] = {"detail": exc.detail}
    if isinstance(exc, ValidationException) and exc.index is not None:
        content["index"] = exc.index
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )

async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reports malformed request parameters and bodies as 400."""
    log.info(f"Request validation failed: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
