"""Uniform JSON envelope and the error taxonomy shared by every endpoint.

Every response, successful or not, has the shape::

    {"statusCode": 200, "data": {...}, "message": "...", "success": true}
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiResponse(BaseModel):
    statusCode: int
    data: Any = Field(default_factory=dict)
    message: str = "Success"
    success: bool = True


def api_response(status_code: int, data: Any = None, message: str = "Success") -> JSONResponse:
    payload = ApiResponse(
        statusCode=status_code,
        data={} if data is None else data,
        message=message,
        success=status_code < 400,
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


# -------------------- Errors --------------------

class ApiError(Exception):
    """Base class for failures surfaced to the caller through the envelope."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "All fields are required"


class InvalidIdentifier(ApiError):
    status_code = 400
    default_message = "Invalid id format"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized request"


class Forbidden(ApiError):
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class UpstreamFailure(ApiError):
    status_code = 502
    default_message = "Upstream service failed"


class Internal(ApiError):
    status_code = 500
    default_message = "Internal server error"


# -------------------- Handlers --------------------

def _error_response(status_code: int, message: str) -> JSONResponse:
    return api_response(status_code, {}, message)


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return _error_response(ValidationFailed.status_code, message)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


async def handle_duplicate_key(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    return _error_response(Conflict.status_code, Conflict.default_message)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(Internal.status_code, Internal.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(DuplicateKeyError, handle_duplicate_key)
    app.add_exception_handler(Exception, handle_unexpected)
