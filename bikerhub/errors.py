"""
Error types and the central exception -> HTTP response mapping.
"""

from __future__ import annotations

import re
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

import jwt
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bikerhub.config import settings


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, is_operational: bool = True):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.is_operational = is_operational

    @property
    def status(self) -> str:
        return "fail" if str(self.status_code).startswith("4") else "error"


class NotFoundError(AppError):
    status_code = 404


class AuthError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class OrderStateError(AppError):
    status_code = 400


UPLOAD_LIMIT_MESSAGES = {
    "LIMIT_FILE_SIZE": "File too large. Maximum size is {max_mb}MB.",
    "LIMIT_FILE_COUNT": "Too many files. Maximum is {max_files} files.",
    "LIMIT_UNEXPECTED_FILE": "Unexpected file field.",
    "LIMIT_FILE_TYPE": "Unsupported file type.",
}


class UploadLimitError(AppError):
    status_code = 400

    def __init__(self, code: str):
        message = UPLOAD_LIMIT_MESSAGES[code].format(
            max_mb=settings.max_file_size_mb, max_files=settings.MAX_FILES
        )
        super().__init__(message)
        self.code = code


def duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        return next(iter(key_value))
    match = re.search(r"index: (?:\S+\.\$)?([A-Za-z0-9_.]+?)_-?1", str(exc))
    return match.group(1) if match else "field"


def validation_messages(exc: ValidationError) -> str:
    return ", ".join(err["msg"] for err in exc.errors())


def resolve_error(exc: Exception) -> tuple[int, str]:
    """Map an exception to (status_code, message)."""
    if isinstance(exc, AppError):
        return exc.status_code, exc.message
    if isinstance(exc, InvalidId):
        return 404, "Resource not found"
    if isinstance(exc, DuplicateKeyError):
        return 400, f"Duplicate field value: {duplicate_field(exc)}. Please use another value."
    if isinstance(exc, ValidationError):
        return 400, validation_messages(exc)
    if isinstance(exc, jwt.ExpiredSignatureError):
        return 401, "Token expired. Please log in again."
    if isinstance(exc, jwt.InvalidTokenError):
        return 401, "Invalid token. Please log in again."
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code == 429:
            return 429, "Too many requests from this IP, please try again later."
        return exc.status_code, str(exc.detail)
    return 500, str(exc) or "Internal Server Error"


def error_body(request: Request, exc: Exception, status_code: int, message: str) -> dict[str, Any]:
    if settings.is_production and status_code == 500:
        message = "Internal Server Error"
    body: dict[str, Any] = {
        "success": False,
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if settings.is_development:
        body["path"] = request.url.path
        body["method"] = request.method
        if status_code == 500:
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def _log_error(request: Request, status_code: int, message: str) -> None:
    user = getattr(request.state, "user", None)
    user_id = getattr(user, "id", None) or "anonymous"
    client = request.client.host if request.client else "-"
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "{} {} - {} - {} (user={}, ip={}, ua={})",
        request.method,
        request.url.path,
        status_code,
        message,
        user_id,
        client,
        request.headers.get("user-agent", "-"),
    )


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    status_code, message = resolve_error(exc)
    _log_error(request, status_code, message)
    return JSONResponse(status_code=status_code, content=error_body(request, exc, status_code, message))


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        exc = NotFoundError(f"Route {request.url.path} not found")
    return await handle_exception(request, exc)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log_error(request, 400, "Validation errors")
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    body = error_body(request, exc, 400, "Validation errors")
    body["errors"] = errors
    return JSONResponse(status_code=400, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    for exc_type in (AppError, InvalidId, DuplicateKeyError, ValidationError, jwt.InvalidTokenError):
        app.add_exception_handler(exc_type, handle_exception)
    app.add_exception_handler(Exception, handle_exception)
