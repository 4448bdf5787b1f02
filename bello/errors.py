from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .schemas import ErrorEnvelope

logger = logging.getLogger(__name__)


class BelloError(Exception):
    """Base for every rejection an operation can produce.

    Each subclass carries the wire ``code`` and HTTP status it maps to, so
    the boundary can translate it without knowing which operation raised it.
    """

    code = "error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthenticated(BelloError):
    code = "unauthenticated"
    status_code = 401


class Forbidden(BelloError):
    code = "forbidden"
    status_code = 403


class ValidationFailed(BelloError):
    code = "validation_error"
    status_code = 400


class NotFound(BelloError):
    code = "not_found"
    status_code = 404


class Conflict(BelloError):
    code = "conflict"
    status_code = 409


class UploadUnavailable(BelloError):
    code = "upload_unavailable"
    status_code = 503


# statuses raised by the framework itself, e.g. unknown routes
HTTP_CODES = {
    Unauthenticated.status_code: Unauthenticated.code,
    Forbidden.status_code: Forbidden.code,
    NotFound.status_code: NotFound.code,
    405: "method_not_allowed",
}


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(code=code, message=message, details=details)
    return JSONResponse(status_code=status_code, content={"error": envelope.model_dump()}, headers=headers)


async def handle_bello_error(request: Request, exc: BelloError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_CODES.get(exc.status_code, "error")
    return error_response(exc.status_code, code, str(exc.detail), headers=exc.headers)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.setdefault(".".join(loc) or "body", []).append(err.get("msg", "invalid"))
    return error_response(400, ValidationFailed.code, "Invalid input", {"fields": fields})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BelloError, handle_bello_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
