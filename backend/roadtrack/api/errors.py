from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from roadtrack.api.envelope import error_response, module_for_path
from roadtrack.core.config import Settings, get_settings
from roadtrack.core.errors import (
    ConflictError,
    CycleOutOfBoundsError,
    ForeignKeyViolationError,
    MovementError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger("roadtrack.api")

# most specific first
_ERROR_OPERATIONS: tuple[tuple[type[MovementError], str], ...] = (
    (CycleOutOfBoundsError, "CYCLE_BOUNDS_ERROR"),
    (ValidationError, "VALIDATION_ERROR"),
    (ForeignKeyViolationError, "FOREIGN_KEY_ERROR"),
    (NotFoundError, "GET_ERROR"),
    (ConflictError, "DUPLICATE_ERROR"),
)


def operation_for_error(exc: MovementError) -> str:
    for error_type, operation in _ERROR_OPERATIONS:
        if isinstance(exc, error_type):
            return operation
    return "INTERNAL_ERROR"


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MovementError, _handle_movement_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(Exception, _handle_unexpected_error)


def _settings_for(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def _show_details(request: Request) -> bool:
    return _settings_for(request).api_error_details


async def _handle_movement_error(request: Request, exc: MovementError) -> JSONResponse:
    operation = operation_for_error(exc)
    if operation == "INTERNAL_ERROR":
        logger.error("movement store failure path=%s kind=%s error=%s", request.url.path, exc.kind, exc.message)
    return error_response(
        module_for_path(request.url.path),
        operation,
        exc.message,
        details={"kind": exc.kind} if _show_details(request) else None,
    )


async def _handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    summary = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in errors
    )
    return error_response(
        module_for_path(request.url.path),
        "VALIDATION_ERROR",
        f"Invalid request: {summary}" if summary else "Invalid request",
        details=jsonable_encoder(errors, custom_encoder={Exception: str}) if _show_details(request) else None,
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status_code": exc.status_code,
            "message": str(exc.detail),
            "api_response_code": f"API-ERROR-{exc.status_code}",
        },
        headers=getattr(exc, "headers", None),
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error path=%s", request.url.path)
    return error_response(
        module_for_path(request.url.path),
        "INTERNAL_ERROR",
        "Internal server error",
        details=str(exc) if _show_details(request) else None,
    )
