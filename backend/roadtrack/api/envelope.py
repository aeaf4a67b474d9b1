from __future__ import annotations

from typing import Any

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

API_VERSION = "v1.0"

EQUIPMENT_MODULE = "EQH"
ROUTE_MODULE = "EQR"
MOVEMENT_MODULE = "EQM"

_OPERATIONS: dict[str, tuple[int, int]] = {
    "CREATE_SUCCESS": (1, status.HTTP_201_CREATED),
    "CREATE_ERROR": (2, status.HTTP_400_BAD_REQUEST),
    "GET_SUCCESS": (3, status.HTTP_200_OK),
    "GET_ERROR": (4, status.HTTP_404_NOT_FOUND),
    "GET_ALL_SUCCESS": (5, status.HTTP_200_OK),
    "VALIDATION_ERROR": (6, status.HTTP_400_BAD_REQUEST),
    "DUPLICATE_ERROR": (7, status.HTTP_409_CONFLICT),
    "FOREIGN_KEY_ERROR": (8, status.HTTP_400_BAD_REQUEST),
    "INTERNAL_ERROR": (9, status.HTTP_500_INTERNAL_SERVER_ERROR),
    "APPEND_SUCCESS": (10, status.HTTP_200_OK),
    "CYCLE_BOUNDS_ERROR": (11, status.HTTP_400_BAD_REQUEST),
}


def api_code(module: str, operation: str) -> str:
    number, status_code = _OPERATIONS[operation]
    return f"{module}{number:03d}-{API_VERSION}-{status_code}"


def operation_status(operation: str) -> int:
    return _OPERATIONS[operation][1]


API_CODES: dict[str, dict[str, str]] = {
    module: {operation: api_code(module, operation) for operation in _OPERATIONS}
    for module in (EQUIPMENT_MODULE, ROUTE_MODULE, MOVEMENT_MODULE)
}


def module_for_path(path: str) -> str | None:
    if path.startswith("/api/equipment-headers"):
        return EQUIPMENT_MODULE
    if path.startswith("/api/equipment-routes"):
        return ROUTE_MODULE
    if path.startswith("/api/equipment-movements"):
        return MOVEMENT_MODULE
    return None


def success_response(
    module: str,
    operation: str,
    message: str,
    *,
    data: Any = None,
    count: int | None = None,
    warnings: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    status_code = operation_status(operation)
    body: dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "api_response_code": api_code(module, operation),
    }
    if data is not None:
        body["data"] = data
    if count is not None:
        body["count"] = count
    if warnings:
        body["warnings"] = warnings
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(
    module: str | None,
    operation: str,
    message: str,
    *,
    details: Any = None,
) -> JSONResponse:
    status_code = operation_status(operation)
    body: dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "api_response_code": (
            api_code(module, operation) if module is not None else f"API-ERROR-{status_code}"
        ),
    }
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
