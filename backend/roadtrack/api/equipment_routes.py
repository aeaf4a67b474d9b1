from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from roadtrack.api.envelope import ROUTE_MODULE, error_response, success_response
from roadtrack.core.config import Settings
from roadtrack.core.errors import ForeignKeyViolationError
from roadtrack.db.models import EquipmentRoute
from roadtrack.db.session import get_db
from roadtrack.dependencies import get_settings_from_app
from roadtrack.repositories.equipment import get_equipment_by_eqp_id
from roadtrack.repositories.equipment_routes import create_route, get_route_by_route_id, list_routes
from roadtrack.schemas.equipment_routes import EquipmentRouteCreateRequest, EquipmentRouteResponse

router = APIRouter(prefix="/api", tags=["equipment-routes"])


@router.post("/equipment-routes")
def post_equipment_route(
    payload: EquipmentRouteCreateRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_from_app),
) -> JSONResponse:
    if get_equipment_by_eqp_id(db, payload.eqp_id) is None:
        raise ForeignKeyViolationError(f"Equipment {payload.eqp_id} does not exist")

    route = create_route(
        db,
        eqp_id=payload.eqp_id,
        route_name=payload.route_name,
        start_gps=payload.start_gps,  # type: ignore[arg-type]
        end_gps=payload.end_gps,  # type: ignore[arg-type]
        start_km=payload.start_km,
        start_chainage=payload.start_chainage,
        end_km=payload.end_km,
        end_chainage=payload.end_chainage,
        id_max_value=settings.id_sequence_max,
    )
    return success_response(
        ROUTE_MODULE,
        "CREATE_SUCCESS",
        "Equipment route created successfully",
        data=_to_response(route).model_dump(),
    )


@router.get("/equipment-routes")
def get_equipment_routes(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_routes(db, skip=skip, limit=limit)
    return success_response(
        ROUTE_MODULE,
        "GET_ALL_SUCCESS",
        "Equipment routes retrieved successfully",
        data=[_to_response(row).model_dump() for row in rows],
        count=len(rows),
    )


@router.get("/equipment-routes/equipment/{eqp_id}")
def get_equipment_routes_for_equipment(
    eqp_id: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_routes(db, eqp_id=eqp_id.strip(), skip=skip, limit=limit)
    return success_response(
        ROUTE_MODULE,
        "GET_ALL_SUCCESS",
        "Equipment routes retrieved successfully",
        data=[_to_response(row).model_dump() for row in rows],
        count=len(rows),
    )


@router.get("/equipment-routes/{route_id}")
def get_equipment_route(route_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    route = get_route_by_route_id(db, route_id.strip())
    if route is None:
        return error_response(ROUTE_MODULE, "GET_ERROR", f"Equipment route {route_id} not found")
    return success_response(
        ROUTE_MODULE,
        "GET_SUCCESS",
        "Equipment route retrieved successfully",
        data=_to_response(route).model_dump(),
    )


def _to_response(route: EquipmentRoute) -> EquipmentRouteResponse:
    return EquipmentRouteResponse.model_validate(route)
