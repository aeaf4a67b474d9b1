from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from roadtrack.api.envelope import EQUIPMENT_MODULE, error_response, success_response
from roadtrack.core.config import Settings
from roadtrack.db.models import Equipment
from roadtrack.db.session import get_db
from roadtrack.dependencies import get_settings_from_app
from roadtrack.repositories.equipment import create_equipment, get_equipment_by_eqp_id, list_equipment
from roadtrack.schemas.equipment import EquipmentCreateRequest, EquipmentResponse

router = APIRouter(prefix="/api", tags=["equipment"])


@router.post("/equipment-headers")
def post_equipment(
    payload: EquipmentCreateRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_from_app),
) -> JSONResponse:
    equipment = create_equipment(
        db,
        mobile=payload.mobile,
        eqp_type=payload.eqp_type,
        id_max_value=settings.id_sequence_max,
    )
    return success_response(
        EQUIPMENT_MODULE,
        "CREATE_SUCCESS",
        "Equipment created successfully",
        data=_to_response(equipment).model_dump(),
    )


@router.get("/equipment-headers")
def get_equipment_list(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_equipment(db, skip=skip, limit=limit)
    return success_response(
        EQUIPMENT_MODULE,
        "GET_ALL_SUCCESS",
        "Equipment retrieved successfully",
        data=[_to_response(row).model_dump() for row in rows],
        count=len(rows),
    )


@router.get("/equipment-headers/{eqp_id}")
def get_equipment(eqp_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    equipment = get_equipment_by_eqp_id(db, eqp_id.strip())
    if equipment is None:
        return error_response(EQUIPMENT_MODULE, "GET_ERROR", f"Equipment {eqp_id} not found")
    return success_response(
        EQUIPMENT_MODULE,
        "GET_SUCCESS",
        "Equipment retrieved successfully",
        data=_to_response(equipment).model_dump(),
    )


def _to_response(equipment: Equipment) -> EquipmentResponse:
    return EquipmentResponse.model_validate(equipment)
