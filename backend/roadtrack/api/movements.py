from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from roadtrack.api.envelope import MOVEMENT_MODULE, error_response, success_response
from roadtrack.db.models import MovementCycle
from roadtrack.db.session import get_db
from roadtrack.dependencies import get_cycle_writer
from roadtrack.repositories.movements import get_movement_cycle, list_movement_cycles
from roadtrack.schemas.movements import (
    CapacityWarningResponse,
    MovementCycleResponse,
    MovementSubmitRequest,
    MovementWriteResponse,
)
from roadtrack.services.cycle_writer import CycleWriterService, CycleWriteResult, MovementSubmission
from roadtrack.services.field_packer import decode_batch, unpack_slots

router = APIRouter(prefix="/api", tags=["equipment-movements"])


@router.post("/equipment-movements")
def post_equipment_movement(
    payload: MovementSubmitRequest,
    cycle_writer: CycleWriterService = Depends(get_cycle_writer),
) -> JSONResponse:
    result = cycle_writer.submit(
        MovementSubmission(
            route_id=payload.route_id,
            eqp_id=payload.eqp_id,
            samples=payload.samples,
            cycle_number=payload.cycle,
            group_no=payload.group_no,
            group_label=payload.group_label,
            max_cycles_per_group=payload.max_cycles_per_group,
            explicit_status=payload.status,
        )
    )
    warnings = [
        CapacityWarningResponse(
            kind=warning.kind,
            message=warning.message,
            dropped=warning.dropped,
            capacity=warning.capacity,
        ).model_dump()
        for warning in result.warnings
    ]
    if result.created:
        operation, message = "CREATE_SUCCESS", "Movement cycle created successfully"
    else:
        operation, message = "APPEND_SUCCESS", "Samples appended to movement cycle"
    return success_response(
        MOVEMENT_MODULE,
        operation,
        message,
        data=_to_write_response(result).model_dump(),
        warnings=warnings,
    )


@router.get("/equipment-movements")
def get_equipment_movements(
    route_id: str | None = None,
    eqp_id: str | None = None,
    group_no: int | None = Query(default=None, ge=1),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    include_samples: bool = False,
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_movement_cycles(
        db,
        route_id=route_id,
        eqp_id=eqp_id,
        group_no=group_no,
        skip=skip,
        limit=limit,
    )
    return _list_response(rows, include_samples=include_samples)


@router.get("/equipment-movements/equipment/{eqp_id}")
def get_equipment_movements_for_equipment(
    eqp_id: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    include_samples: bool = False,
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_movement_cycles(db, eqp_id=eqp_id.strip(), skip=skip, limit=limit)
    return _list_response(rows, include_samples=include_samples)


@router.get("/equipment-movements/group/{group_no}")
def get_equipment_movements_for_group(
    group_no: int,
    route_id: str | None = None,
    eqp_id: str | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    include_samples: bool = False,
    db: Session = Depends(get_db),
) -> JSONResponse:
    if group_no < 1:
        return error_response(MOVEMENT_MODULE, "VALIDATION_ERROR", "group_no must be at least 1")
    rows = list_movement_cycles(
        db,
        route_id=route_id,
        eqp_id=eqp_id,
        group_no=group_no,
        skip=skip,
        limit=limit,
    )
    return _list_response(rows, include_samples=include_samples)


@router.get("/equipment-movements/{route_id}/{eqp_id}/{group_no}/{cycle_number}")
def get_equipment_movement_cycle(
    route_id: str,
    eqp_id: str,
    group_no: int,
    cycle_number: int,
    include_samples: bool = True,
    db: Session = Depends(get_db),
) -> JSONResponse:
    row = get_movement_cycle(
        db,
        route_id=route_id.strip(),
        eqp_id=eqp_id.strip(),
        group_no=group_no,
        cycle_number=cycle_number,
    )
    if row is None:
        return error_response(
            MOVEMENT_MODULE,
            "GET_ERROR",
            f"Movement cycle {cycle_number} in group {group_no} not found for route {route_id} and equipment {eqp_id}",
        )
    return success_response(
        MOVEMENT_MODULE,
        "GET_SUCCESS",
        "Movement cycle retrieved successfully",
        data=_to_cycle_response(row, include_samples=include_samples).model_dump(),
    )


@router.get("/equipment-movements/{route_id}")
def get_equipment_movements_for_route(
    route_id: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    include_samples: bool = False,
    db: Session = Depends(get_db),
) -> JSONResponse:
    rows = list_movement_cycles(db, route_id=route_id.strip(), skip=skip, limit=limit)
    if not rows and skip == 0:
        return error_response(MOVEMENT_MODULE, "GET_ERROR", f"No movement cycles found for route {route_id}")
    return _list_response(rows, include_samples=include_samples)


def _list_response(rows: list[MovementCycle], *, include_samples: bool) -> JSONResponse:
    return success_response(
        MOVEMENT_MODULE,
        "GET_ALL_SUCCESS",
        "Movement cycles retrieved successfully",
        data=[_to_cycle_response(row, include_samples=include_samples).model_dump() for row in rows],
        count=len(rows),
    )


def _to_write_response(result: CycleWriteResult) -> MovementWriteResponse:
    return MovementWriteResponse(
        route_id=result.route_id,
        eqp_id=result.eqp_id,
        cycle=result.cycle_number,
        group_no=result.group_no,
        group_label=result.group_label,
        status=result.status,
        created=result.created,
        existing_sample_count=result.existing_sample_count,
        new_sample_count=result.new_sample_count,
        total_sample_count=result.total_sample_count,
        duplicate_sample_count=result.duplicate_sample_count,
        dropped_sample_count=result.dropped_sample_count,
        active_slot_index=result.active_slot_index,
        capacity_exceeded=result.capacity_exceeded,
        can_create_next_cycle=result.can_create_next_cycle,
        max_cycles_per_group=result.max_cycles_per_group,
        start_time=result.start_time,
        end_time=result.end_time,
    )


def _to_cycle_response(row: MovementCycle, *, include_samples: bool) -> MovementCycleResponse:
    slots = list(row.sample_slots or [])
    return MovementCycleResponse(
        id=row.id,
        route_id=row.route_id,
        eqp_id=row.eqp_id,
        cycle=row.cycle_number,
        group_no=row.group_no,
        group_label=row.group_label,
        status=row.status,  # type: ignore[arg-type]
        active_slot_index=row.active_slot_index,
        total_sample_count=row.total_sample_count,
        slot_sizes=[len(decode_batch(slot)) if slot is not None else 0 for slot in slots],
        start_gps=row.start_gps,
        end_gps=row.end_gps,
        start_time=row.start_time,
        end_time=row.end_time,
        inserted_on=row.inserted_on,
        samples=unpack_slots(slots) if include_samples else None,
    )
