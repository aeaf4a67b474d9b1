from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from roadtrack.core.errors import ConflictError
from roadtrack.db.models import Equipment, EquipmentRoute, MovementCycle, MovementGroupLabel
from roadtrack.repositories.integrity import classify_integrity_error
from roadtrack.services.movement_store import CycleRecord, RouteReference


def list_movement_cycles(
    db: Session,
    *,
    route_id: str | None = None,
    eqp_id: str | None = None,
    group_no: int | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[MovementCycle]:
    statement = select(MovementCycle)
    if route_id is not None:
        statement = statement.where(MovementCycle.route_id == route_id)
    if eqp_id is not None:
        statement = statement.where(MovementCycle.eqp_id == eqp_id)
    if group_no is not None:
        statement = statement.where(MovementCycle.group_no == group_no)
    statement = (
        statement.order_by(MovementCycle.inserted_on.desc(), MovementCycle.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.scalars(statement))


def get_movement_cycle(
    db: Session,
    *,
    route_id: str,
    eqp_id: str,
    group_no: int,
    cycle_number: int,
) -> MovementCycle | None:
    return db.scalars(
        select(MovementCycle).where(
            MovementCycle.route_id == route_id,
            MovementCycle.eqp_id == eqp_id,
            MovementCycle.group_no == group_no,
            MovementCycle.cycle_number == cycle_number,
        )
    ).first()


def get_latest_movement_cycle(
    db: Session,
    *,
    route_id: str,
    eqp_id: str,
    group_no: int | None = None,
) -> MovementCycle | None:
    statement = select(MovementCycle).where(
        MovementCycle.route_id == route_id,
        MovementCycle.eqp_id == eqp_id,
    )
    if group_no is not None:
        statement = statement.where(MovementCycle.group_no == group_no)
    statement = statement.order_by(
        MovementCycle.group_no.desc(),
        MovementCycle.cycle_number.desc(),
    ).limit(1)
    return db.scalars(statement).first()


def cycle_to_record(row: MovementCycle) -> CycleRecord:
    return CycleRecord(
        route_id=row.route_id,
        eqp_id=row.eqp_id,
        cycle_number=row.cycle_number,
        group_no=row.group_no,
        group_label=row.group_label,
        sample_slots=list(row.sample_slots or []),
        active_slot_index=row.active_slot_index,
        total_sample_count=row.total_sample_count,
        status=row.status,
        start_gps=row.start_gps,
        end_gps=row.end_gps,
        start_time=row.start_time,
        end_time=row.end_time,
        inserted_on=row.inserted_on,
        revision=row.revision,
    )


class SqlMovementStore:
    """``MovementStore`` backed by one SQLAlchemy session; every write commits."""

    def __init__(self, db: Session):
        self._db = db

    def get_route_reference(self, route_id: str) -> RouteReference | None:
        route = self._db.scalars(select(EquipmentRoute).where(EquipmentRoute.route_id == route_id)).first()
        if route is None:
            return None
        return RouteReference(
            route_id=route.route_id,
            eqp_id=route.eqp_id,
            start_gps=route.start_gps,
            end_gps=route.end_gps,
        )

    def equipment_exists(self, eqp_id: str) -> bool:
        found = self._db.scalar(select(Equipment.id).where(Equipment.eqp_id == eqp_id).limit(1))
        return found is not None

    def get_cycle(
        self,
        route_id: str,
        eqp_id: str,
        *,
        cycle_number: int,
        group_no: int,
    ) -> CycleRecord | None:
        row = get_movement_cycle(
            self._db,
            route_id=route_id,
            eqp_id=eqp_id,
            group_no=group_no,
            cycle_number=cycle_number,
        )
        return cycle_to_record(row) if row is not None else None

    def get_latest_cycle(
        self,
        route_id: str,
        eqp_id: str,
        *,
        group_no: int | None = None,
    ) -> CycleRecord | None:
        row = get_latest_movement_cycle(self._db, route_id=route_id, eqp_id=eqp_id, group_no=group_no)
        return cycle_to_record(row) if row is not None else None

    def get_group_no_for_label(self, route_id: str, eqp_id: str, group_label: str) -> int | None:
        return self._db.scalar(
            select(MovementGroupLabel.group_no).where(
                MovementGroupLabel.route_id == route_id,
                MovementGroupLabel.eqp_id == eqp_id,
                MovementGroupLabel.group_label == group_label,
            )
        )

    def get_max_group_no(self, route_id: str, eqp_id: str) -> int | None:
        cycle_max = self._db.scalar(
            select(func.max(MovementCycle.group_no)).where(
                MovementCycle.route_id == route_id,
                MovementCycle.eqp_id == eqp_id,
            )
        )
        label_max = self._db.scalar(
            select(func.max(MovementGroupLabel.group_no)).where(
                MovementGroupLabel.route_id == route_id,
                MovementGroupLabel.eqp_id == eqp_id,
            )
        )
        known = [value for value in (cycle_max, label_max) if value is not None]
        return max(known) if known else None

    def bind_group_label(self, route_id: str, eqp_id: str, *, group_label: str, group_no: int) -> None:
        binding = MovementGroupLabel(
            route_id=route_id,
            eqp_id=eqp_id,
            group_label=group_label,
            group_no=group_no,
        )
        self._db.add(binding)
        self._commit(context=f"Group label {group_label!r}")

    def insert_cycle(self, record: CycleRecord) -> CycleRecord:
        row = MovementCycle(
            route_id=record.route_id,
            eqp_id=record.eqp_id,
            cycle_number=record.cycle_number,
            group_no=record.group_no,
            group_label=record.group_label,
            sample_slots=list(record.sample_slots),
            active_slot_index=record.active_slot_index,
            total_sample_count=record.total_sample_count,
            status=record.status,
            start_gps=record.start_gps,
            end_gps=record.end_gps,
            start_time=record.start_time,
            end_time=record.end_time,
        )
        if record.inserted_on is not None:
            row.inserted_on = record.inserted_on
        self._db.add(row)
        self._commit(context=_cycle_context(record))
        self._db.refresh(row)
        return cycle_to_record(row)

    def update_cycle(self, record: CycleRecord) -> CycleRecord:
        values: dict[str, object] = {
            "group_label": record.group_label,
            "sample_slots": list(record.sample_slots),
            "active_slot_index": record.active_slot_index,
            "total_sample_count": record.total_sample_count,
            "status": record.status,
            "start_time": record.start_time,
            "end_time": record.end_time,
            "revision": MovementCycle.revision + 1,
        }
        if record.inserted_on is not None:
            values["inserted_on"] = record.inserted_on

        result = self._db.execute(
            update(MovementCycle)
            .where(
                *_cycle_key_clause(record),
                MovementCycle.revision == record.revision,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._db.rollback()
            # another writer got there first; the caller retries on fresh state
            raise ConflictError(f"{_cycle_context(record)} changed during the update")
        self._commit(context=_cycle_context(record))

        row = self._db.scalars(
            select(MovementCycle)
            .where(*_cycle_key_clause(record))
            .execution_options(populate_existing=True)
        ).one()
        return cycle_to_record(row)

    def _commit(self, *, context: str) -> None:
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            classified = classify_integrity_error(exc, context=context)
            if classified is None:
                raise
            raise classified from exc


@contextmanager
def _open_store(session_factory: sessionmaker) -> Iterator[SqlMovementStore]:
    with session_factory() as db:
        yield SqlMovementStore(db)


def movement_store_scope(session_factory: sessionmaker) -> Callable[[], AbstractContextManager[SqlMovementStore]]:
    def _scope() -> AbstractContextManager[SqlMovementStore]:
        return _open_store(session_factory)

    return _scope


def _cycle_context(record: CycleRecord) -> str:
    return (
        f"Movement cycle {record.cycle_number} in group {record.group_no} "
        f"for route {record.route_id} and equipment {record.eqp_id}"
    )


def _cycle_key_clause(record: CycleRecord) -> tuple:
    return (
        MovementCycle.route_id == record.route_id,
        MovementCycle.eqp_id == record.eqp_id,
        MovementCycle.group_no == record.group_no,
        MovementCycle.cycle_number == record.cycle_number,
    )
