from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roadtrack.db.models import Equipment
from roadtrack.repositories.id_sequences import next_id
from roadtrack.repositories.integrity import classify_integrity_error

EQUIPMENT_ID_PREFIX = "EQP"


def list_equipment(db: Session, *, skip: int = 0, limit: int = 100) -> list[Equipment]:
    statement = (
        select(Equipment)
        .order_by(Equipment.inserted_on.desc(), Equipment.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.scalars(statement))


def get_equipment_by_eqp_id(db: Session, eqp_id: str) -> Equipment | None:
    return db.scalars(select(Equipment).where(Equipment.eqp_id == eqp_id)).first()


def create_equipment(
    db: Session,
    *,
    mobile: str,
    eqp_type: str,
    id_max_value: int = 99999,
) -> Equipment:
    try:
        eqp_id = next_id(
            db,
            id_prefix=EQUIPMENT_ID_PREFIX,
            table_name=Equipment.__tablename__,
            id_for="eqp_id",
            max_value=id_max_value,
        )
        equipment = Equipment(eqp_id=eqp_id, mobile=mobile, eqp_type=eqp_type)
        db.add(equipment)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        classified = classify_integrity_error(exc, context="Equipment")
        if classified is None:
            raise
        raise classified from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(equipment)
    return equipment
