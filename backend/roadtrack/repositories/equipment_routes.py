from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roadtrack.db.models import EquipmentRoute
from roadtrack.repositories.id_sequences import next_id
from roadtrack.repositories.integrity import classify_integrity_error

ROUTE_ID_PREFIX = "ROT"


def list_routes(db: Session, *, eqp_id: str | None = None, skip: int = 0, limit: int = 100) -> list[EquipmentRoute]:
    statement = select(EquipmentRoute)
    if eqp_id is not None:
        statement = statement.where(EquipmentRoute.eqp_id == eqp_id)
    statement = (
        statement.order_by(EquipmentRoute.inserted_on.desc(), EquipmentRoute.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.scalars(statement))


def get_route_by_route_id(db: Session, route_id: str) -> EquipmentRoute | None:
    return db.scalars(select(EquipmentRoute).where(EquipmentRoute.route_id == route_id)).first()


def create_route(
    db: Session,
    *,
    eqp_id: str,
    route_name: str | None = None,
    start_gps: str | None = None,
    end_gps: str | None = None,
    start_km: Decimal | None = None,
    start_chainage: str | None = None,
    end_km: Decimal | None = None,
    end_chainage: str | None = None,
    id_max_value: int = 99999,
) -> EquipmentRoute:
    try:
        route_id = next_id(
            db,
            id_prefix=ROUTE_ID_PREFIX,
            table_name=EquipmentRoute.__tablename__,
            id_for="route_id",
            max_value=id_max_value,
        )
        route = EquipmentRoute(
            route_id=route_id,
            eqp_id=eqp_id,
            route_name=route_name,
            start_gps=start_gps,
            end_gps=end_gps,
            start_km=start_km,
            start_chainage=start_chainage,
            end_km=end_km,
            end_chainage=end_chainage,
        )
        db.add(route)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        classified = classify_integrity_error(exc, context="Equipment route")
        if classified is None:
            raise
        raise classified from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(route)
    return route
