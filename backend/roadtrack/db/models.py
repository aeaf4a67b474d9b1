from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roadtrack.db.base import Base

# BIGSERIAL on PostgreSQL, rowid alias on SQLite
_PK_TYPE = BigInteger().with_variant(Integer, "sqlite")


class IdSequence(Base):
    __tablename__ = "id_sequences"
    __table_args__ = (
        UniqueConstraint("table_name", "id_for", name="uq_id_sequences_table_id_for"),
    )

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    table_name: Mapped[str] = mapped_column(String(128), nullable=False)
    id_for: Mapped[str] = mapped_column(String(64), nullable=False)
    id_prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    last_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    eqp_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    mobile: Mapped[str] = mapped_column(String(20), nullable=False)
    eqp_type: Mapped[str] = mapped_column(String(64), nullable=False)
    inserted_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    routes: Mapped[list["EquipmentRoute"]] = relationship(
        back_populates="equipment",
        cascade="all, delete-orphan",
    )


class EquipmentRoute(Base):
    __tablename__ = "equipment_routes"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    route_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    eqp_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("equipment.eqp_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    route_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_gps: Mapped[str | None] = mapped_column(String(255), nullable=True)
    end_gps: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_km: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    start_chainage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    end_km: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    end_chainage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    inserted_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    equipment: Mapped[Equipment] = relationship(back_populates="routes")


class MovementGroupLabel(Base):
    __tablename__ = "movement_group_labels"
    __table_args__ = (
        UniqueConstraint("route_id", "eqp_id", "group_label", name="uq_movement_group_labels_label"),
        UniqueConstraint("route_id", "eqp_id", "group_no", name="uq_movement_group_labels_group_no"),
    )

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    route_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("equipment_routes.route_id", ondelete="CASCADE"),
        nullable=False,
    )
    eqp_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("equipment.eqp_id", ondelete="CASCADE"),
        nullable=False,
    )
    group_label: Mapped[str] = mapped_column(String(128), nullable=False)
    group_no: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class MovementCycle(Base):
    __tablename__ = "movement_cycles"
    __table_args__ = (
        UniqueConstraint(
            "route_id",
            "eqp_id",
            "group_no",
            "cycle_number",
            name="uq_movement_cycles_identity",
        ),
        CheckConstraint(
            "status IN ('pending','live','completed')",
            name="ck_movement_cycles_status",
        ),
        CheckConstraint("cycle_number >= 1", name="ck_movement_cycles_cycle_number"),
        CheckConstraint("group_no >= 1", name="ck_movement_cycles_group_no"),
        Index("ix_movement_cycles_route_eqp_latest", "route_id", "eqp_id", "group_no", "cycle_number"),
    )

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    route_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("equipment_routes.route_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    eqp_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("equipment.eqp_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False)
    group_no: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    group_label: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sample_slots: Mapped[list[str | None]] = mapped_column(JSON, nullable=False, default=list)
    active_slot_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        server_default="pending",
        index=True,
    )
    start_gps: Mapped[str | None] = mapped_column(String(255), nullable=True)
    end_gps: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    inserted_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )
