"""initial equipment, route and movement cycle schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "id_sequences",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("table_name", sa.String(length=128), nullable=False),
        sa.Column("id_for", sa.String(length=64), nullable=False),
        sa.Column("id_prefix", sa.String(length=10), nullable=False),
        sa.Column("last_id", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("table_name", "id_for", name="uq_id_sequences_table_id_for"),
    )

    op.create_table(
        "equipment",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("eqp_id", sa.String(length=32), nullable=False),
        sa.Column("mobile", sa.String(length=20), nullable=False),
        sa.Column("eqp_type", sa.String(length=64), nullable=False),
        sa.Column("inserted_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("eqp_id"),
    )
    op.create_index("ix_equipment_inserted_on", "equipment", ["inserted_on"])

    op.create_table(
        "equipment_routes",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("route_id", sa.String(length=32), nullable=False),
        sa.Column("eqp_id", sa.String(length=32), nullable=False),
        sa.Column("route_name", sa.String(length=255), nullable=True),
        sa.Column("start_gps", sa.String(length=255), nullable=True),
        sa.Column("end_gps", sa.String(length=255), nullable=True),
        sa.Column("start_km", sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column("start_chainage", sa.String(length=64), nullable=True),
        sa.Column("end_km", sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column("end_chainage", sa.String(length=64), nullable=True),
        sa.Column("inserted_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["eqp_id"], ["equipment.eqp_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id"),
    )
    op.create_index("ix_equipment_routes_eqp_id", "equipment_routes", ["eqp_id"])
    op.create_index("ix_equipment_routes_inserted_on", "equipment_routes", ["inserted_on"])

    op.create_table(
        "movement_group_labels",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("route_id", sa.String(length=32), nullable=False),
        sa.Column("eqp_id", sa.String(length=32), nullable=False),
        sa.Column("group_label", sa.String(length=128), nullable=False),
        sa.Column("group_no", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["route_id"], ["equipment_routes.route_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["eqp_id"], ["equipment.eqp_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id", "eqp_id", "group_label", name="uq_movement_group_labels_label"),
        sa.UniqueConstraint("route_id", "eqp_id", "group_no", name="uq_movement_group_labels_group_no"),
    )

    op.create_table(
        "movement_cycles",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("route_id", sa.String(length=32), nullable=False),
        sa.Column("eqp_id", sa.String(length=32), nullable=False),
        sa.Column("cycle_number", sa.Integer(), nullable=False),
        sa.Column("group_no", sa.Integer(), nullable=False),
        sa.Column("group_label", sa.String(length=128), nullable=True),
        sa.Column("sample_slots", sa.JSON(), nullable=False),
        sa.Column("active_slot_index", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_sample_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("revision", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("start_gps", sa.String(length=255), nullable=True),
        sa.Column("end_gps", sa.String(length=255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("inserted_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('pending','live','completed')", name="ck_movement_cycles_status"),
        sa.CheckConstraint("cycle_number >= 1", name="ck_movement_cycles_cycle_number"),
        sa.CheckConstraint("group_no >= 1", name="ck_movement_cycles_group_no"),
        sa.ForeignKeyConstraint(["route_id"], ["equipment_routes.route_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["eqp_id"], ["equipment.eqp_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "route_id",
            "eqp_id",
            "group_no",
            "cycle_number",
            name="uq_movement_cycles_identity",
        ),
    )
    op.create_index("ix_movement_cycles_route_id", "movement_cycles", ["route_id"])
    op.create_index("ix_movement_cycles_eqp_id", "movement_cycles", ["eqp_id"])
    op.create_index("ix_movement_cycles_group_no", "movement_cycles", ["group_no"])
    op.create_index("ix_movement_cycles_status", "movement_cycles", ["status"])
    op.create_index("ix_movement_cycles_inserted_on", "movement_cycles", ["inserted_on"])
    op.create_index(
        "ix_movement_cycles_route_eqp_latest",
        "movement_cycles",
        ["route_id", "eqp_id", "group_no", "cycle_number"],
    )


def downgrade() -> None:
    op.drop_index("ix_movement_cycles_route_eqp_latest", table_name="movement_cycles")
    op.drop_index("ix_movement_cycles_inserted_on", table_name="movement_cycles")
    op.drop_index("ix_movement_cycles_status", table_name="movement_cycles")
    op.drop_index("ix_movement_cycles_group_no", table_name="movement_cycles")
    op.drop_index("ix_movement_cycles_eqp_id", table_name="movement_cycles")
    op.drop_index("ix_movement_cycles_route_id", table_name="movement_cycles")
    op.drop_table("movement_cycles")
    op.drop_table("movement_group_labels")
    op.drop_index("ix_equipment_routes_inserted_on", table_name="equipment_routes")
    op.drop_index("ix_equipment_routes_eqp_id", table_name="equipment_routes")
    op.drop_table("equipment_routes")
    op.drop_index("ix_equipment_inserted_on", table_name="equipment")
    op.drop_table("equipment")
    op.drop_table("id_sequences")
