from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class RouteReference:
    route_id: str
    eqp_id: str
    start_gps: str | None
    end_gps: str | None


@dataclass
class CycleRecord:
    route_id: str
    eqp_id: str
    cycle_number: int
    group_no: int
    group_label: str | None = None
    sample_slots: list[str | None] = field(default_factory=list)
    active_slot_index: int = 0
    total_sample_count: int = 0
    status: str = "pending"
    start_gps: str | None = None
    end_gps: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    inserted_on: datetime | None = None
    revision: int = 0

    @property
    def key(self) -> tuple[str, str, int, int]:
        return (self.route_id, self.eqp_id, self.group_no, self.cycle_number)


class MovementStore(Protocol):
    def get_route_reference(self, route_id: str) -> RouteReference | None: ...

    def equipment_exists(self, eqp_id: str) -> bool: ...

    def get_cycle(
        self,
        route_id: str,
        eqp_id: str,
        *,
        cycle_number: int,
        group_no: int,
    ) -> CycleRecord | None: ...

    def get_latest_cycle(
        self,
        route_id: str,
        eqp_id: str,
        *,
        group_no: int | None = None,
    ) -> CycleRecord | None: ...

    def get_group_no_for_label(self, route_id: str, eqp_id: str, group_label: str) -> int | None: ...

    def get_max_group_no(self, route_id: str, eqp_id: str) -> int | None: ...

    def bind_group_label(self, route_id: str, eqp_id: str, *, group_label: str, group_no: int) -> None: ...

    def insert_cycle(self, record: CycleRecord) -> CycleRecord: ...

    def update_cycle(self, record: CycleRecord) -> CycleRecord: ...
