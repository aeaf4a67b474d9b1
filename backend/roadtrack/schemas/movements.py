from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from roadtrack.services.cycle_status import CycleStatus


class MovementSubmitRequest(BaseModel):
    """One batch of telemetry for a route+equipment pair.

    Each sample is a free-form object; ``sample_id``, ``latitude``,
    ``longitude``, ``speed``, ``timestamp``, ``start_gps``, ``end_gps`` and
    ``type`` are the keys the movement log understands, anything else is stored
    as-is.
    """

    route_id: str = Field(min_length=1, max_length=32)
    eqp_id: str = Field(min_length=1, max_length=32)
    cycle: int | None = Field(default=None, ge=1)
    group_no: int | None = Field(default=None, ge=1)
    group_label: str | None = Field(default=None, max_length=128)
    max_cycles_per_group: int | None = Field(default=None, ge=1, le=1000)
    samples: list[dict[str, Any]] = Field(min_length=1)
    status: CycleStatus | None = None

    @field_validator("route_id", "eqp_id", mode="before")
    @classmethod
    def _trim_required(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        trimmed = value.strip()
        if trimmed == "":
            raise ValueError("value must not be empty")
        return trimmed

    @field_validator("group_label", mode="before")
    @classmethod
    def _trim_label(cls, value: object) -> object:
        if value is None or not isinstance(value, str):
            return value
        trimmed = value.strip()
        return trimmed or None

    @field_validator("samples")
    @classmethod
    def _reject_empty_samples(cls, value: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for index, sample in enumerate(value):
            if not sample:
                raise ValueError(f"samples[{index}] must not be empty")
        return value

    @model_validator(mode="after")
    def _single_group_selector(self) -> "MovementSubmitRequest":
        if self.group_no is not None and self.group_label is not None:
            raise ValueError("group_no and group_label are mutually exclusive")
        return self


class CapacityWarningResponse(BaseModel):
    kind: str
    message: str
    dropped: int
    capacity: int


class MovementWriteResponse(BaseModel):
    route_id: str
    eqp_id: str
    cycle: int
    group_no: int
    group_label: str | None
    status: CycleStatus
    created: bool
    existing_sample_count: int
    new_sample_count: int
    total_sample_count: int
    duplicate_sample_count: int
    dropped_sample_count: int
    active_slot_index: int
    capacity_exceeded: bool
    can_create_next_cycle: bool
    max_cycles_per_group: int
    start_time: datetime | None
    end_time: datetime | None


class MovementCycleResponse(BaseModel):
    id: int
    route_id: str
    eqp_id: str
    cycle: int
    group_no: int
    group_label: str | None
    status: CycleStatus
    active_slot_index: int
    total_sample_count: int
    slot_sizes: list[int]
    start_gps: str | None
    end_gps: str | None
    start_time: datetime | None
    end_time: datetime | None
    inserted_on: datetime
    samples: list[dict[str, Any]] | None = None
