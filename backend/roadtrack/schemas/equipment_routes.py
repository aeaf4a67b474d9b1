from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from roadtrack.services.cycle_status import parse_gps


class EquipmentRouteCreateRequest(BaseModel):
    eqp_id: str = Field(min_length=1, max_length=32)
    route_name: str | None = Field(default=None, max_length=255)
    start_gps: str | dict[str, Any] | None = None
    end_gps: str | dict[str, Any] | None = None
    start_km: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=3)
    start_chainage: str | None = Field(default=None, max_length=64)
    end_km: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=3)
    end_chainage: str | None = Field(default=None, max_length=64)

    @field_validator("eqp_id", mode="before")
    @classmethod
    def _trim_required(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        trimmed = value.strip()
        if trimmed == "":
            raise ValueError("value must not be empty")
        return trimmed

    @field_validator("route_name", "start_chainage", "end_chainage", mode="before")
    @classmethod
    def _trim_optional_text(cls, value: object) -> object:
        if value is None or not isinstance(value, str):
            return value
        trimmed = value.strip()
        return trimmed or None

    @field_validator("start_gps", "end_gps")
    @classmethod
    def _normalize_gps(cls, value: str | dict[str, Any] | None) -> str | None:
        if value is None:
            return None
        if isinstance(value, str) and value.strip() == "":
            return None
        point = parse_gps(value)
        if point is None:
            raise ValueError("must be 'lat,lng' or an object with latitude/longitude")
        if isinstance(value, str):
            return value.strip()
        return f"{point.latitude},{point.longitude}"


class EquipmentRouteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    route_id: str
    eqp_id: str
    route_name: str | None
    start_gps: str | None
    end_gps: str | None
    start_km: Decimal | None
    start_chainage: str | None
    end_km: Decimal | None
    end_chainage: str | None
    inserted_on: datetime
