from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class EquipmentCreateRequest(BaseModel):
    mobile: str = Field(min_length=1, max_length=20)
    # older field clients still send the equipment type as "roller"
    eqp_type: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("eqp_type", "roller"),
    )

    @field_validator("mobile", "eqp_type", mode="before")
    @classmethod
    def _trim_text(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        trimmed = value.strip()
        if trimmed == "":
            raise ValueError("value must not be empty")
        return trimmed


class EquipmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    eqp_id: str
    mobile: str
    eqp_type: str
    inserted_on: datetime
