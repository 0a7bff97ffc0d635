"""Pydantic schemas for administrative corrections and transportation costs."""

from __future__ import annotations

import datetime as dt

from pydantic import AliasChoices, BaseModel, Field, field_validator

from timekeeper.core.enums import LeaveType


class EntryCorrectionRequest(BaseModel):
    """Only the fields sent are applied; an explicit null clears the value."""

    clock_in: dt.datetime | None = None
    clock_out: dt.datetime | None = None
    break_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    note: str | None = None
    leave_type: str | None = None
    transportation_cost: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("transportation_cost", "transportation"),
    )

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        if v is not None and len(v) > 1000:
            raise ValueError("Note must not exceed 1000 characters")
        return v

    @field_validator("leave_type")
    @classmethod
    def _leave_type(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip().upper()
        if v not in {t.value for t in LeaveType}:
            raise ValueError(f"Leave type must be one of {', '.join(t.value for t in LeaveType)}")
        return v


class TransportationRowRequest(BaseModel):
    user_id: int = Field(validation_alias=AliasChoices("user_id", "userId"))
    date: dt.date
    amount: float = Field(ge=0, validation_alias=AliasChoices("amount", "transportation"))


class BulkTransportationRequest(BaseModel):
    rows: list[TransportationRowRequest] = Field(
        validation_alias=AliasChoices("rows", "registrations", "entries"),
        min_length=1,
        max_length=500,
    )


class TransportationFailureRead(BaseModel):
    user_id: int
    date: dt.date
    kind: str
    message: str

    model_config = {"from_attributes": True}


class TransportationResultRead(BaseModel):
    updated_count: int
    total_requested: int
    entry_ids: list[int] = []
    failures: list[TransportationFailureRead] = []

    model_config = {"from_attributes": True}
