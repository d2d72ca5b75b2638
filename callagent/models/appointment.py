"""Pydantic models for booked appointments."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN_CONTACT = "Unknown"


class Appointment(BaseModel):
    """A finalized booking. Immutable once created."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    customer_name: str
    appointment_datetime: Optional[datetime] = Field(alias="appointmentDateTime")
    reason: str
    contact_number: str
    call_summary: str
    created_at: datetime


class AppointmentCreate(BaseModel):
    """Fields accepted when creating an appointment.

    Every field is optional; the store fills in fallbacks for anything
    missing. Wrong types are still rejected.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer_name: Optional[str] = None
    appointment_datetime: Optional[datetime] = Field(
        default=None, alias="appointmentDateTime"
    )
    reason: Optional[str] = None
    contact_number: Optional[str] = None
    call_summary: Optional[str] = None

    @field_validator("appointment_datetime", mode="before")
    @classmethod
    def _blank_datetime_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
