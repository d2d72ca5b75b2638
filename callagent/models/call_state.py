"""Pydantic model tracking one caller's progress through the booking dialogue."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Phase(str, Enum):
    """Dialogue phases, named for the field being awaited."""

    GREETING = "greeting"
    COLLECTING_NAME = "collecting-name"
    COLLECTING_DATETIME = "collecting-datetime"
    COLLECTING_REASON = "collecting-reason"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: list[Phase] = [
    Phase.GREETING,
    Phase.COLLECTING_NAME,
    Phase.COLLECTING_DATETIME,
    Phase.COLLECTING_REASON,
    Phase.COMPLETED,
]


class CallState(BaseModel):
    """Mutable state for a single in-progress call.

    Fields are filled in phase order as the caller answers each prompt,
    and only reset when the call state is cleared.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    call_id: str
    phase: Phase = Phase.GREETING

    customer_name: Optional[str] = None
    appointment_datetime: Optional[datetime] = Field(
        default=None, alias="appointmentDateTime"
    )
    reason: Optional[str] = None
    contact_number: Optional[str] = None
