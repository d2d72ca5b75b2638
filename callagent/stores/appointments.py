"""Append-only in-memory collection of booked appointments."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from callagent.models.appointment import (
    UNKNOWN_CONTACT,
    Appointment,
    AppointmentCreate,
)

log = logging.getLogger("callagent.stores.appointments")


def default_call_summary(customer_name: Optional[str]) -> str:
    return f"Conversation booked for {customer_name or 'client'}."


class AppointmentStore:
    """Owns every ``Appointment`` created during the process lifetime.

    Appointments are only ever appended; listing returns the most
    recently created first.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._appointments: list[Appointment] = []
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_appointment(
        self,
        fields: Union[AppointmentCreate, Mapping[str, Any], None] = None,
    ) -> Appointment:
        """Create and store an appointment from possibly partial fields.

        Missing fields fall back to: empty name and reason, no appointment
        time, ``"Unknown"`` contact number and a synthesized summary.
        Raises ``pydantic.ValidationError`` for wrongly typed input.
        """
        if fields is None:
            fields = AppointmentCreate()
        elif not isinstance(fields, AppointmentCreate):
            fields = AppointmentCreate.model_validate(fields)

        appointment = Appointment(
            id=uuid.uuid4().hex,
            customer_name=fields.customer_name or "",
            appointment_datetime=fields.appointment_datetime,
            reason=fields.reason or "",
            contact_number=fields.contact_number or UNKNOWN_CONTACT,
            call_summary=fields.call_summary
            or default_call_summary(fields.customer_name),
            created_at=self._clock(),
        )

        with self._lock:
            self._appointments.append(appointment)

        log.info("Appointment %s created", appointment.id)
        return appointment

    def list_appointments(self) -> list[Appointment]:
        """Return all appointments, most recent first."""
        with self._lock:
            return list(reversed(self._appointments))

    def __len__(self) -> int:
        with self._lock:
            return len(self._appointments)
