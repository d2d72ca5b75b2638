"""In-memory stores for call progress and booked appointments."""

from .appointments import AppointmentStore
from .call_states import CallStateStore

__all__ = ["AppointmentStore", "CallStateStore"]
