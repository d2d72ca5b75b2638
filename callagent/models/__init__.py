"""Data models for the call agent."""

from .appointment import Appointment, AppointmentCreate
from .call_state import PHASE_ORDER, CallState, Phase

__all__ = ["PHASE_ORDER", "Appointment", "AppointmentCreate", "CallState", "Phase"]
