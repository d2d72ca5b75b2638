"""Transports that drive the booking dialogue."""

from .base import DialogueChannel, InboundTurn, drive_turn
from .simulator_channel import SimulatorChannel
from .twilio_channel import TwilioVoiceChannel

__all__ = [
    "DialogueChannel",
    "InboundTurn",
    "SimulatorChannel",
    "TwilioVoiceChannel",
    "drive_turn",
]
