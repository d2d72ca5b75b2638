"""DialogueChannel ABC: normalizes different transports to dialogue turns.

Callers reach the agent through different surfaces (a Twilio voice
webhook posting form fields, a browser simulator posting typed text).
The DialogueChannel interface lets the dialogue engine see only one
shape of input and produce one shape of output.

Implementors handle the conversion in both directions:
  inbound:  native request payload → InboundTurn
  outbound: TurnResult → native response (TwiML, chat transcript, ...)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from callagent.dialogue import DialogueEngine, TurnResult
from callagent.models.call_state import Phase


@dataclass
class InboundTurn:
    """Normalized caller turn, independent of the transport."""

    call_id: str
    utterance: Optional[str] = None
    caller_identity: Optional[str] = None
    phase_hint: Optional[Phase] = None


class DialogueChannel(ABC):
    """Abstract dialogue transport.

    Each concrete channel wraps one inbound surface and translates between
    its wire format and the engine's InboundTurn / TurnResult pair.
    """

    @abstractmethod
    def parse_turn(self, payload: Mapping[str, Any]) -> InboundTurn:
        """Extract the caller turn from a native request payload."""

    @abstractmethod
    def render(self, turn: InboundTurn, result: TurnResult) -> Any:
        """Render the engine's reply in the transport's native format."""


def drive_turn(
    engine: DialogueEngine,
    channel: DialogueChannel,
    payload: Mapping[str, Any],
) -> Any:
    """Run one turn end to end: parse, advance the dialogue, render."""
    turn = channel.parse_turn(payload)
    result = engine.handle_turn(
        turn.call_id,
        turn.utterance,
        caller_identity=turn.caller_identity,
        phase_hint=turn.phase_hint,
    )
    return channel.render(turn, result)
