"""SimulatorChannel: DialogueChannel for the typed-text call simulator.

The browser simulator lets staff play the caller by typing.  Requests are
JSON objects::

    {"callId": "...", "text": "Jane Doe", "callerNumber": "+1 555 010 1987"}

and each reply carries the transcript lines produced by the turn::

    {
      "callId": "...", "phase": "collecting-datetime", "terminal": false,
      "outcome": "advanced",
      "transcript": [
        {"id": "...", "speaker": "caller", "text": "Jane Doe", "timestamp": "..."},
        {"id": "...", "speaker": "agent", "text": "Thanks Jane Doe. ...", "timestamp": "..."}
      ],
      "appointment": null
    }
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from callagent.channels.base import DialogueChannel, InboundTurn
from callagent.dialogue import TurnResult


def _text(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return value if isinstance(value, str) else None


class SimulatorChannel(DialogueChannel):
    """DialogueChannel producing chat transcript entries."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def parse_turn(self, payload: Mapping[str, Any]) -> InboundTurn:
        call_id = _text(payload, "callId") or str(uuid.uuid4())
        caller = (_text(payload, "callerNumber") or "").strip()
        return InboundTurn(
            call_id=call_id,
            utterance=_text(payload, "text"),
            caller_identity=caller or None,
        )

    def render(self, turn: InboundTurn, result: TurnResult) -> dict[str, Any]:
        transcript = []
        if turn.utterance and turn.utterance.strip():
            transcript.append(self._entry("caller", turn.utterance.strip()))
        transcript.append(self._entry("agent", result.prompt))

        appointment = None
        if result.appointment is not None:
            appointment = result.appointment.model_dump(mode="json", by_alias=True)

        return {
            "callId": result.call_id,
            "phase": result.phase.value,
            "terminal": result.terminal,
            "outcome": result.outcome.value,
            "transcript": transcript,
            "appointment": appointment,
        }

    def _entry(self, speaker: str, text: str) -> dict[str, str]:
        return {
            "id": uuid.uuid4().hex,
            "speaker": speaker,
            "text": text,
            "timestamp": self._clock().isoformat(),
        }
