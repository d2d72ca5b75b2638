"""Per-call booking dialogue: the phase-ordered state machine.

Both transports (Twilio webhook and the browser simulator) feed caller
utterances through ``DialogueEngine.handle_turn``.  Each turn:

  1. Locks the call id so turns of one call never interleave
  2. Loads (or creates) the CallState
  3. Advances the phase if the utterance supplies the awaited field
  4. Saves the state, or on completion books the Appointment and
     clears the state
  5. Returns a TurnResult with the next prompt for the transport to render

Phases only move forward::

    greeting → collecting-name → collecting-datetime → collecting-reason → completed

A turn with no input on a new call produces the greeting, which already
asks for the name.  Empty input later on re-issues the current prompt
without touching the state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from callagent.dateparse import DEFAULT_HOUR, format_human_readable, parse_datetime
from callagent.models.appointment import Appointment, AppointmentCreate
from callagent.models.call_state import CallState, Phase
from callagent.script import DialogueScript
from callagent.stores.appointments import AppointmentStore
from callagent.stores.call_states import CallStateStore

log = logging.getLogger("callagent.dialogue")


def redact_pii(value: Optional[str]) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class TurnOutcome(str, Enum):
    """What a turn did, for transports and operators."""

    ADVANCED = "advanced"              # moved to the next phase
    REPROMPTED = "reprompted"          # input missing or unparseable, same phase
    BOOKED = "booked"                  # appointment created, call state cleared
    ABORTED = "aborted"                # required field missing at completion
    STORAGE_FAILED = "storage_failed"  # details captured, booking not stored
    ERROR = "error"                    # unexpected failure inside the turn


@dataclass
class TurnResult:
    """The engine's answer to one caller turn."""

    call_id: str
    prompt: str
    terminal: bool
    phase: Phase
    outcome: TurnOutcome
    appointment: Optional[Appointment] = None


# The prompt re-issued when a phase receives no usable input
_REPROMPTS = {
    Phase.COLLECTING_NAME: "name_reprompt",
    Phase.COLLECTING_DATETIME: "datetime_clarify",
    Phase.COLLECTING_REASON: "reason_reprompt",
}


class DialogueEngine:
    """Drives every call through the booking dialogue.

    Holds no per-call data itself; all progress lives in the injected
    ``CallStateStore`` and bookings go to the injected ``AppointmentStore``.

    Typical use from a transport::

        engine = DialogueEngine(CallStateStore(), AppointmentStore())
        result = engine.handle_turn(call_id, utterance, caller_identity="+1...")
        # → render result.prompt; hang up if result.terminal
    """

    def __init__(
        self,
        call_states: CallStateStore,
        appointments: AppointmentStore,
        script: Optional[DialogueScript] = None,
        clock: Optional[Callable[[], datetime]] = None,
        default_hour: int = DEFAULT_HOUR,
        clinic_name: str = "Horizon Clinic",
        assistant_name: str = "Aurora",
    ) -> None:
        self._call_states = call_states
        self._appointments = appointments
        self._script = script or DialogueScript()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._default_hour = default_hour
        self._clinic_name = clinic_name
        self._assistant_name = assistant_name

    @property
    def script(self) -> DialogueScript:
        return self._script

    # ── Public API ────────────────────────────────────────────

    def handle_turn(
        self,
        call_id: str,
        utterance: Optional[str] = None,
        caller_identity: Optional[str] = None,
        phase_hint: Optional[Phase] = None,
    ) -> TurnResult:
        """Process one caller turn and return the next prompt.

        Never raises: unexpected failures are logged and answered with a
        generic apology so the transport always has something to say.
        """
        phase = Phase.GREETING
        with self._call_states.locked(call_id):
            try:
                state = self._call_states.get(call_id)
                phase = state.phase
                if phase_hint is not None and phase_hint != state.phase:
                    log.warning(
                        "Call %s: transport expected phase %s, stored phase is %s",
                        call_id, phase_hint.value, state.phase.value,
                    )
                if caller_identity and not state.contact_number:
                    state.contact_number = caller_identity.strip() or None
                return self._advance(state, (utterance or "").strip())
            except Exception:
                log.exception("Turn failed for call %s (phase=%s)", call_id, phase.value)
                return TurnResult(
                    call_id=call_id,
                    prompt=self._say("system_error"),
                    terminal=True,
                    phase=phase,
                    outcome=TurnOutcome.ERROR,
                )

    # ── Internal: transitions ────────────────────────────────

    def _advance(self, state: CallState, text: str) -> TurnResult:
        if state.phase is Phase.GREETING:
            # The greeting already asks for the name, so the call is
            # waiting on the name from here on
            if not text:
                return self._move(state, Phase.COLLECTING_NAME, self._say("greeting"))
            # The caller answered before the greeting went out: that is the name
            log.info("Call %s: first utterance taken as the name", state.call_id)
            state.phase = Phase.COLLECTING_NAME

        if state.phase is Phase.COMPLETED:
            # Only reachable when a previous booking attempt failed to store
            log.info("Call %s resuming finalization", state.call_id)
            return self._finalize(state)

        if not text:
            log.info(
                "Call %s: no usable input in phase %s, re-prompting",
                state.call_id, state.phase.value,
            )
            return self._reprompt(state)

        if state.phase is Phase.COLLECTING_NAME:
            state.customer_name = text
            return self._move(
                state, Phase.COLLECTING_DATETIME, self._say("ask_datetime", name=text),
            )

        if state.phase is Phase.COLLECTING_DATETIME:
            parsed = parse_datetime(text, self._clock(), default_hour=self._default_hour)
            if parsed is None:
                log.info("Call %s: could not parse date/time %r", state.call_id, text)
                return self._reprompt(state)
            state.appointment_datetime = parsed
            return self._move(state, Phase.COLLECTING_REASON, self._say("ask_reason"))

        # collecting-reason
        state.reason = text
        state.phase = Phase.COMPLETED
        self._call_states.save(state)
        log.info(
            "FSM advance (call=%s): %s → %s",
            state.call_id, Phase.COLLECTING_REASON.value, Phase.COMPLETED.value,
        )
        return self._finalize(state)

    def _move(self, state: CallState, target: Phase, prompt: str) -> TurnResult:
        log.info(
            "FSM advance (call=%s): %s → %s", state.call_id, state.phase.value, target.value,
        )
        state.phase = target
        self._call_states.save(state)
        return TurnResult(
            call_id=state.call_id,
            prompt=prompt,
            terminal=False,
            phase=target,
            outcome=TurnOutcome.ADVANCED,
        )

    def _reprompt(self, state: CallState) -> TurnResult:
        return TurnResult(
            call_id=state.call_id,
            prompt=self._say(_REPROMPTS[state.phase]),
            terminal=False,
            phase=state.phase,
            outcome=TurnOutcome.REPROMPTED,
        )

    def _finalize(self, state: CallState) -> TurnResult:
        """Book the appointment for a completed call."""
        missing = [
            field
            for field in ("customer_name", "appointment_datetime", "reason")
            if not getattr(state, field)
        ]
        if missing:
            log.error(
                "Call %s completed without %s, aborting without a booking",
                state.call_id, ", ".join(missing),
            )
            self._call_states.clear(state.call_id)
            return TurnResult(
                call_id=state.call_id,
                prompt=self._say("missing_details"),
                terminal=True,
                phase=Phase.COMPLETED,
                outcome=TurnOutcome.ABORTED,
            )

        fields = AppointmentCreate(
            customer_name=state.customer_name,
            appointment_datetime=state.appointment_datetime,
            reason=state.reason,
            contact_number=state.contact_number,
            call_summary=(
                f"AI assistant booked for {state.customer_name} "
                f"to discuss {state.reason}."
            ),
        )
        try:
            appointment = self._appointments.create_appointment(fields)
        except Exception:
            # Call state is kept so a later turn can retry the booking
            log.exception(
                "Failed to store appointment for call %s (caller=%s)",
                state.call_id, redact_pii(state.customer_name),
            )
            return TurnResult(
                call_id=state.call_id,
                prompt=self._say("storage_failed"),
                terminal=True,
                phase=Phase.COMPLETED,
                outcome=TurnOutcome.STORAGE_FAILED,
            )

        self._call_states.clear(state.call_id)
        log.info(
            "Call %s booked appointment %s for %s at %s",
            state.call_id, appointment.id,
            redact_pii(appointment.customer_name),
            appointment.appointment_datetime.isoformat(),
        )
        return TurnResult(
            call_id=state.call_id,
            prompt=self._say(
                "confirmation",
                name=appointment.customer_name,
                when=format_human_readable(appointment.appointment_datetime),
            ),
            terminal=True,
            phase=Phase.COMPLETED,
            outcome=TurnOutcome.BOOKED,
            appointment=appointment,
        )

    def _say(self, key: str, **values: str) -> str:
        return self._script.render(
            key, clinic=self._clinic_name, assistant=self._assistant_name, **values,
        )
