"""TwilioVoiceChannel: DialogueChannel for Twilio <Gather> webhooks.

Twilio posts form-encoded fields to our webhook each time the caller
finishes speaking (or pressing keys).  This channel:

  inbound:  CallSid / From / SpeechResult / Digits → InboundTurn
  outbound: TurnResult → TwiML

Protocol reference:
  https://www.twilio.com/docs/voice/twiml/gather

TwiML shapes produced:

  non-terminal (ask and wait for the caller):
    <Response>
      <Gather input="speech dtmf" method="POST" action=".../twilio/voice?step=<phase>"
              speechTimeout="auto">
        <Say>prompt</Say>
      </Gather>
      <Say>I did not catch that.</Say>
      <Redirect method="POST">.../twilio/voice?step=<phase></Redirect>
    </Response>

  terminal (say goodbye and hang up):
    <Response><Say>message</Say><Hangup/></Response>

The <Redirect> fallback re-posts with no speech when the caller stays
silent, which the engine answers by re-prompting in place.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional
from xml.etree.ElementTree import Element, SubElement, tostring

from callagent.channels.base import DialogueChannel, InboundTurn
from callagent.dialogue import TurnResult
from callagent.models.call_state import Phase
from callagent.script import DialogueScript

log = logging.getLogger("twilio_channel")

# The first webhook of a call carries no step
_INITIAL_STEPS = {"", "init"}


def _field(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_twiml(response_el: Element) -> str:
    return tostring(response_el, encoding="unicode", xml_declaration=True)


class TwilioVoiceChannel(DialogueChannel):
    """DialogueChannel implementation for Twilio voice webhooks.

    Usage::

        @app.post("/twilio/voice")
        async def twilio_voice(request: Request):
            form = await request.form()
            channel = TwilioVoiceChannel(action_url="https://host/twilio/voice")
            twiml = drive_turn(engine, channel, {**form, "step": step})
            return Response(twiml, media_type="text/xml")
    """

    def __init__(self, action_url: str, script: Optional[DialogueScript] = None):
        self._action_url = action_url
        self._script = script or DialogueScript()

    def step_url(self, phase: Phase) -> str:
        """Webhook URL Twilio should post the next turn to."""
        return f"{self._action_url}?step={phase.value}"

    def parse_turn(self, payload: Mapping[str, Any]) -> InboundTurn:
        """Read the Twilio form fields (plus our ``step`` query param)."""
        call_id = _field(payload, "CallSid")
        if call_id is None:
            call_id = str(uuid.uuid4())
            log.warning("Twilio request without CallSid, using %s", call_id)

        # Speech wins; keypad digits are the fallback input
        utterance = _field(payload, "SpeechResult") or _field(payload, "Digits")

        step = (_field(payload, "step") or "").lower()
        if step in _INITIAL_STEPS:
            phase_hint: Optional[Phase] = Phase.GREETING
        else:
            try:
                phase_hint = Phase(step)
            except ValueError:
                log.warning("Unknown Twilio step %r (call_sid=%s)", step, call_id)
                phase_hint = None

        return InboundTurn(
            call_id=call_id,
            utterance=utterance,
            caller_identity=_field(payload, "From"),
            phase_hint=phase_hint,
        )

    def render(self, turn: InboundTurn, result: TurnResult) -> str:
        """Render a TurnResult as a TwiML document."""
        if result.terminal:
            return self.say_and_hang_up(result.prompt)
        return self.gather(result.prompt, result.phase)

    def gather(self, prompt: str, phase: Phase) -> str:
        """TwiML asking a question and posting the answer back to us."""
        url = self.step_url(phase)

        response_el = Element("Response")
        gather_el = SubElement(response_el, "Gather")
        gather_el.set("input", "speech dtmf")
        gather_el.set("method", "POST")
        gather_el.set("action", url)
        gather_el.set("speechTimeout", "auto")
        if phase is Phase.COLLECTING_DATETIME and self._script.datetime_hints:
            gather_el.set("speechHints", ", ".join(self._script.datetime_hints))
        SubElement(gather_el, "Say").text = prompt

        SubElement(response_el, "Say").text = self._script.no_input
        redirect_el = SubElement(response_el, "Redirect")
        redirect_el.set("method", "POST")
        redirect_el.text = url

        return _to_twiml(response_el)

    def say_and_hang_up(self, message: str) -> str:
        """TwiML speaking a final message and ending the call."""
        response_el = Element("Response")
        SubElement(response_el, "Say").text = message
        SubElement(response_el, "Hangup")
        return _to_twiml(response_el)

    def redirect_to_start(self) -> str:
        """TwiML sending Twilio to the greeting turn via POST."""
        response_el = Element("Response")
        redirect_el = SubElement(response_el, "Redirect")
        redirect_el.set("method", "POST")
        redirect_el.text = self.step_url(Phase.GREETING)
        return _to_twiml(response_el)
