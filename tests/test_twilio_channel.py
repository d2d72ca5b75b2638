"""Tests for TwilioVoiceChannel: form parsing and TwiML rendering."""

import xml.etree.ElementTree as ET

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from callagent.channels import InboundTurn, TwilioVoiceChannel
from callagent.dialogue import TurnOutcome, TurnResult
from callagent.models.call_state import Phase
from callagent.script import DialogueScript

ACTION = "https://example.test/twilio/voice"


def _parse(twiml: str) -> ET.Element:
    assert twiml.startswith("<?xml")
    return ET.fromstring(twiml.split("?>", 1)[1])


def _result(prompt="Hello", phase=Phase.COLLECTING_NAME, terminal=False):
    return TurnResult(
        call_id="CA1",
        prompt=prompt,
        terminal=terminal,
        phase=phase,
        outcome=TurnOutcome.BOOKED if terminal else TurnOutcome.ADVANCED,
    )


@pytest.fixture
def channel():
    return TwilioVoiceChannel(action_url=ACTION)


class TestParseTurn:
    def test_speech_result(self, channel):
        turn = channel.parse_turn({
            "CallSid": "CA123", "From": "+15550001111",
            "SpeechResult": " Jane Doe ", "step": "collecting-name",
        })
        assert turn == InboundTurn(
            call_id="CA123",
            utterance="Jane Doe",
            caller_identity="+15550001111",
            phase_hint=Phase.COLLECTING_NAME,
        )

    def test_digits_fallback(self, channel):
        turn = channel.parse_turn({"CallSid": "CA123", "Digits": "1", "SpeechResult": ""})
        assert turn.utterance == "1"

    def test_speech_wins_over_digits(self, channel):
        turn = channel.parse_turn({"CallSid": "CA123", "Digits": "1", "SpeechResult": "yes"})
        assert turn.utterance == "yes"

    def test_no_input(self, channel):
        turn = channel.parse_turn({"CallSid": "CA123"})
        assert turn.utterance is None
        assert turn.caller_identity is None

    def test_missing_call_sid_gets_generated_id(self, channel):
        first = channel.parse_turn({})
        second = channel.parse_turn({})
        assert first.call_id
        assert first.call_id != second.call_id

    @pytest.mark.parametrize("step", ["", "init", "INIT", "greeting"])
    def test_initial_steps(self, channel, step):
        assert channel.parse_turn({"CallSid": "CA1", "step": step}).phase_hint is Phase.GREETING

    def test_unknown_step_has_no_hint(self, channel):
        assert channel.parse_turn({"CallSid": "CA1", "step": "bogus"}).phase_hint is None


class TestRender:
    def test_gather_shape(self, channel):
        root = _parse(channel.render(InboundTurn("CA1"), _result("What is your name?")))
        assert root.tag == "Response"
        gather, say, redirect = list(root)

        assert gather.tag == "Gather"
        assert gather.get("input") == "speech dtmf"
        assert gather.get("method") == "POST"
        assert gather.get("action") == ACTION + "?step=collecting-name"
        assert gather.get("speechTimeout") == "auto"
        assert gather.get("speechHints") is None
        assert gather.find("Say").text == "What is your name?"

        assert say.tag == "Say"
        assert say.text == "I did not catch that."
        assert redirect.tag == "Redirect"
        assert redirect.get("method") == "POST"
        assert redirect.text == ACTION + "?step=collecting-name"

    def test_speech_hints_while_collecting_datetime(self, channel):
        root = _parse(channel.render(
            InboundTurn("CA1"), _result("When?", phase=Phase.COLLECTING_DATETIME),
        ))
        hints = root.find("Gather").get("speechHints")
        assert "next Tuesday" in hints
        assert "tomorrow" in hints

    def test_terminal_hangs_up(self, channel):
        root = _parse(channel.render(
            InboundTurn("CA1"), _result("Goodbye", phase=Phase.COMPLETED, terminal=True),
        ))
        assert [el.tag for el in root] == ["Say", "Hangup"]
        assert root.find("Say").text == "Goodbye"
        assert root.find("Gather") is None

    def test_caller_text_is_escaped(self, channel):
        twiml = channel.render(InboundTurn("CA1"), _result("Thanks <b>Tom & Jerry</b>."))
        assert "<b>" not in twiml
        assert "&amp;" in twiml
        assert _parse(twiml).find("Gather/Say").text == "Thanks <b>Tom & Jerry</b>."

    def test_redirect_to_start(self, channel):
        root = _parse(channel.redirect_to_start())
        (redirect,) = list(root)
        assert redirect.tag == "Redirect"
        assert redirect.get("method") == "POST"
        assert redirect.text == ACTION + "?step=greeting"

    def test_script_wording_is_used(self):
        script = DialogueScript(no_input="Still there?", datetime_hints=[])
        channel = TwilioVoiceChannel(action_url=ACTION, script=script)
        root = _parse(channel.render(
            InboundTurn("CA1"), _result("When?", phase=Phase.COLLECTING_DATETIME),
        ))
        assert root.find("Say").text == "Still there?"
        assert root.find("Gather").get("speechHints") is None
