"""Wording of the booking dialogue.

Every prompt the agent speaks lives in one ``DialogueScript`` so the
phrasing can be changed without touching the state machine.  Templates use
``str.format`` placeholders:

  {clinic}     clinic name from settings
  {assistant}  assistant name from settings
  {name}       the caller's captured name
  {when}       the booked slot, human readable

A script can be loaded from a JSON file (``SCRIPT_PATH``); any prompt left
out of the file keeps its default.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel

log = logging.getLogger("callagent.script")


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class DialogueScript(BaseModel):
    """All caller-facing prompts of the booking dialogue."""

    greeting: str = (
        "Hello! You have reached the {clinic} virtual scheduling assistant. "
        "This is {assistant}. May I have your full name?"
    )
    name_reprompt: str = (
        "I did not hear a name. Could you please tell me your full name?"
    )
    ask_datetime: str = (
        "Thanks {name}. What day and time would you like to book the "
        "appointment for?"
    )
    datetime_clarify: str = (
        "I'm sorry, I couldn't understand that date. Please state something "
        "like next Tuesday at 3 PM or June fifth at 9 in the morning."
    )
    ask_reason: str = (
        "Great. What is the reason for your visit so I can let the "
        "practitioner prepare?"
    )
    reason_reprompt: str = (
        "Could you quickly describe the reason for your appointment?"
    )
    confirmation: str = (
        "Thanks {name}. I have scheduled your appointment for {when}. "
        "We look forward to seeing you then."
    )
    missing_details: str = (
        "It seems I am missing some information to complete the booking. "
        "Please try again later or reach out to our reception team."
    )
    storage_failed: str = (
        "There was an issue locking in the appointment, but I captured your "
        "details. A team member will follow up shortly."
    )
    system_error: str = (
        "I'm sorry, something went wrong while handling your request. "
        "Please try again later."
    )
    no_input: str = "I did not catch that."

    # Offered to the speech recognizer while the caller names a date/time
    datetime_hints: list[str] = [
        "today", "tomorrow", "next Monday", "next Tuesday", "next Wednesday",
        "next Thursday", "next Friday", "morning", "afternoon", "noon",
    ]

    def render(self, key: str, **values: str) -> str:
        """Fill one prompt template. Unknown placeholders are left as-is."""
        template: str = getattr(self, key)
        return template.format_map(_KeepMissing(values))


def load_script(path: str | Path) -> DialogueScript:
    """Load a ``DialogueScript`` from a JSON object file."""
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Dialogue script in {path} must be a JSON object")
    script = DialogueScript(**data)
    log.info("Dialogue script loaded from %s (%d overrides)", path, len(data))
    return script
