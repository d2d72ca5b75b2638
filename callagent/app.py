"""FastAPI application: HTTP endpoints for the appointment call agent.

Endpoints:

  GET  /health                               Health check
  GET  /twilio/voice                         TwiML redirect to the greeting turn
  POST /twilio/voice                         Twilio <Gather> webhook: one dialogue turn
  POST /api/simulator/calls                  Start a simulated call (typed text)
  POST /api/simulator/calls/{call_id}/turns  One typed caller turn
  GET  /api/appointments                     Booked appointments, newest first
  POST /api/appointments                     Create an appointment from partial fields
  GET  /api/calls                            In-progress call states
  GET  /api/calls/{call_id}                  One in-progress call state

The Twilio flow:
  1. Incoming call hits POST /twilio/voice (no step) → greeting + <Gather>
  2. Twilio posts the transcribed answer back to /twilio/voice?step=<phase>
  3. Repeat until the engine returns a terminal result → <Say> + <Hangup/>

The simulator flow:
  1. Browser POSTs /api/simulator/calls → callId + greeting transcript line
  2. Each typed answer POSTs /api/simulator/calls/{callId}/turns

Both flows run through the same DialogueEngine via drive_turn().
"""

from __future__ import annotations

# Load .env into os.environ early so Settings sees it
from dotenv import load_dotenv
load_dotenv()

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

# Configure root logger early so all callagent.* loggers have a handler
# and are visible when run via `uvicorn callagent.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from callagent.channels import SimulatorChannel, TwilioVoiceChannel, drive_turn
from callagent.config import Settings, settings as default_settings
from callagent.dialogue import DialogueEngine
from callagent.models.appointment import AppointmentCreate
from callagent.script import DialogueScript, load_script
from callagent.stores import AppointmentStore, CallStateStore

log = logging.getLogger("callagent.app")

_START_TIME = time.time()


def create_app(
    settings: Optional[Settings] = None,
    call_states: Optional[CallStateStore] = None,
    appointments: Optional[AppointmentStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Stores are created here (one set per app) unless injected, so tests
    and embedders get fully isolated instances.
    """
    cfg = settings or default_settings
    for warning in cfg.validate_startup():
        log.warning(warning)

    if clock is None:
        tz = cfg.tz
        clock = lambda: datetime.now(tz)  # noqa: E731

    script = load_script(cfg.script_path) if cfg.script_path else DialogueScript()
    call_states = call_states if call_states is not None else CallStateStore()
    appointments = appointments if appointments is not None else AppointmentStore(clock=clock)

    engine = DialogueEngine(
        call_states,
        appointments,
        script=script,
        clock=clock,
        default_hour=cfg.default_appointment_hour,
        clinic_name=cfg.clinic_name,
        assistant_name=cfg.assistant_name,
    )

    app = FastAPI(
        title="Clinic Call Agent",
        description="Autonomous phone agent that books clinic appointments",
        version="0.1.0",
    )
    app.state.settings = cfg
    app.state.call_states = call_states
    app.state.appointments = appointments
    app.state.engine = engine

    def _twilio_channel(request: Request) -> TwilioVoiceChannel:
        if cfg.public_base_url:
            action_url = cfg.public_base_url.rstrip("/") + "/twilio/voice"
        else:
            url = request.url_for("twilio_voice")
            # Honor TLS-terminating proxies and tunnels
            if request.headers.get("x-forwarded-proto", "") == "https":
                url = url.replace(scheme="https")
            action_url = str(url)
        return TwilioVoiceChannel(action_url=action_url, script=script)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check that confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Twilio voice webhook ───────────────────────────────────

    @app.get("/twilio/voice", name="twilio_voice_start")
    async def twilio_voice_start(request: Request) -> Response:
        """Send Twilio to the POST webhook for the greeting turn."""
        twiml = _twilio_channel(request).redirect_to_start()
        return Response(content=twiml, media_type="text/xml")

    @app.post("/twilio/voice", name="twilio_voice")
    async def twilio_voice(request: Request) -> Response:
        """Twilio webhook: one dialogue turn per <Gather> result.

        Always answers with TwiML, even when the turn fails internally.
        """
        form = await request.form()
        payload: dict[str, Any] = {
            key: value for key, value in form.items() if isinstance(value, str)
        }
        payload["step"] = request.query_params.get("step", "")

        channel = _twilio_channel(request)
        twiml = drive_turn(engine, channel, payload)

        log.info(
            "Twilio turn: call_sid=%s step=%s",
            payload.get("CallSid", "?"), payload["step"] or "init",
        )
        return Response(content=twiml, media_type="text/xml")

    # ── Call simulator ─────────────────────────────────────────

    @app.post("/api/simulator/calls")
    async def start_simulated_call(request: Request) -> JSONResponse:
        """Start a simulated call and return the agent's greeting."""
        body = await _read_json(request, allow_empty=True)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        payload = {
            "callId": uuid.uuid4().hex,
            "callerNumber": body.get("callerNumber"),
        }
        reply = drive_turn(engine, SimulatorChannel(clock=clock), payload)
        log.info("Simulated call started: %s", reply["callId"])
        return JSONResponse(reply, status_code=201)

    @app.post("/api/simulator/calls/{call_id}/turns")
    async def simulated_turn(call_id: str, request: Request) -> JSONResponse:
        """Feed one typed caller utterance into a simulated call."""
        body = await _read_json(request)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
        text = body.get("text", "")
        if text is not None and not isinstance(text, str):
            return JSONResponse({"error": "'text' must be a string"}, status_code=400)

        payload = {
            "callId": call_id,
            "text": text,
            "callerNumber": body.get("callerNumber"),
        }
        reply = drive_turn(engine, SimulatorChannel(clock=clock), payload)
        return JSONResponse(reply)

    # ── Appointments ───────────────────────────────────────────

    @app.get("/api/appointments")
    async def list_appointments() -> JSONResponse:
        """Return all booked appointments, most recent first."""
        items = [
            a.model_dump(mode="json", by_alias=True)
            for a in appointments.list_appointments()
        ]
        return JSONResponse({"appointments": items})

    @app.post("/api/appointments")
    async def create_appointment(request: Request) -> JSONResponse:
        """Create an appointment; missing fields get fallback defaults."""
        body = await _read_json(request)
        if body is None:
            return JSONResponse({"error": "Request body missing"}, status_code=400)
        if body is _MALFORMED:
            return JSONResponse({"error": "Request body is not valid JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        try:
            fields = AppointmentCreate.model_validate(body)
        except ValidationError as e:
            return JSONResponse(
                {"error": f"Invalid appointment: {e.errors(include_url=False)[0]['msg']}"},
                status_code=400,
            )

        appointment = appointments.create_appointment(fields)
        return JSONResponse(
            {"appointment": appointment.model_dump(mode="json", by_alias=True)},
            status_code=201,
        )

    # ── In-progress calls (operator view) ──────────────────────

    @app.get("/api/calls")
    async def list_calls() -> JSONResponse:
        """Return all in-progress call states."""
        states = call_states.active()
        return JSONResponse({
            "calls": [s.model_dump(mode="json", by_alias=True) for s in states],
            "count": len(states),
        })

    @app.get("/api/calls/{call_id}")
    async def get_call(call_id: str) -> JSONResponse:
        """Return one in-progress call state."""
        state = call_states.peek(call_id)
        if state is None:
            return JSONResponse({"error": "Call not found"}, status_code=404)
        return JSONResponse(state.model_dump(mode="json", by_alias=True))

    return app


# ── Helper functions ──────────────────────────────────────────────

_MALFORMED = object()


async def _read_json(request: Request, allow_empty: bool = False) -> Any:
    """Parse the request body as JSON.

    Returns None for an empty body (or ``{}`` with ``allow_empty``) and
    ``_MALFORMED`` when the body is not valid JSON.
    """
    raw = await request.body()
    if not raw.strip():
        return {} if allow_empty else None
    try:
        return await request.json()
    except ValueError:
        return _MALFORMED


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "callagent.app:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_config=log_config,
    )
