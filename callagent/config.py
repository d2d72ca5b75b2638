"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from datetime import timedelta, timezone

from pydantic_settings import BaseSettings

log = logging.getLogger("callagent.config")


class Settings(BaseSettings):
    # Clinic identity (spoken in the greeting)
    clinic_name: str = "Horizon Clinic"
    assistant_name: str = "Aurora"

    # Scheduling policy
    utc_offset_minutes: int = 0  # single fixed local offset for all instants
    default_appointment_hour: int = 9  # used when the caller gives no time

    # Optional JSON file overriding the dialogue wording
    script_path: str = ""

    # Twilio: public URL Twilio posts <Gather> results back to.
    # Empty means "derive from the incoming request".
    public_base_url: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def tz(self) -> timezone:
        """The fixed local offset as a tzinfo."""
        return timezone(timedelta(minutes=self.utc_offset_minutes))

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if not 0 <= self.default_appointment_hour <= 23:
            raise ValueError(
                "DEFAULT_APPOINTMENT_HOUR must be between 0 and 23, "
                f"got {self.default_appointment_hour}."
            )

        if abs(self.utc_offset_minutes) >= 24 * 60:
            raise ValueError(
                f"UTC_OFFSET_MINUTES out of range: {self.utc_offset_minutes}."
            )

        if not self.public_base_url:
            warnings.append(
                "PUBLIC_BASE_URL not set. Twilio callback URLs are derived from "
                "the request host, which breaks behind some proxies."
            )
        elif not self.public_base_url.startswith("https://") and not self.debug:
            warnings.append(
                "PUBLIC_BASE_URL is not https. Twilio requires TLS for webhooks."
            )

        return warnings


settings = Settings()
