from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REMINDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Store
    DATABASE_URL: str

    # Service configuration
    SERVICE_HOST: str = "0.0.0.0"
    SERVICE_PORT: int = 5000

    # Scheduling
    DISPATCH_INTERVAL_SECONDS: float = 60
    RECONNECT_BACKOFF_SECONDS: float = 5
    SEND_TIMEOUT_SECONDS: float = 15

    # Rendering
    DEFAULT_COUNTRY_CODE: str = "91"
    DISPLAY_TIMEZONE: str = "Asia/Kolkata"
    DUE_TIME_FORMAT: str = "%-m/%-d/%Y, %-I:%M:%S %p"

    # Transport
    TRANSPORT: Literal["whatsapp", "log"] = "whatsapp"
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v19.0"
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = None
    WHATSAPP_ACCESS_TOKEN: Optional[str] = None

    # Metrics / logging
    METRICS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL")
    @classmethod
    def database_url_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must not be blank")
        return v.strip()

    @field_validator("DISPATCH_INTERVAL_SECONDS", "RECONNECT_BACKOFF_SECONDS", "SEND_TIMEOUT_SECONDS")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("DEFAULT_COUNTRY_CODE")
    @classmethod
    def country_code_digits(cls, v: str) -> str:
        # Accept "+91" as well as "91"
        v = v.strip().lstrip("+")
        if not v.isdigit():
            raise ValueError("DEFAULT_COUNTRY_CODE must contain digits only")
        return v

    @field_validator("DISPLAY_TIMEZONE")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {v!r}") from e
        return v

    @model_validator(mode="after")
    def _require_transport_credentials(self) -> "ReminderSettings":
        if self.TRANSPORT == "whatsapp":
            missing = [
                name
                for name in ("WHATSAPP_PHONE_NUMBER_ID", "WHATSAPP_ACCESS_TOKEN")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"TRANSPORT=whatsapp requires {', '.join('REMINDER_' + m for m in missing)}"
                )
        return self

    @property
    def display_zone(self) -> ZoneInfo:
        return ZoneInfo(self.DISPLAY_TIMEZONE)


def get_settings() -> ReminderSettings:
    """Load settings from the environment. Raises pydantic.ValidationError on misconfiguration."""
    return ReminderSettings()
