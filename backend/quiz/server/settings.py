"""Quiz server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class QuizServerSettings(BaseSettings):
    model_config = {"env_prefix": "QUIZ_"}

    idempotency_ttl_seconds: int = Field(default=600, gt=0)
    idempotency_max_per_session: int = Field(default=128, gt=0)
    session_idle_timeout_seconds: int = Field(default=900, gt=0)
    session_eviction_interval_seconds: int = Field(default=30, gt=0)
    missing_role_alert_threshold_seconds: int = Field(default=30, gt=0)

    # Per-socket inbound limits
    ws_messages_per_second: float = Field(default=20.0, gt=0)
    ws_burst: int = Field(default=40, gt=0)
    ws_max_decode_errors: int = Field(default=5, gt=0)

    log_dir: str = Field(default="backend/logs/quiz", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]
    # Enables /dev/reset/{session} and /dev/events/{session}
    dev_endpoints: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
