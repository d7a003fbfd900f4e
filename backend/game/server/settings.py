"""Duel server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from game.logic.settings import DuelSettings
from shared.validators import ListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "GAME_"}

    max_capacity: int = Field(default=100, ge=1)
    log_dir: str = Field(default="backend/logs/game", min_length=1)
    database_path: str = Field(default="backend/data/timeoutclick.db", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    presence_broadcast_seconds: float = Field(default=30.0, gt=0)
    reaper_interval_seconds: float = Field(default=30.0, gt=0)

    total_rounds: int = Field(default=3, ge=1)
    countdown_ms: int = Field(default=3000, ge=0)
    next_round_delay_ms: int = Field(default=3000, ge=0)
    round_start_delay_ms: int = Field(default=3000, ge=0)
    round_timeout_ms: int = Field(default=10000, gt=0)
    cleanup_grace_ms: int = Field(default=15000, ge=0)
    stale_match_seconds: float = Field(default=30.0, gt=0)
    stale_challenge_seconds: float = Field(default=300.0, gt=0)
    session_idle_seconds: float = Field(default=1800.0, ge=1800, le=3600)

    # Read from AUTH_TICKET_SECRET (not GAME_TICKET_SECRET): the secret belongs
    # to the account service that signs tickets.
    ticket_secret: str = Field(validation_alias="AUTH_TICKET_SECRET", min_length=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    def duel_settings(self) -> DuelSettings:
        return DuelSettings(
            total_rounds=self.total_rounds,
            countdown_ms=self.countdown_ms,
            next_round_delay_ms=self.next_round_delay_ms,
            round_start_delay_ms=self.round_start_delay_ms,
            round_timeout_ms=self.round_timeout_ms,
            cleanup_grace_ms=self.cleanup_grace_ms,
            stale_match_seconds=self.stale_match_seconds,
            stale_challenge_seconds=self.stale_challenge_seconds,
            session_idle_seconds=self.session_idle_seconds,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, ListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
