from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import ConfigError, apply_env_overrides, load_config

DEFAULT_STATE_DIR = Path.home() / ".sessionbot" / "state"


class ReconnectSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, ge=0)
    base_delay_s: float = Field(default=5.0, ge=0)
    delay_cap_s: float = Field(default=30.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_s * attempt, self.delay_cap_s)


class TimeoutSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    connect_s: float = Field(default=30.0, gt=0)
    send_s: float = Field(default=15.0, gt=0)


class BotSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prefix: str = "."
    transport: str | None = None
    sessions: list[str] = Field(default_factory=list)
    state_dir: Path = DEFAULT_STATE_DIR
    auto_react: bool = False
    privileged_senders: list[str] = Field(default_factory=list)
    plugins: list[str] | None = None
    bot_name: str = "sessionbot"
    owner_name: str | None = None
    owner_contact: str | None = None
    wizard_ttl_s: float = Field(default=600.0, ge=0)
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    transports: dict[str, dict[str, object]] = Field(default_factory=dict)

    @field_validator("prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value or value.isspace():
            raise ValueError("prefix must be a non-empty string")
        return value

    @field_validator("privileged_senders")
    @classmethod
    def _normalize_senders(cls, value: list[str]) -> list[str]:
        # Stored as bare user numbers; "+254..." and "254...@s.whatsapp.net" both match.
        normalized = []
        for item in value:
            user = item.strip().lstrip("+").split("@", 1)[0]
            if user:
                normalized.append(user)
        return normalized

    @field_validator("state_dir")
    @classmethod
    def _expand_state_dir(cls, value: Path) -> Path:
        return value.expanduser()

    def is_privileged(self, user: str) -> bool:
        return user in self.privileged_senders


def validate_settings_data(data: Mapping[str, object], *, config_path: Path | None) -> BotSettings:
    where = str(config_path) if config_path is not None else "settings"
    try:
        return BotSettings.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {where}: {exc}") from exc


def load_settings(
    path: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> tuple[BotSettings, Path | None]:
    config, config_path = load_config(path)
    merged = apply_env_overrides(config, env)
    return validate_settings_data(merged, config_path=config_path), config_path
