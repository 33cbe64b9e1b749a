from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

LOCAL_CONFIG_NAME = Path(".sessionbot") / "sessionbot.toml"
HOME_CONFIG_PATH = Path.home() / ".sessionbot" / "sessionbot.toml"

# Environment variable names for runtime overrides
ENV_PREFIX = "SESSIONBOT_PREFIX"
ENV_MAX_RECONNECT_ATTEMPTS = "SESSIONBOT_MAX_RECONNECT_ATTEMPTS"
ENV_RECONNECT_DELAY_S = "SESSIONBOT_RECONNECT_DELAY_S"
ENV_RECONNECT_DELAY_CAP_S = "SESSIONBOT_RECONNECT_DELAY_CAP_S"
ENV_AUTO_REACT = "SESSIONBOT_AUTO_REACT"
ENV_PRIVILEGED_SENDERS = "SESSIONBOT_PRIVILEGED_SENDERS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    pass


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Load the TOML config.

    An explicit path must exist. Without one, the local and home locations are
    tried in order and an empty config is returned when neither exists.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return read_config(candidate), candidate
    return {}, None


def _env_value(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid {name} environment variable; expected a boolean.")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError(
            f"Invalid {name} environment variable; expected an integer."
        ) from None


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigError(
            f"Invalid {name} environment variable; expected a number."
        ) from None


def apply_env_overrides(
    config: dict, env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Return a copy of ``config`` with environment overrides applied.

    Environment variables take precedence over the config file.
    """
    if env is None:
        env = os.environ
    merged: dict[str, Any] = dict(config)
    reconnect = dict(merged.get("reconnect") or {})

    if (value := _env_value(env, ENV_PREFIX)) is not None:
        merged["prefix"] = value
    if (value := _env_value(env, ENV_AUTO_REACT)) is not None:
        merged["auto_react"] = _parse_bool(ENV_AUTO_REACT, value)
    if (value := _env_value(env, ENV_PRIVILEGED_SENDERS)) is not None:
        merged["privileged_senders"] = [
            item.strip() for item in value.split(",") if item.strip()
        ]
    if (value := _env_value(env, ENV_MAX_RECONNECT_ATTEMPTS)) is not None:
        reconnect["max_attempts"] = _parse_int(ENV_MAX_RECONNECT_ATTEMPTS, value)
    if (value := _env_value(env, ENV_RECONNECT_DELAY_S)) is not None:
        reconnect["base_delay_s"] = _parse_float(ENV_RECONNECT_DELAY_S, value)
    if (value := _env_value(env, ENV_RECONNECT_DELAY_CAP_S)) is not None:
        reconnect["delay_cap_s"] = _parse_float(ENV_RECONNECT_DELAY_CAP_S, value)

    if reconnect:
        merged["reconnect"] = reconnect
    return merged
