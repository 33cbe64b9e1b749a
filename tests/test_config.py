from pathlib import Path

import pytest

from sessionbot.config import (
    ENV_AUTO_REACT,
    ENV_MAX_RECONNECT_ATTEMPTS,
    ENV_PREFIX,
    ENV_PRIVILEGED_SENDERS,
    ENV_RECONNECT_DELAY_S,
    ConfigError,
    apply_env_overrides,
    load_config,
)
from sessionbot.settings import BotSettings, ReconnectSettings, load_settings


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "sessionbot.toml"
        config_file.write_text('prefix = "!"\nsessions = ["main"]\n')

        config, path = load_config(config_file)

        assert config == {"prefix": "!", "sessions": ["main"]}
        assert path == config_file

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config(tmp_path / "nonexistent.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("prefix = [unclosed")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config(bad_file)

    def test_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(tmp_path)

    def test_no_path_and_no_files(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            "sessionbot.config.HOME_CONFIG_PATH", tmp_path / "home" / "sessionbot.toml"
        )

        assert load_config() == ({}, None)

    def test_local_config_is_found(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        local = tmp_path / ".sessionbot" / "sessionbot.toml"
        local.parent.mkdir()
        local.write_text("auto_react = true\n")
        monkeypatch.chdir(tmp_path)

        config, path = load_config()

        assert config == {"auto_react": True}
        assert path == tmp_path / ".sessionbot" / "sessionbot.toml"


class TestEnvOverrides:
    def test_env_wins_over_file(self) -> None:
        merged = apply_env_overrides(
            {"prefix": ".", "reconnect": {"delay_cap_s": 60}},
            {
                ENV_PREFIX: "!",
                ENV_AUTO_REACT: "yes",
                ENV_MAX_RECONNECT_ATTEMPTS: "7",
                ENV_RECONNECT_DELAY_S: "2.5",
                ENV_PRIVILEGED_SENDERS: "+15551112222, 15553334444@s.whatsapp.net,",
            },
        )

        assert merged["prefix"] == "!"
        assert merged["auto_react"] is True
        assert merged["reconnect"] == {
            "delay_cap_s": 60,
            "max_attempts": 7,
            "base_delay_s": 2.5,
        }
        assert merged["privileged_senders"] == [
            "+15551112222",
            "15553334444@s.whatsapp.net",
        ]

    def test_blank_values_are_ignored(self) -> None:
        assert apply_env_overrides({"prefix": "."}, {ENV_PREFIX: "  "}) == {"prefix": "."}

    def test_input_is_not_mutated(self) -> None:
        config = {"reconnect": {"max_attempts": 1}}
        apply_env_overrides(config, {ENV_MAX_RECONNECT_ATTEMPTS: "9"})
        assert config == {"reconnect": {"max_attempts": 1}}

    @pytest.mark.parametrize(
        ("name", "value", "message"),
        [
            (ENV_AUTO_REACT, "maybe", "expected a boolean"),
            (ENV_MAX_RECONNECT_ATTEMPTS, "three", "expected an integer"),
            (ENV_RECONNECT_DELAY_S, "soon", "expected a number"),
        ],
    )
    def test_malformed_values_raise(self, name: str, value: str, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            apply_env_overrides({}, {name: value})


class TestSettings:
    def test_defaults(self) -> None:
        settings = BotSettings()

        assert settings.prefix == "."
        assert settings.auto_react is False
        assert settings.reconnect.max_attempts == 3
        assert settings.reconnect.base_delay_s == 5.0
        assert settings.wizard_ttl_s == 600.0
        assert settings.plugins is None

    def test_privileged_senders_are_normalized(self) -> None:
        settings = BotSettings(
            privileged_senders=["+15551112222", "15553334444@s.whatsapp.net", " "]
        )

        assert settings.privileged_senders == ["15551112222", "15553334444"]
        assert settings.is_privileged("15551112222")
        assert not settings.is_privileged("15550000000")

    def test_blank_prefix_is_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "sessionbot.toml"
        config_file.write_text('prefix = " "\n')

        with pytest.raises(ConfigError, match="Invalid config"):
            load_settings(config_file, env={})

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "sessionbot.toml"
        config_file.write_text("bogus = 1\n")

        with pytest.raises(ConfigError, match="bogus"):
            load_settings(config_file, env={})

    def test_load_settings_applies_env(self, tmp_path: Path) -> None:
        config_file = tmp_path / "sessionbot.toml"
        config_file.write_text(
            'transport = "fake"\n'
            "[reconnect]\n"
            "max_attempts = 5\n"
            "[transports.fake]\n"
            'endpoint = "ws://localhost"\n'
        )

        settings, path = load_settings(config_file, env={ENV_PREFIX: "/"})

        assert path == config_file
        assert settings.prefix == "/"
        assert settings.transport == "fake"
        assert settings.reconnect.max_attempts == 5
        assert settings.transports == {"fake": {"endpoint": "ws://localhost"}}


@pytest.mark.parametrize(
    ("attempt", "delay"),
    [(1, 5.0), (2, 10.0), (6, 30.0), (20, 30.0)],
)
def test_reconnect_delay_is_linear_and_capped(attempt: int, delay: float) -> None:
    assert ReconnectSettings().delay_for(attempt) == delay
