#!/usr/bin/env python3
"""Test config.py - loading, validation, env overrides and write-back."""

import json
import os

import pytest

from dayshift.config import (
    Config,
    ConfigError,
    ControlConfig,
    HueConfig,
    Transitions,
    get_config_path,
    load_config,
    save_config,
    validate,
)

MINIMAL = {"hue": {"bridge_address": "192.168.1.2", "username": "abc"}}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("HUE_BRIDGE_ADDRESS", "HUE_USERNAME", "DAYSHIFT_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def write_config(path, data):
    path.write_text(json.dumps(data))
    return str(path)


class TestValidate:
    """Test schema validation."""

    def test_defaults_filled_in(self):
        config = validate(MINIMAL)
        assert config.hue == HueConfig("192.168.1.2", "abc")
        assert config.transitions == Transitions()
        assert config.control == ControlConfig()
        assert config.location.lat == pytest.approx(52.1561113)
        assert config.timezone is None

    def test_partial_section(self):
        config = validate(dict(MINIMAL, transitions={"night_brightness": 0.4, "deep_night_start_hour": "22"}))
        assert config.transitions.night_brightness == 0.4
        assert config.transitions.deep_night_start_hour == 22
        assert config.transitions.day_temperature == 5700.0

    def test_hour_out_of_range(self):
        with pytest.raises(ConfigError, match="deep_night_end_hour"):
            validate(dict(MINIMAL, transitions={"deep_night_end_hour": 24}))

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            validate(dict(MINIMAL, transitions={"sunrise_offset": 3}))

    def test_non_numeric_value(self):
        with pytest.raises(ConfigError):
            validate(dict(MINIMAL, control={"cycle_interval": "often"}))

    def test_non_positive_cycle_length(self):
        with pytest.raises(ConfigError):
            validate(dict(MINIMAL, transitions={"brightness_cycle_length": 0}))

    def test_latitude_range(self):
        with pytest.raises(ConfigError):
            validate(dict(MINIMAL, location={"lat": 91}))

    def test_timezone(self):
        config = validate(dict(MINIMAL, timezone="Europe/Amsterdam"))
        assert config.timezone == "Europe/Amsterdam"
        assert str(config.tzinfo()) == "Europe/Amsterdam"

    def test_bad_timezone(self):
        with pytest.raises(ConfigError, match="timezone"):
            validate(dict(MINIMAL, timezone="Mars/Olympus_Mons"))

    def test_round_trip_through_dict(self):
        config = validate(dict(MINIMAL, timezone="UTC", control={"request_delay": 0}))
        assert validate(config.to_dict()) == config


class TestLoadConfig:
    """Test load_config with files and environment."""

    def test_missing_file_uses_defaults_and_writes_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HUE_BRIDGE_ADDRESS", "10.0.0.5")
        monkeypatch.setenv("HUE_USERNAME", "user1")
        path = str(tmp_path / "sub" / "config.json")

        config = load_config(path)

        assert config.hue == HueConfig("10.0.0.5", "user1")
        assert config.transitions == Transitions()
        with open(path) as f:
            saved = json.load(f)
        assert saved["transitions"]["deep_night_start_hour"] == 23
        assert saved["control"]["cycle_interval"] == 15.0
        assert saved["hue"] == {}
        assert "timezone" not in saved

    def test_write_back_keeps_user_values(self, tmp_path):
        path = write_config(tmp_path / "config.json", dict(MINIMAL, transitions={"night_temperature": 2200}))

        load_config(path)

        with open(path) as f:
            saved = json.load(f)
        assert saved["transitions"]["night_temperature"] == 2200
        assert saved["transitions"]["day_temperature"] == 5700
        assert not [name for name in os.listdir(tmp_path) if name.endswith(".tmp")]

    def test_no_write_back(self, tmp_path):
        path = write_config(tmp_path / "config.json", MINIMAL)

        load_config(path, write_back=False)

        with open(path) as f:
            assert json.load(f) == MINIMAL

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HUE_USERNAME", "from-env")
        path = write_config(tmp_path / "config.json", MINIMAL)

        config = load_config(path, write_back=False)

        assert config.hue.username == "from-env"
        assert config.hue.bridge_address == "192.168.1.2"

    def test_missing_credentials(self, tmp_path):
        with pytest.raises(ConfigError, match="HUE_BRIDGE_ADDRESS"):
            load_config(str(tmp_path / "config.json"))

    def test_empty_username(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"hue": {"bridge_address": "bridge", "username": ""}})
        with pytest.raises(ConfigError):
            load_config(path)

    def test_bad_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="JSON error"):
            load_config(str(path))

    def test_not_an_object(self, tmp_path):
        path = write_config(tmp_path / "config.json", [1, 2, 3])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)

    @pytest.mark.parametrize("hue", ["x", 5, True, ["bridge", "user"]])
    def test_hue_section_not_an_object(self, tmp_path, hue):
        path = write_config(tmp_path / "config.json", {"hue": hue})
        with pytest.raises(ConfigError, match="'hue' must be an object"):
            load_config(path, write_back=False)

    def test_hue_section_not_an_object_with_env(self, tmp_path, monkeypatch):
        """Env credentials do not paper over a broken hue section."""
        monkeypatch.setenv("HUE_BRIDGE_ADDRESS", "10.0.0.5")
        monkeypatch.setenv("HUE_USERNAME", "user1")
        path = write_config(tmp_path / "config.json", {"hue": "x"})
        with pytest.raises(ConfigError):
            load_config(path, write_back=False)

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_bytes(b'{"hue": "\xff"}')
        with pytest.raises(ConfigError, match="JSON error"):
            load_config(str(path), write_back=False)

    def test_env_credentials_not_written_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HUE_USERNAME", "secret-from-env")
        path = write_config(tmp_path / "config.json", {"hue": {"bridge_address": "192.168.1.2"}})

        config = load_config(path)

        assert config.hue.username == "secret-from-env"
        with open(path) as f:
            saved = json.load(f)
        assert saved["hue"] == {"bridge_address": "192.168.1.2"}
        assert "secret-from-env" not in json.dumps(saved)

    def test_file_credentials_kept_when_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HUE_USERNAME", "from-env")
        path = write_config(tmp_path / "config.json", MINIMAL)

        load_config(path)

        with open(path) as f:
            assert json.load(f)["hue"] == MINIMAL["hue"]

    def test_save_config(self, tmp_path):
        config = Config(hue=HueConfig("bridge", "user"), timezone="UTC")
        path = str(tmp_path / "config.json")

        save_config(config, path)

        with open(path) as f:
            assert json.load(f)["timezone"] == "UTC"


class TestConfigPath:
    """Test get_config_path."""

    def test_env_variable(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DAYSHIFT_CONFIG", str(tmp_path / "custom.json"))
        assert get_config_path() == str(tmp_path / "custom.json")

    def test_default_ends_with_filename(self):
        assert get_config_path().endswith("config.json")
