#!/usr/bin/env python3
"""Configuration for Dayshift.

Configuration is a single JSON document holding the bridge credentials,
the geographic location, an optional timezone, the circadian transition
parameters and the control loop timing. It is:

- Loaded once at startup (missing file = all defaults)
- Overridden by HUE_BRIDGE_ADDRESS / HUE_USERNAME from the environment
- Validated with a voluptuous schema
- Written back with every default filled in, so each parameter is editable
"""

from __future__ import annotations

import json
import logging
import math
import os
import tempfile
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import voluptuous as vol

logger = logging.getLogger(__name__)

CONFIG_ENV = "DAYSHIFT_CONFIG"
CONFIG_FILENAME = "config.json"


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

class GeographPoint(NamedTuple):
    """A point on earth, in radians."""
    long: float
    lat: float


@dataclass(frozen=True)
class HueConfig:
    """Bridge address and whitelisted username."""
    bridge_address: str
    username: str


@dataclass(frozen=True)
class Location:
    """Observer location in degrees."""
    long: float = 5.3878266
    lat: float = 52.1561113

    def as_geograph_point(self) -> GeographPoint:
        return GeographPoint(long=math.radians(self.long), lat=math.radians(self.lat))


@dataclass(frozen=True)
class Transitions:
    """Parameters of the circadian curves and the slow oscillation on top."""
    day_brightness: float = 1.0
    day_temperature: float = 5700.0       # Kelvin
    night_temperature: float = 2400.0     # Kelvin
    night_brightness: float = 0.7
    deep_night_brightness: float = 0.0
    deep_night_start_hour: int = 23
    deep_night_end_hour: int = 6
    sun_altitude_dawn_point: float = -0.4  # degrees
    transition_time: float = 1.0
    brightness_cycle_length: float = 600.0    # seconds
    temperature_cycle_length: float = 700.0   # seconds
    brightness_cycle_amplitude: float = 30.0  # 8-bit brightness units
    temperature_cycle_amplitude: float = 50.0  # mired


@dataclass(frozen=True)
class ControlConfig:
    """Timing of the control loop."""
    cycle_interval: float = 15.0    # seconds between cycle starts
    request_delay: float = 0.15     # pause after each light push
    scene_transition: float = 1.5   # transition time stored in scenes


@dataclass(frozen=True)
class Config:
    hue: HueConfig
    location: Location = field(default_factory=Location)
    transitions: Transitions = field(default_factory=Transitions)
    control: ControlConfig = field(default_factory=ControlConfig)
    timezone: Optional[str] = None

    def tzinfo(self) -> Optional[ZoneInfo]:
        """Timezone used for the local clock, None for the system zone."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        if self.timezone is None:
            data.pop("timezone")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create from an already validated dictionary."""
        return cls(
            hue=HueConfig(**data["hue"]),
            location=Location(**data.get("location", {})),
            transitions=Transitions(**data.get("transitions", {})),
            control=ControlConfig(**data.get("control", {})),
            timezone=data.get("timezone"),
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _finite(value: float) -> float:
    if not math.isfinite(value):
        raise vol.Invalid("must be a finite number")
    return value


def _timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise vol.Invalid(f"unknown timezone '{value}'")
    return value


NUMBER = vol.All(vol.Coerce(float), _finite)
POSITIVE = vol.All(NUMBER, vol.Range(min=0, min_included=False))
HOUR = vol.All(vol.Coerce(int), vol.Range(min=0, max=23))

_TRANSITION_DEFAULTS = Transitions()
_CONTROL_DEFAULTS = ControlConfig()
_LOCATION_DEFAULTS = Location()

TRANSITIONS_SCHEMA = vol.Schema({
    vol.Optional("day_brightness", default=_TRANSITION_DEFAULTS.day_brightness): NUMBER,
    vol.Optional("day_temperature", default=_TRANSITION_DEFAULTS.day_temperature): POSITIVE,
    vol.Optional("night_temperature", default=_TRANSITION_DEFAULTS.night_temperature): POSITIVE,
    vol.Optional("night_brightness", default=_TRANSITION_DEFAULTS.night_brightness): NUMBER,
    vol.Optional("deep_night_brightness", default=_TRANSITION_DEFAULTS.deep_night_brightness): NUMBER,
    vol.Optional("deep_night_start_hour", default=_TRANSITION_DEFAULTS.deep_night_start_hour): HOUR,
    vol.Optional("deep_night_end_hour", default=_TRANSITION_DEFAULTS.deep_night_end_hour): HOUR,
    vol.Optional("sun_altitude_dawn_point", default=_TRANSITION_DEFAULTS.sun_altitude_dawn_point): NUMBER,
    vol.Optional("transition_time", default=_TRANSITION_DEFAULTS.transition_time): POSITIVE,
    vol.Optional("brightness_cycle_length", default=_TRANSITION_DEFAULTS.brightness_cycle_length): POSITIVE,
    vol.Optional("temperature_cycle_length", default=_TRANSITION_DEFAULTS.temperature_cycle_length): POSITIVE,
    vol.Optional("brightness_cycle_amplitude", default=_TRANSITION_DEFAULTS.brightness_cycle_amplitude): NUMBER,
    vol.Optional("temperature_cycle_amplitude", default=_TRANSITION_DEFAULTS.temperature_cycle_amplitude): NUMBER,
})

CONFIG_SCHEMA = vol.Schema({
    vol.Required("hue"): vol.Schema({
        vol.Required("bridge_address"): vol.All(str, vol.Length(min=1)),
        vol.Required("username"): vol.All(str, vol.Length(min=1)),
    }),
    vol.Optional("location", default={}): vol.Schema({
        vol.Optional("long", default=_LOCATION_DEFAULTS.long): vol.All(NUMBER, vol.Range(min=-180, max=180)),
        vol.Optional("lat", default=_LOCATION_DEFAULTS.lat): vol.All(NUMBER, vol.Range(min=-90, max=90)),
    }),
    vol.Optional("timezone"): vol.All(str, _timezone),
    vol.Optional("transitions", default={}): TRANSITIONS_SCHEMA,
    vol.Optional("control", default={}): vol.Schema({
        vol.Optional("cycle_interval", default=_CONTROL_DEFAULTS.cycle_interval): POSITIVE,
        vol.Optional("request_delay", default=_CONTROL_DEFAULTS.request_delay): vol.All(NUMBER, vol.Range(min=0)),
        vol.Optional("scene_transition", default=_CONTROL_DEFAULTS.scene_transition): vol.All(NUMBER, vol.Range(min=0)),
    }),
})


def validate(raw: Dict[str, Any]) -> Config:
    """Validate a raw config dict and build the immutable Config.

    Raises:
        ConfigError: if a value is missing or out of range
    """
    try:
        data = CONFIG_SCHEMA(raw)
    except vol.MultipleInvalid as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    return Config.from_dict(data)


# ---------------------------------------------------------------------------
# Loading and saving
# ---------------------------------------------------------------------------

def get_config_path() -> str:
    """Get the config file path based on environment."""
    path = os.getenv(CONFIG_ENV)
    if path:
        return path
    if os.path.isdir("/data"):
        # Running as a container add-on
        return os.path.join("/data", CONFIG_FILENAME)
    return os.path.join(os.path.expanduser("~"), ".config", "dayshift", CONFIG_FILENAME)


def _read_file(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        logger.info(f"No config file found at {path}, using defaults")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError
        raise ConfigError(f"JSON error reading {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    file_hue = raw.get("hue")
    if file_hue is not None and not isinstance(file_hue, dict):
        raise ConfigError(f"'hue' must be an object, got {type(file_hue).__name__}")
    hue = dict(file_hue or {})
    address = os.getenv("HUE_BRIDGE_ADDRESS")
    username = os.getenv("HUE_USERNAME")
    if address:
        hue["bridge_address"] = address
    if username:
        hue["username"] = username

    if not hue.get("bridge_address") or not hue.get("username"):
        raise ConfigError(
            "Hue bridge address and username are required: set them in the "
            "'hue' section of the config file or via HUE_BRIDGE_ADDRESS and HUE_USERNAME"
        )

    merged = dict(raw)
    merged["hue"] = hue
    return merged


def save_config(config: Config, path: str) -> None:
    """Write config to disk atomically."""
    _write_json(config.to_dict(), path)


def _write_json(data: Dict[str, Any], path: str) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp", prefix=".config_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.debug(f"Saved config to {path}")


def load_config(path: Optional[str] = None, write_back: bool = True) -> Config:
    """Load, validate and (optionally) write back the configuration.

    Args:
        path: Config file path. If not provided, uses get_config_path().
        write_back: Save the normalized config so every default is visible.

    Raises:
        ConfigError: if the file is unreadable, malformed or incomplete
    """
    path = path or get_config_path()
    logger.info(f"Reading config from {path}")

    file_raw = _read_file(path)
    config = validate(_apply_env_overrides(file_raw))

    if write_back:
        # Credentials from the environment stay out of the file
        data = config.to_dict()
        data["hue"] = dict(file_raw.get("hue") or {})
        try:
            _write_json(data, path)
        except OSError as e:
            logger.warning(f"Failed to save config to {path}: {e}")

    return config
