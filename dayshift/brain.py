#!/usr/bin/env python3
"""Brain module for Dayshift - the circadian light target.

Two layers on top of each other
-------------------------------
* Circadian curves: sun altitude drives color temperature and brightness
  through a logistic curve, with a fixed "deep night" brightness window.
* Breathing: a slow cosine oscillation on brightness and mired. Each light
  in a scene gets its own phase so the group moves as a wave.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo as TzInfo
from typing import Optional

from astral import Observer
from astral.sun import elevation as solar_elevation

from dayshift.config import Config, GeographPoint, Location, Transitions

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TWO_PI = 2.0 * math.pi

# Wire protocol ranges
MAX_BRIGHTNESS = 255
MAX_MIRED = 65535

# Color temperature curve is a sigmoid of altitude_deg / COLOR_ALTITUDE_SCALE
COLOR_ALTITUDE_SCALE = 3.0

# ---------------------------------------------------------------------------
# Solar position
# ---------------------------------------------------------------------------

def sun_altitude(when: datetime, point: GeographPoint) -> float:
    """Apparent (refraction corrected) solar altitude in radians.

    Args:
        when: Instant to evaluate. Naive datetimes are taken as UTC.
        point: Observer position in radians
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    observer = Observer(latitude=math.degrees(point.lat), longitude=math.degrees(point.long))
    return math.radians(solar_elevation(observer, when.astimezone(timezone.utc), with_refraction=True))


# ---------------------------------------------------------------------------
# Circadian curve model
# ---------------------------------------------------------------------------

def sigmoid(x: float) -> float:
    """Logistic function, saturating instead of overflowing."""
    try:
        return 1.0 / (1.0 + math.exp(-x))
    except OverflowError:
        return 0.0


def kelvin_to_mired(kelvin: float) -> float:
    return 1_000_000.0 / kelvin


def target_color_temperature(transitions: Transitions, altitude: float) -> float:
    """Color temperature in Kelvin for a sun altitude in radians."""
    x = math.degrees(altitude) / COLOR_ALTITUDE_SCALE
    span = transitions.day_temperature - transitions.night_temperature
    return sigmoid(x) * span + transitions.night_temperature


def in_deep_night(transitions: Transitions, hour: int) -> bool:
    """Whether hour falls inside [start, end), wrapping past midnight."""
    return hour >= transitions.deep_night_start_hour or hour < transitions.deep_night_end_hour


def target_brightness(transitions: Transitions, altitude: float, hour: int) -> float:
    """Brightness fraction for a sun altitude in radians and a local hour.

    The deep night window overrides the sun entirely.
    """
    if in_deep_night(transitions, hour):
        return transitions.deep_night_brightness

    x = (math.degrees(altitude) - transitions.sun_altitude_dawn_point) / transitions.transition_time
    span = transitions.day_brightness - transitions.night_brightness
    return sigmoid(x) * span + transitions.night_brightness


def clamp_brightness(value: float) -> int:
    """Clamp to the 8-bit brightness range used on the wire."""
    return int(max(0.0, min(float(MAX_BRIGHTNESS), value)))


def clamp_mired(value: float) -> int:
    """Clamp to the 16-bit mired range used on the wire."""
    return int(max(0.0, min(float(MAX_MIRED), value)))


def cycle_phase(seconds: float, cycle_length: float) -> float:
    """Position in an oscillation of cycle_length seconds, in [0, 2pi)."""
    return (seconds * TWO_PI / cycle_length) % TWO_PI


# ---------------------------------------------------------------------------
# Light target
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LightTarget:
    """What a light should show right now, before per-light rotation."""
    bri: float              # base brightness fraction (0-1)
    mired: float            # base color temperature in mired
    bri_phase: float
    mired_phase: float
    bri_amplitude: float
    mired_amplitude: float

    @classmethod
    def compute(
        cls,
        transitions: Transitions,
        location: Location,
        now: Optional[datetime] = None,
        tz: Optional[TzInfo] = None,
    ) -> "LightTarget":
        """Build the target for `now` (defaults to the current time).

        Local hour and seconds since midnight are taken in `tz`, or the
        system timezone when tz is None.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.astimezone()
        local = now.astimezone(tz)

        altitude = sun_altitude(now, location.as_geograph_point())
        seconds_from_midnight = local.hour * 3600 + local.minute * 60 + local.second

        logger.debug(f"Apparent altitude: {math.degrees(altitude):.5f}")

        return cls(
            bri=target_brightness(transitions, altitude, local.hour),
            mired=kelvin_to_mired(target_color_temperature(transitions, altitude)),
            bri_phase=cycle_phase(seconds_from_midnight, transitions.brightness_cycle_length),
            mired_phase=cycle_phase(seconds_from_midnight, transitions.temperature_cycle_length),
            bri_amplitude=transitions.brightness_cycle_amplitude,
            mired_amplitude=transitions.temperature_cycle_amplitude,
        )

    def rotate(self, angle: float) -> "LightTarget":
        """Copy with both oscillation phases advanced by angle radians."""
        return replace(
            self,
            bri_phase=(self.bri_phase + angle) % TWO_PI,
            mired_phase=(self.mired_phase + angle) % TWO_PI,
        )

    def brightness(self) -> int:
        return clamp_brightness(math.cos(self.bri_phase) * self.bri_amplitude + self.bri * MAX_BRIGHTNESS)

    def color_temp(self) -> int:
        return clamp_mired(math.cos(self.mired_phase) * self.mired_amplitude + self.mired)

    def is_on(self) -> bool:
        return self.brightness() != 0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_light_target(config: Config, now: Optional[datetime] = None) -> LightTarget:
    """Compute the light target for the configured location and timezone."""
    target = LightTarget.compute(config.transitions, config.location, now=now, tz=config.tzinfo())
    logger.debug(f"target: {target}")
    return target
