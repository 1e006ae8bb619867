"""
Light state and command sequencing

A property write is applied to an immutable state and yields the new state
plus the plan of steps the bridge has to receive. Nothing here does I/O, the
plan is executed by a per-device CommandQueue.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Union

from lightbridge.controllers.milight_protocol import (
    BROADCAST_ZONE,
    encode_color,
    encode_level,
    is_hue_command,
    power_command,
)
from lightbridge.utils.color_utils import normalize_color

# Seconds the bridge needs after a zone on-pulse before the next command
ON_SETTLE_DELAY = 0.100
# Seconds between consecutive commands to an already addressed zone
CONSECUTIVE_DELAY = 0.080

PROP_ON = "on"
PROP_LEVEL = "level"
PROP_COLOR = "color"

LIGHT_PROPERTIES = (PROP_ON, PROP_LEVEL, PROP_COLOR)
SWITCH_PROPERTIES = (PROP_ON,)


class UnknownPropertyError(KeyError):
    """Write to a property the device does not have"""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown property: {self.name}"


@dataclass(frozen=True)
class Send:
    """Hand a payload to the device transport (a Command, or a bool for switches)"""

    command: Any


@dataclass(frozen=True)
class Wait:
    """Pause the queue before the next step"""

    seconds: float


Step = Union[Send, Wait]


@dataclass(frozen=True)
class LightState:
    """Cached state of a dimmable color light"""

    power: bool = False
    level: int = 0
    color: str = "#ffffff"

    def to_dict(self) -> dict:
        return {PROP_ON: self.power, PROP_LEVEL: self.level, PROP_COLOR: self.color}


@dataclass(frozen=True)
class SwitchState:
    """Cached state of an on/off switch"""

    power: bool = False

    def to_dict(self) -> dict:
        return {PROP_ON: self.power}


@dataclass(frozen=True)
class Transition:
    """New state plus the steps that bring the device there"""

    state: Any
    steps: tuple = ()

    @property
    def commands(self) -> list:
        return [step.command for step in self.steps if isinstance(step, Send)]


def coerce_power(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'on' must be a boolean, got {value!r}")
    return value


def coerce_level(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'level' must be a number, got {value!r}")
    if isinstance(value, int):
        level = value
    elif math.isfinite(value):
        level = math.floor(value + 0.5)
    else:
        raise ValueError(f"'level' must be finite, got {value!r}")
    if not 0 <= level <= 100:
        raise ValueError(f"'level' must be within 0-100, got {value!r}")
    return level


def _write_power(state: LightState, on: bool, zone: int) -> Transition:
    if on == state.power:
        return Transition(state)
    return Transition(replace(state, power=on), (Send(power_command(zone, on)),))


def _write_color(state: LightState, color: str, zone: int) -> Transition:
    command = encode_color(color, zone)
    state = replace(state, color=normalize_color(color))

    if is_hue_command(command) and zone != BROADCAST_ZONE:
        # Hue bytes carry no zone, the on-pulse right before them picks it
        return Transition(
            replace(state, power=True),
            (
                Send(power_command(zone, True)),
                Wait(ON_SETTLE_DELAY),
                Send(command),
            ),
        )

    return Transition(state, (Send(command),))


def _write_level(state: LightState, level: int, zone: int) -> Transition:
    if level == 0:
        off = _write_power(state, False, zone)
        return Transition(replace(off.state, level=0), off.steps)

    command = encode_level(level)
    if not state.power:
        return Transition(
            replace(state, power=True, level=level),
            (
                Send(power_command(zone, True)),
                Wait(ON_SETTLE_DELAY),
                Send(command),
            ),
        )

    return Transition(
        replace(state, level=level),
        (Wait(CONSECUTIVE_DELAY), Send(command)),
    )


def apply_write(state: LightState, name: str, value: Any, zone: int) -> Transition:
    """
    Apply a property write to a light

    Returns the new state and the ordered steps to transmit. Raises
    UnknownPropertyError for names other than on/level/color and ValueError
    for values the property cannot hold.
    """
    if name == PROP_ON:
        return _write_power(state, coerce_power(value), zone)
    if name == PROP_COLOR:
        return _write_color(state, value, zone)
    if name == PROP_LEVEL:
        return _write_level(state, coerce_level(value), zone)
    raise UnknownPropertyError(name)


def apply_switch_write(state: SwitchState, name: str, value: Any) -> Transition:
    """Apply a property write to a switch, the sent payload is the power value"""
    if name != PROP_ON:
        raise UnknownPropertyError(name)
    on = coerce_power(value)
    if on == state.power:
        return Transition(state)
    return Transition(SwitchState(power=on), (Send(on),))
