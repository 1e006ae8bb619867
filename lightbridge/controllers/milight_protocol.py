"""
miLight RF command encoding
Builds the 2-byte commands relayed by the UDP-to-RF bridge
"""

import math
from dataclasses import dataclass
from typing import Optional

from lightbridge.utils.color_utils import color_hue, parse_color, rgb_number

# Per-zone command bytes, zone 0 addresses every bulb
WHITE_CODES = (0xC2, 0xC5, 0xC7, 0xC9, 0xCB)
ON_CODES = (0x42, 0x45, 0x47, 0x49, 0x4B)
OFF_CODES = (0x41, 0x46, 0x48, 0x4A, 0x4C)

BROADCAST_ZONE = 0
ZONES = range(len(ON_CODES))

HUE_CODE = 0x40
LEVEL_CODE = 0x4E
TRAILER = 0x55

# The bulbs' color wheel stops short of the full hue circle
MAX_HUE = 271
LEVEL_STEPS = 25

WHITE = 0xFFFFFF


@dataclass(frozen=True)
class Command:
    """A single bridge command"""

    code: int
    param: int

    def frame(self) -> bytes:
        """Datagram payload: code, param, fixed trailer"""
        return bytes([self.code, self.param, TRAILER])

    def __str__(self) -> str:
        return f"0x{self.code:02X}/{self.param}"


def _check_zone(zone: int):
    if zone not in ZONES:
        raise ValueError(f"Zone must be 0-{len(ON_CODES) - 1}, got {zone}")


def power_command(zone: int, on: bool) -> Command:
    """Zone-specific on or off command"""
    _check_zone(zone)
    return Command(ON_CODES[zone] if on else OFF_CODES[zone], 0x00)


def encode_level(level: int) -> Optional[Command]:
    """
    Brightness command for a 0-100 level
    Returns None for level 0, switching off is a power command.
    """
    if level <= 0:
        return None
    # Round half up, 50 maps to 13
    param = math.floor(level / 4 + 0.5)
    return Command(LEVEL_CODE, max(1, min(LEVEL_STEPS, param)))


def encode_color(color: str, zone: int) -> Command:
    """
    Color command for a CSS color string

    Pure white selects the zone's white mode. Any other color is sent as a
    hue byte; hues past MAX_HUE are clamped to it.
    """
    _check_zone(zone)
    if rgb_number(*parse_color(color)) == WHITE:
        return Command(WHITE_CODES[zone], 0x00)

    hue = min(color_hue(color), MAX_HUE)
    return Command(HUE_CODE, math.floor(192 - (hue * 255) / 360))


def is_hue_command(command: Command) -> bool:
    return command.code == HUE_CODE
