"""
CSS color parsing and hue conversion utilities
Used by the miLight encoder to turn color strings into hue values
"""

import colorsys
import math
import re

import webcolors

_RGB_FUNC = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+%?\s*)?\)$"
)
_HSL_FUNC = re.compile(
    r"^hsla?\(\s*(\d+(?:\.\d+)?)(?:deg)?\s*,\s*(\d+(?:\.\d+)?)%\s*,\s*(\d+(?:\.\d+)?)%\s*(?:,\s*[\d.]+%?\s*)?\)$"
)
_HEX = re.compile(r"^#?([0-9a-f]{3}|[0-9a-f]{6})$")


def parse_color(color: str) -> tuple[int, int, int]:
    """
    Parse a CSS-style color string into an RGB tuple
    Accepts #rgb, #rrggbb, rgb()/rgba(), hsl()/hsla() and CSS color names.
    Raises ValueError for anything else.
    """
    if not isinstance(color, str):
        raise ValueError(f"Color must be a string, got {type(color).__name__}")

    value = color.strip().lower()

    match = _RGB_FUNC.match(value)
    if match:
        r, g, b = (int(part) for part in match.groups())
        if max(r, g, b) > 255:
            raise ValueError(f"RGB component out of range in {color!r}")
        return (r, g, b)

    match = _HSL_FUNC.match(value)
    if match:
        return hsl_to_rgb(*(float(part) for part in match.groups()))

    if _HEX.match(value):
        return hex_to_rgb(value)

    try:
        return tuple(webcolors.name_to_rgb(value))
    except ValueError:
        raise ValueError(f"Unrecognised color: {color!r}") from None


def hsl_to_rgb(h: float, s: float, l: float) -> tuple[int, int, int]:
    """
    Convert HSL to an RGB tuple
    h: degrees, s and l: 0-100 percent
    """
    if s > 100 or l > 100:
        raise ValueError(f"HSL percentage out of range: {s}%, {l}%")
    r, g, b = colorsys.hls_to_rgb((h % 360) / 360, l / 100, s / 100)
    return tuple(math.floor(c * 255 + 0.5) for c in (r, g, b))


def rgb_to_hue(r: int, g: int, b: int) -> float:
    """Hue in degrees (0-360) of 0-255 RGB components, 0 for grays"""
    max_val = max(r, g, b)
    delta = max_val - min(r, g, b)

    if delta == 0:
        return 0
    if max_val == r:
        return 60 * (((g - b) / delta) % 6)
    if max_val == g:
        return 60 * ((b - r) / delta + 2)
    return 60 * ((r - g) / delta + 4)


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color (3 or 6 digits, optional #) to RGB tuple"""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join(ch * 2 for ch in hex_color)
    return (int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Convert RGB to hex string"""
    return f"#{r:02x}{g:02x}{b:02x}"


def rgb_number(r: int, g: int, b: int) -> int:
    """Pack RGB into a single 24-bit integer"""
    return (r << 16) | (g << 8) | b


def color_hue(color: str) -> float:
    """Hue in degrees (0-360) of a CSS color string"""
    return rgb_to_hue(*parse_color(color))


def normalize_color(color: str) -> str:
    """Canonical lowercase #rrggbb form of a CSS color string"""
    return rgb_to_hex(*parse_color(color))
