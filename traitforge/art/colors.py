"""Colour parsing for canvas backgrounds.

Accepts ``#RGB``, ``#RRGGBB``, ``#RRGGBBAA``, CSS colour names and
``rgb()``/``rgba()`` strings, plus tuples of 3 or 4 channel values.
"""

from __future__ import annotations

from PIL import ImageColor


def to_rgba(color) -> tuple[int, int, int, int]:
    """Normalise ``color`` to an (R, G, B, A) tuple of 0-255 ints."""
    if isinstance(color, (tuple, list)):
        channels = [int(c) for c in color]
        if len(channels) == 3:
            channels.append(255)
        if len(channels) != 4:
            raise ValueError(f"Expected 3 or 4 colour channels, got {len(channels)}")
        return tuple(max(0, min(255, c)) for c in channels)

    text = str(color).strip()
    if not text:
        raise ValueError("Empty colour value")
    try:
        rgba = ImageColor.getrgb(text)
    except ValueError:
        raise ValueError(f"Unrecognised colour: {color!r}") from None
    if len(rgba) == 3:
        rgba = rgba + (255,)
    return rgba
