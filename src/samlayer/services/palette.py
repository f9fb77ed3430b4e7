"""Tint palette for new layers."""

from __future__ import annotations

import math
from collections.abc import Sequence

from samlayer.config import settings
from samlayer.models import RGB

# Candidate tints for new layers (cycle through the most distinct one)
CANDIDATE_TINTS = [
    "#1e90ff",  # dodger blue
    "#ff4b4b",  # red
    "#4bff4b",  # green
    "#ffff4b",  # yellow
    "#ff4bff",  # magenta
    "#4bffff",  # cyan
    "#ff9f1c",  # orange
    "#8a2be2",  # violet
]


def hex_to_rgb(value: str) -> RGB:
    """Parse ``#rrggbb`` into an RGB tuple."""
    value = value.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected #rrggbb color, got {value!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def color_distance(a: RGB, b: RGB) -> float:
    """Euclidean distance between two colors in normalized RGB."""
    return math.sqrt(sum(((x - y) / 255.0) ** 2 for x, y in zip(a, b, strict=True)))


def furthest_color(existing: Sequence[RGB], candidates: Sequence[RGB] | None = None) -> RGB:
    """Pick the candidate whose nearest existing color is farthest away.

    Returns the default tint when there is nothing to compare against.
    """
    if candidates is None:
        candidates = [hex_to_rgb(c) for c in CANDIDATE_TINTS]
    if not existing or not candidates:
        return settings.default_tint

    best = settings.default_tint
    best_distance = 0.0
    for candidate in candidates:
        distance = min(color_distance(candidate, color) for color in existing)
        if distance > best_distance:
            best_distance = distance
            best = candidate
    return best
