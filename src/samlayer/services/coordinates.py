"""Coordinate conversions between display, original-image and model space.

Display space is the rendered, possibly scaled view; original-image space is
the source pixel grid; model space is the square input of the image encoder.
All conversions in the package go through this module.
"""

from __future__ import annotations

from samlayer.exceptions import InvalidArgumentError
from samlayer.models import Coordinates, Size


def _check_size(size: tuple[float, float]) -> None:
    if size[0] == 0 or size[1] == 0:
        raise InvalidArgumentError(f"Size must be non-zero on both axes, got {size}")


def to_model_space(point: Coordinates, original_size: Size, model_size: Size) -> Coordinates:
    """Map an original-image point into model input space.

    Out-of-range points are passed through unclamped.
    """
    _check_size(original_size)
    x, y = point
    return (x / original_size[0]) * model_size[0], (y / original_size[1]) * model_size[1]


def fraction_of(point: Coordinates, size: tuple[float, float]) -> Coordinates:
    """Express a point as a fraction of ``size`` (unit square)."""
    _check_size(size)
    return point[0] / size[0], point[1] / size[1]


def from_fraction(point: Coordinates, size: tuple[float, float]) -> Coordinates:
    """Inverse of :func:`fraction_of`."""
    return point[0] * size[0], point[1] * size[1]


def display_to_image(point: Coordinates, display_size: tuple[float, float], original_size: Size) -> Coordinates:
    """Convert a click in the displayed view into original-image pixels."""
    return from_fraction(fraction_of(point, display_size), original_size)


def image_to_display(point: Coordinates, original_size: Size, display_size: tuple[float, float]) -> Coordinates:
    """Convert an original-image point into display pixels for overlays."""
    return from_fraction(fraction_of(point, original_size), display_size)


def normalize(point: Coordinates, size: tuple[float, float], scale: float = 1.0) -> Coordinates:
    """Affine map centered at the image midpoint, scaled by the view zoom.

    ``x' = (x - w/2) / (w/2 * scale)``
    """
    _check_size(size)
    if scale == 0:
        raise InvalidArgumentError("Scale must be non-zero")
    half_w, half_h = size[0] / 2, size[1] / 2
    return (point[0] - half_w) / (half_w * scale), (point[1] - half_h) / (half_h * scale)


def denormalize(point: Coordinates, size: tuple[float, float], scale: float = 1.0) -> Coordinates:
    """Exact inverse of :func:`normalize`."""
    _check_size(size)
    if scale == 0:
        raise InvalidArgumentError("Scale must be non-zero")
    half_w, half_h = size[0] / 2, size[1] / 2
    return point[0] * half_w * scale + half_w, point[1] * half_h * scale + half_h
