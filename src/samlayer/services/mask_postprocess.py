"""Mask post-processing: decoder logits to a tinted alpha mask.

The logits are rendered as a continuous grayscale field using their own
[min, max] range, resized to the original image resolution, and only then
thresholded at the gray level that corresponds to logit zero. Thresholding
after the resize keeps mask edges smooth.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from samlayer.exceptions import ResizeFailureError
from samlayer.models import RGB, Size

logger = logging.getLogger(__name__)


def compute_threshold(minimum: float, maximum: float) -> float | None:
    """Fraction of the [min, max] window where the logit crosses zero.

    Returns:
        ``-min / (max - min)``, or None for a degenerate (flat) plane.
    """
    if maximum == minimum:
        return None
    return -minimum / (maximum - minimum)


def logits_to_grayscale(logits: NDArray[np.floating], minimum: float, maximum: float) -> Image.Image:
    """Render logits as an 8-bit grayscale image over the [min, max] window."""
    scaled = (logits.astype(np.float64) - minimum) / (maximum - minimum)
    gray = np.clip(np.rint(scaled * 255.0), 0, 255).astype(np.uint8)
    return Image.fromarray(gray)


def threshold_mask(gray: Image.Image, threshold: float) -> Image.Image:
    """Binary alpha: at/above ``threshold`` (fraction of 255) is opaque."""
    values = np.asarray(gray, dtype=np.float64) / 255.0
    alpha = np.where(values >= threshold, 255, 0).astype(np.uint8)
    return Image.fromarray(alpha)


def empty_mask(size: Size) -> Image.Image:
    """Fully transparent alpha mask."""
    return Image.new("L", size, 0)


def tint_mask(mask: Image.Image, tint: RGB) -> Image.Image:
    """Color the mask: RGB set to ``tint``, alpha taken from the mask."""
    tinted = Image.new("RGBA", mask.size, (*tint, 255))
    tinted.putalpha(mask.convert("L"))
    return tinted


def logits_to_mask(logits: NDArray[np.floating], target_size: Size) -> Image.Image:
    """Convert a logit plane to a binary alpha mask at ``target_size``.

    Args:
        logits: Decoder logits with shape (h, w).
        target_size: Output (width, height), usually the original image size.

    Returns:
        Mode "L" image with values 0 or 255 and size exactly ``target_size``.

    Raises:
        ResizeFailureError: If the plane or the target size cannot be resized.
    """
    width, height = target_size
    if width <= 0 or height <= 0:
        raise ResizeFailureError(f"Invalid target size {target_size}")

    plane = np.asarray(logits)
    if plane.ndim != 2 or plane.size == 0:
        raise ResizeFailureError(f"Expected a non-empty 2D logit plane, got shape {plane.shape}")
    if not np.all(np.isfinite(plane)):
        raise ResizeFailureError("Logit plane contains non-finite values")

    minimum, maximum = float(plane.min()), float(plane.max())
    threshold = compute_threshold(minimum, maximum)
    if threshold is None:
        logger.info(f"Degenerate logits (all {minimum}), returning empty mask")
        return empty_mask(target_size)

    gray = logits_to_grayscale(plane, minimum, maximum)
    try:
        resized = gray.resize(target_size, Image.Resampling.BILINEAR)
    except (ValueError, MemoryError) as e:
        raise ResizeFailureError(f"Failed to resize mask to {target_size}: {e}") from e

    mask = threshold_mask(resized, threshold)
    if mask.size != target_size:
        mask = mask.crop((0, 0, width, height))
    return mask


def postprocess_mask(logits: NDArray[np.floating], target_size: Size, tint: RGB) -> Image.Image:
    """Full pipeline: logits to a tinted RGBA mask at ``target_size``."""
    return tint_mask(logits_to_mask(logits, target_size), tint)
