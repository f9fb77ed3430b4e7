"""Compositing and PNG export of segmentation layers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from PIL import Image

from samlayer.config import settings
from samlayer.models import RGB, SegmentationLayer

logger = logging.getLogger(__name__)

LAYER_FILENAME = "segmentation_{index}.png"


def composite_mask_on_image(
    original: Image.Image,
    mask: Image.Image,
    opacity: float | None = None,
    mask_color: RGB | None = None,
) -> Image.Image:
    """Composite a mask onto an image at a fixed opacity.

    Args:
        original: Source image.
        mask: Alpha mask (mode "L", white=foreground).
        opacity: Blend fraction 0-1 for masked pixels.
        mask_color: RGB tint for masked pixels.

    Returns:
        RGB image with the mask blended in.
    """
    opacity = settings.composite_opacity if opacity is None else opacity
    mask_color = mask_color or settings.default_tint

    img = original.copy().convert("RGBA")

    # Ensure mask is the right size
    if mask.size != img.size:
        mask = mask.resize(img.size, Image.Resampling.NEAREST)

    overlay = Image.new("RGBA", img.size, (*mask_color, 255))
    blended = Image.blend(img, overlay, opacity)

    # Where mask is white show blended, where black show original
    result = Image.composite(blended, img, mask.convert("L"))
    return result.convert("RGB")


def composite_layers(
    original: Image.Image,
    layers: Sequence[SegmentationLayer],
    opacity: float | None = None,
) -> Image.Image:
    """Blend visible layers over the image, bottom layer first."""
    result = original.convert("RGB")
    for layer in sorted(layers, key=lambda layer: layer.order):
        if not layer.visible:
            continue
        result = composite_mask_on_image(result, layer.mask, opacity, layer.tint)
    return result


def save_png(image: Image.Image, path: Path) -> Path:
    """Write an image as PNG, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    logger.info(f"Wrote {path}")
    return path


def export_layers(layers: Sequence[SegmentationLayer], directory: Path) -> list[Path]:
    """Export tinted layers as ``segmentation_<n>.png``, numbered from 1 in the given order.

    Args:
        layers: Layers in export (selection) order.
        directory: Target directory, created if missing.

    Returns:
        Paths of the written files.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    paths = []
    for index, layer in enumerate(layers, start=1):
        path = directory / LAYER_FILENAME.format(index=index)
        layer.tinted().save(path, format="PNG")
        paths.append(path)

    logger.info(f"Exported {len(paths)} layers to {directory}")
    return paths
