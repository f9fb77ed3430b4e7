"""Prompt assembly: serialize boxes and points into encoder inputs."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from samlayer.models import Box, Point, PromptInput, Size
from samlayer.services.coordinates import to_model_space

logger = logging.getLogger(__name__)


def prompt_sequence(points: Sequence[Point], boxes: Sequence[Box]) -> list[Point]:
    """Order prompts for the encoder.

    Box corners come first in box-list order (origin then end per box),
    followed by freestanding points in point-list order.
    """
    sequence: list[Point] = []
    for box in boxes:
        sequence.extend(box.points())
    sequence.extend(points)
    return sequence


def build_prompt(
    points: Sequence[Point],
    boxes: Sequence[Box],
    original_size: Size,
    model_size: Size,
) -> PromptInput | None:
    """Build model-space coordinates and labels from the current prompts.

    Args:
        points: Freestanding points in original-image coordinates.
        boxes: Boxes in original-image coordinates.
        original_size: Source image size (width, height).
        model_size: Encoder input size (width, height).

    Returns:
        PromptInput, or None if there are no prompts at all.
    """
    sequence = prompt_sequence(points, boxes)
    if not sequence:
        return None

    coords = np.array(
        [to_model_space(p.coordinates, original_size, model_size) for p in sequence],
        dtype=np.float32,
    ).reshape(-1, 2)
    labels = np.array([int(p.category) for p in sequence], dtype=np.int32)

    logger.debug(f"Built prompt with {len(boxes)} boxes and {len(points)} points")
    return PromptInput(coords=coords, labels=labels)
