"""Domain data models for prompts, encodings and segmentation layers."""

from __future__ import annotations

import itertools
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from samlayer.enums import Category, TaskKind

Coordinates = tuple[float, float]
Size = tuple[int, int]  # (width, height), the PIL convention
RGB = tuple[int, int, int]

_stamp_lock = threading.Lock()
_last_stamp = 0
_layer_sequence = itertools.count(1)


def next_timestamp() -> int:
    """Return a strictly increasing monotonic timestamp in nanoseconds."""
    global _last_stamp
    with _stamp_lock:
        _last_stamp = max(time.monotonic_ns(), _last_stamp + 1)
        return _last_stamp


@dataclass(frozen=True)
class Point:
    """A single prompt point. Immutable once created."""

    coordinates: Coordinates
    category: Category
    created_at: int = field(default_factory=next_timestamp)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def x(self) -> float:
        return self.coordinates[0]

    @property
    def y(self) -> float:
        return self.coordinates[1]


@dataclass
class Box:
    """A box prompt. The end corner moves while the user drags."""

    start: Coordinates
    end: Coordinates
    category: Category = Category.FOREGROUND
    created_at: int = field(default_factory=next_timestamp)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def points(self) -> list[Point]:
        """Corner points in prompt order: origin first, then end."""
        return [
            Point(self.start, Category.BOX_ORIGIN, created_at=self.created_at),
            Point(self.end, Category.BOX_END, created_at=self.created_at),
        ]

    @property
    def midpoint(self) -> Coordinates:
        return ((self.start[0] + self.end[0]) / 2, (self.start[1] + self.end[1]) / 2)


@dataclass(frozen=True)
class PromptInput:
    """Serialized prompt ready for the prompt encoder (model space)."""

    coords: NDArray[np.float32]  # Shape: (N, 2)
    labels: NDArray[np.int32]  # Shape: (N,)

    def __len__(self) -> int:
        return int(self.labels.shape[0])


@dataclass(frozen=True)
class ImageEncoding:
    """Opaque image embedding tagged with the image session that produced it."""

    session_id: int
    embedding: Any
    original_size: Size


@dataclass(frozen=True)
class PromptEncoding:
    """Opaque prompt embedding, valid only with the image encoding of the same session."""

    session_id: int
    embedding: Any


@dataclass(frozen=True)
class DecoderOutput:
    """Raw mask decoder output."""

    masks: NDArray[np.float32]  # Shape: (K, h, w), logits
    scores: NDArray[np.float32]  # Shape: (K,)


@dataclass
class SegmentationLayer:
    """A mask with display attributes. Committed layers live in the session layer list."""

    mask: Image.Image  # mode "L", 0 or 255, original image resolution
    tint: RGB
    title: str = ""
    visible: bool = True
    order: int = 0
    sequence: int = field(default_factory=lambda: next(_layer_sequence))
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    _tinted: Image.Image | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.retint(self.tint)

    def retint(self, tint: RGB) -> Image.Image:
        """Recolor the stored alpha mask without re-running inference."""
        from samlayer.services.mask_postprocess import tint_mask

        self.tint = tint
        self._tinted = tint_mask(self.mask, tint)
        return self._tinted

    def tinted(self) -> Image.Image:
        """RGBA rendering: tint color with the mask as alpha."""
        if self._tinted is None:
            return self.retint(self.tint)
        return self._tinted

    @property
    def size(self) -> Size:
        return self.mask.size


@dataclass(frozen=True)
class InferenceResult:
    """Outcome of a scheduled task, delivered back to the interaction thread."""

    kind: TaskKind
    generation: int
    session_id: int
    mask: Image.Image | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
