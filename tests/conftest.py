"""Test fixtures for samlayer tests."""

from collections.abc import Generator
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from samlayer.models import DecoderOutput
from samlayer.services.inference import InferenceOrchestrator
from samlayer.services.scheduler import InferenceScheduler
from samlayer.services.session import AnnotationSession


def make_logits(height: int = 8, width: int = 8) -> np.ndarray:
    """Three candidate planes; the middle one is negative on the left half, positive on the right."""
    masks = np.full((3, height, width), -1.0, dtype=np.float32)
    masks[1, :, : width // 2] = -4.0
    masks[1, :, width // 2 :] = 4.0
    return masks


@pytest.fixture
def mock_engine() -> MagicMock:
    """Create a mock segmentation engine returning three candidate masks."""
    engine = MagicMock()
    engine.encode_image.return_value = {"image_embed": "embedding"}
    engine.encode_prompt.return_value = ("sparse", "dense")
    engine.decode_mask.return_value = DecoderOutput(
        masks=make_logits(),
        scores=np.array([0.1, 0.9, 0.5], dtype=np.float32),
    )
    return engine


@pytest.fixture
def orchestrator(mock_engine: MagicMock) -> InferenceOrchestrator:
    """Create a loaded orchestrator with a small model input size."""
    orchestrator = InferenceOrchestrator(mock_engine, model_input_size=64)
    orchestrator.load_model()
    return orchestrator


@pytest.fixture
def scheduler(orchestrator: InferenceOrchestrator) -> Generator[InferenceScheduler, None, None]:
    """Create a scheduler backed by the loaded orchestrator."""
    scheduler = InferenceScheduler(orchestrator)
    try:
        yield scheduler
    finally:
        scheduler.shutdown()


@pytest.fixture
def test_image() -> Image.Image:
    """A 40x20 RGB test image."""
    return Image.new("RGB", (40, 20), color="red")


@pytest.fixture
def session(scheduler: InferenceScheduler, test_image: Image.Image) -> AnnotationSession:
    """Create a session with the test image loaded and encoded."""
    session = AnnotationSession(scheduler, eraser_hit_radius=5.0)
    session.load_image(test_image)
    assert session.wait_idle(timeout=5)
    return session
