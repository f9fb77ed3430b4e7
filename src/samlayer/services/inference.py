"""Inference orchestration: image encode, prompt encode and mask decode."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from samlayer.config import settings
from samlayer.enums import EngineState
from samlayer.exceptions import MissingEncodingError, ModelNotLoadedError
from samlayer.models import DecoderOutput, ImageEncoding, PromptEncoding, PromptInput, Size
from samlayer.services.mask_postprocess import logits_to_mask

logger = logging.getLogger(__name__)


class SegmentationEngine(Protocol):
    """Black-box segmentation model contract."""

    def load(self) -> None: ...

    def encode_image(self, pixels: NDArray[np.uint8]) -> Any: ...

    def encode_prompt(self, coords: NDArray[np.float32], labels: NDArray[np.int32]) -> Any: ...

    def decode_mask(self, image_embedding: Any, prompt_embedding: Any) -> DecoderOutput: ...


def select_best_mask(scores: NDArray[np.floating]) -> int:
    """Index of the highest score. Ties resolve to the lowest index; NaN scores rank last."""
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if scores.size == 0:
        raise MissingEncodingError("Mask decoder returned no candidate masks")
    if np.isnan(scores).all():
        raise MissingEncodingError("Mask decoder returned only NaN scores")
    # NaN scores never win
    scores = np.where(np.isnan(scores), -np.inf, scores)
    return int(np.argmax(scores))


class InferenceOrchestrator:
    """Sequences encoder and decoder calls against a segmentation engine.

    Only the READY state accepts encode and decode calls. The current image
    encoding and prompt encoding are tagged with an image session id, and a
    decode only runs when both belong to the same session.
    """

    def __init__(self, engine: SegmentationEngine, model_input_size: int | None = None) -> None:
        """Initialize the orchestrator without loading the model."""
        self._engine = engine
        size = model_input_size or settings.model_input_size
        self._model_size: Size = (size, size)
        self._state = EngineState.UNLOADED
        self._state_lock = threading.Lock()
        self._image_encoding: ImageEncoding | None = None
        self._prompt_encoding: PromptEncoding | None = None
        self._session_counter = 0
        self.initialization_time: float | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == EngineState.READY

    @property
    def model_size(self) -> Size:
        return self._model_size

    @property
    def image_encoding(self) -> ImageEncoding | None:
        return self._image_encoding

    @property
    def prompt_encoding(self) -> PromptEncoding | None:
        return self._prompt_encoding

    def load_model(self) -> None:
        """Load the engine. Idempotent once READY.

        Raises:
            ModelNotLoadedError: If the engine fails to load; the state becomes FAILED.
        """
        with self._state_lock:
            if self._state == EngineState.READY:
                logger.info("Segmentation model already loaded")
                return
            if self._state == EngineState.LOADING:
                logger.info("Segmentation model is already loading")
                return
            self._state = EngineState.LOADING

        logger.info("Loading segmentation model...")
        start = time.perf_counter()
        try:
            self._engine.load()
        except Exception as e:
            with self._state_lock:
                self._state = EngineState.FAILED
            self.initialization_time = None
            logger.exception("Failed to load segmentation model")
            raise ModelNotLoadedError(f"Failed to load segmentation model: {e}") from e

        self.initialization_time = time.perf_counter() - start
        with self._state_lock:
            self._state = EngineState.READY
        logger.info(f"Initialized models in {self.initialization_time:.4f} seconds")

    def unload_model(self) -> None:
        """Drop encodings and return to UNLOADED."""
        with self._state_lock:
            if self._state == EngineState.UNLOADED:
                logger.info("Segmentation model not loaded, nothing to unload")
                return
            self._state = EngineState.UNLOADED
        self._image_encoding = None
        self._prompt_encoding = None
        unload = getattr(self._engine, "unload", None)
        if callable(unload):
            unload()
        logger.info("Segmentation model unloaded")

    def _require_ready(self) -> None:
        if self._state != EngineState.READY:
            raise ModelNotLoadedError(f"Segmentation model not loaded (state: {self._state.value})")

    def encode_image(self, image: Image.Image, session_id: int | None = None) -> int:
        """Encode a new source image, replacing any previous encodings.

        Args:
            image: Source image at its original resolution.
            session_id: Session id assigned by the caller; a fresh one is allocated when omitted.

        Returns:
            The image session id of the new encoding.
        """
        self._require_ready()

        # Both encodings belong to the previous image, even if this encode fails
        self._image_encoding = None
        self._prompt_encoding = None

        original_size: Size = image.size
        pixels = np.asarray(image.convert("RGB").resize(self._model_size, Image.Resampling.BILINEAR))

        start = time.perf_counter()
        embedding = self._engine.encode_image(pixels)
        if session_id is None:
            session_id = self._session_counter + 1
        self._session_counter = max(self._session_counter, session_id)
        self._image_encoding = ImageEncoding(
            session_id=session_id,
            embedding=embedding,
            original_size=original_size,
        )
        logger.info(
            f"Image encoding for session {session_id} took {time.perf_counter() - start:.3f}s"
        )
        return session_id

    def encode_prompt(self, prompt: PromptInput) -> PromptEncoding:
        """Encode prompts against the current image session."""
        self._require_ready()
        if self._image_encoding is None:
            raise MissingEncodingError("No image encoding. Call encode_image() first.")

        embedding = self._engine.encode_prompt(prompt.coords, prompt.labels)
        self._prompt_encoding = PromptEncoding(session_id=self._image_encoding.session_id, embedding=embedding)
        return self._prompt_encoding

    def decode_mask(self) -> NDArray[np.float32]:
        """Decode the best mask for the current encodings.

        Returns:
            Raw logit plane of the highest-scoring candidate.

        Raises:
            ModelNotLoadedError: If the engine is not READY.
            MissingEncodingError: If the image or prompt encoding is missing or stale.
        """
        self._require_ready()
        image_encoding = self._image_encoding
        prompt_encoding = self._prompt_encoding
        if image_encoding is None or prompt_encoding is None:
            raise MissingEncodingError("Mask decoding requires both an image and a prompt encoding")
        if image_encoding.session_id != prompt_encoding.session_id:
            raise MissingEncodingError("Prompt encoding belongs to a previous image")

        output = self._engine.decode_mask(image_encoding.embedding, prompt_encoding.embedding)
        masks = np.asarray(output.masks)
        if masks.ndim == 2:
            masks = masks[None]
        best = select_best_mask(output.scores)
        logger.debug(f"Selected mask {best} of {len(masks)} with score {float(np.asarray(output.scores)[best]):.3f}")
        return masks[best].astype(np.float32)

    def segment(
        self,
        prompt: PromptInput,
        target_size: Size | None = None,
        session_id: int | None = None,
    ) -> Image.Image:
        """Encode the prompt, decode and post-process into an alpha mask.

        Args:
            prompt: Model-space prompt.
            target_size: Output size; defaults to the encoded image's original size.
            session_id: Image session the prompt was made for. When given, the
                current image encoding must belong to it.

        Returns:
            Mode "L" alpha mask at the target size.

        Raises:
            MissingEncodingError: If the image for ``session_id`` is not encoded.
        """
        self._require_ready()
        if session_id is not None:
            current = self._image_encoding
            if current is None or current.session_id != session_id:
                raise MissingEncodingError(f"No image encoding for session {session_id}")
        encoding = self.encode_prompt(prompt)
        logits = self.decode_mask()
        if target_size is None and self._image_encoding is not None:
            if self._image_encoding.session_id != encoding.session_id:
                raise MissingEncodingError("Image changed while decoding")
            target_size = self._image_encoding.original_size
        return logits_to_mask(logits, target_size or self._model_size)
