"""Segmentation engine adapter over the SAM2 image predictor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import torch
from numpy.typing import NDArray

from samlayer.config import settings
from samlayer.exceptions import ModelNotLoadedError
from samlayer.models import DecoderOutput

if TYPE_CHECKING:
    from sam2.sam2_image_predictor import SAM2ImagePredictor

logger = logging.getLogger(__name__)


class Sam2Engine:
    """SAM2 image encoder, prompt encoder and mask decoder as separate calls.

    The predictor's own ``predict`` fuses prompt encoding and decoding, so the
    underlying modules are called directly to keep the two steps distinct.
    Point coordinates are expected in model input space.
    """

    def __init__(self, model_id: str | None = None, predictor: SAM2ImagePredictor | None = None) -> None:
        """Initialize the engine without loading the model."""
        self._model_id = model_id or settings.sam2_model_id
        self._predictor = predictor

    def load(self) -> None:
        """Load SAM2 weights from the Hugging Face hub."""
        if self._predictor is not None:
            logger.info("SAM2 model already loaded")
            return

        if torch.cuda.is_available():
            # Enable TensorFloat32 for Ampere GPUs
            torch.backends.cuda.matmul.allow_tf32 = True
            torch.backends.cudnn.allow_tf32 = True

        from sam2.sam2_image_predictor import SAM2ImagePredictor

        logger.info(f"Loading SAM2 model {self._model_id}...")
        self._predictor = SAM2ImagePredictor.from_pretrained(self._model_id)
        logger.info("SAM2 model loaded successfully")

    def unload(self) -> None:
        """Release the model to free accelerator memory."""
        if self._predictor is None:
            return
        del self._predictor
        self._predictor = None
        if torch.cuda.is_available():
            torch.cuda.empty_cache()

    @property
    def is_loaded(self) -> bool:
        return self._predictor is not None

    def _require_predictor(self) -> SAM2ImagePredictor:
        if self._predictor is None:
            raise ModelNotLoadedError("SAM2 model not loaded. Call load() first.")
        return self._predictor

    def encode_image(self, pixels: NDArray[np.uint8]) -> dict[str, Any]:
        """Run the image encoder and return its cached features."""
        predictor = self._require_predictor()
        with torch.inference_mode():
            predictor.set_image(pixels)
        features = predictor._features
        return {"image_embed": features["image_embed"], "high_res_feats": list(features["high_res_feats"])}

    def encode_prompt(self, coords: NDArray[np.float32], labels: NDArray[np.int32]) -> tuple[Any, Any]:
        """Run the prompt encoder on model-space points and labels."""
        predictor = self._require_predictor()
        device = predictor.device
        point_coords = torch.as_tensor(coords, dtype=torch.float, device=device)[None, :, :]
        point_labels = torch.as_tensor(labels, dtype=torch.int, device=device)[None, :]
        with torch.inference_mode():
            sparse, dense = predictor.model.sam_prompt_encoder(
                points=(point_coords, point_labels),
                boxes=None,
                masks=None,
            )
        return sparse, dense

    def decode_mask(self, image_embedding: dict[str, Any], prompt_embedding: tuple[Any, Any]) -> DecoderOutput:
        """Run the mask decoder and return all candidate logit planes with their scores."""
        predictor = self._require_predictor()
        sparse, dense = prompt_embedding
        with torch.inference_mode():
            low_res_masks, iou_predictions, _, _ = predictor.model.sam_mask_decoder(
                image_embeddings=image_embedding["image_embed"],
                image_pe=predictor.model.sam_prompt_encoder.get_dense_pe(),
                sparse_prompt_embeddings=sparse,
                dense_prompt_embeddings=dense,
                multimask_output=True,
                repeat_image=False,
                high_res_features=image_embedding["high_res_feats"],
            )

        # (1, K, 256, 256) and (1, K)
        masks = low_res_masks[0].float().cpu().numpy().astype(np.float32)
        scores = iou_predictions[0].float().cpu().numpy().astype(np.float32)
        return DecoderOutput(masks=masks, scores=scores)
