"""Segmentation services."""

from samlayer.services.coordinates import (
    denormalize,
    display_to_image,
    image_to_display,
    normalize,
    to_model_space,
)
from samlayer.services.export import composite_layers, composite_mask_on_image, export_layers
from samlayer.services.inference import InferenceOrchestrator, SegmentationEngine, select_best_mask
from samlayer.services.mask_postprocess import compute_threshold, logits_to_mask, postprocess_mask, tint_mask
from samlayer.services.palette import furthest_color
from samlayer.services.prompts import build_prompt, prompt_sequence
from samlayer.services.scheduler import InferenceScheduler
from samlayer.services.session import AnnotationSession

__all__ = [
    "AnnotationSession",
    "InferenceOrchestrator",
    "InferenceScheduler",
    "SegmentationEngine",
    "build_prompt",
    "composite_layers",
    "composite_mask_on_image",
    "compute_threshold",
    "denormalize",
    "display_to_image",
    "export_layers",
    "furthest_color",
    "image_to_display",
    "logits_to_mask",
    "normalize",
    "postprocess_mask",
    "prompt_sequence",
    "select_best_mask",
    "tint_mask",
    "to_model_space",
]
