"""Interactive annotation session: tools, prompts, undo and layers.

The session is owned by a single interaction thread. Edits mutate the point
and box lists immediately and queue inference on the scheduler; results are
applied only when the owner calls :meth:`AnnotationSession.process_results`.
"""

from __future__ import annotations

import logging
import math
import uuid

from PIL import Image

from samlayer.config import settings
from samlayer.enums import Category, TaskKind, Tool
from samlayer.exceptions import LayerNotFoundError
from samlayer.models import RGB, Box, Coordinates, InferenceResult, Point, SegmentationLayer, Size
from samlayer.schemas import LayerInfo, PromptPointInfo, SessionInfo
from samlayer.services.coordinates import display_to_image, image_to_display
from samlayer.services.palette import furthest_color
from samlayer.services.prompts import build_prompt
from samlayer.services.scheduler import InferenceScheduler

logger = logging.getLogger(__name__)

PROMPT_CATEGORIES = (Category.FOREGROUND, Category.BACKGROUND)


class AnnotationSession:
    """State machine for one annotated image and its committed layers."""

    def __init__(self, scheduler: InferenceScheduler, eraser_hit_radius: float | None = None) -> None:
        self._scheduler = scheduler
        self._eraser_hit_radius = eraser_hit_radius if eraser_hit_radius is not None else settings.eraser_hit_radius

        self.tool: Tool = Tool.SELECTOR
        self.category: Category = Category.FOREGROUND
        self.image: Image.Image | None = None
        self.display_size: tuple[float, float] | None = None

        self.points: list[Point] = []
        self.boxes: list[Box] = []
        self.current_box: Box | None = None
        self.current_segmentation: SegmentationLayer | None = None

        self.layers: list[SegmentationLayer] = []
        self.selected_layer_ids: list[uuid.UUID] = []
        self.last_error: Exception | None = None

    # Image and view

    @property
    def image_size(self) -> Size | None:
        return self.image.size if self.image is not None else None

    def load_image(self, image: Image.Image, display_size: tuple[float, float] | None = None) -> None:
        """Replace the source image and queue its encoding.

        Prompts and the current segmentation are cleared. Committed layers
        survive only when the new image has the same size.
        """
        previous_size = self.image_size
        self.image = image.convert("RGB")
        self.display_size = display_size or self.image.size
        self.reset()

        if previous_size is not None and previous_size != self.image.size and self.layers:
            logger.info(f"Image size changed from {previous_size} to {self.image.size}, clearing layers")
            self.layers.clear()
            self.selected_layer_ids.clear()

        self._scheduler.submit_image(self.image)

    def set_display_size(self, display_size: tuple[float, float]) -> None:
        """Record the size of the rendered view used to map clicks."""
        self.display_size = display_size

    def _to_image(self, point: Coordinates) -> Coordinates:
        if self.image is None or self.display_size is None:
            return point
        return display_to_image(point, self.display_size, self.image.size)

    def _to_display(self, point: Coordinates) -> Coordinates:
        if self.image is None or self.display_size is None:
            return point
        return image_to_display(point, self.image.size, self.display_size)

    # Tool and category selection

    def set_tool(self, tool: Tool) -> None:
        """Switch the active tool. Abandons a box drag in progress."""
        if tool != Tool.BOX:
            self.current_box = None
        self.tool = tool

    def set_category(self, category: Category) -> None:
        """Select foreground or background for new points."""
        if category not in PROMPT_CATEGORIES:
            logger.warning(f"Ignoring non-selectable category {category.description}")
            return
        self.category = category

    # Gestures (display coordinates)

    def click(self, x: float, y: float) -> None:
        """Handle a click in display coordinates according to the active tool."""
        if self.tool == Tool.POINT:
            self.add_point(self._to_image((x, y)))
        elif self.tool == Tool.ERASER:
            self.erase_at(x, y)

    def begin_drag(self, x: float, y: float) -> None:
        if self.tool != Tool.BOX:
            return
        start = self._to_image((x, y))
        self.current_box = Box(start=start, end=start, category=self.category)

    def update_drag(self, x: float, y: float) -> None:
        if self.tool != Tool.BOX or self.current_box is None:
            return
        self.current_box.end = self._to_image((x, y))

    def end_drag(self, x: float | None = None, y: float | None = None) -> None:
        if self.tool != Tool.BOX or self.current_box is None:
            return
        if x is not None and y is not None:
            self.current_box.end = self._to_image((x, y))
        box = self.current_box
        self.current_box = None
        self.boxes.append(box)
        self._trigger_inference()

    def erase_at(self, x: float, y: float) -> Point | None:
        """Remove the point nearest to a display-space click, within the hit radius."""
        nearest: Point | None = None
        min_distance = math.inf
        for point in self.points:
            px, py = self._to_display(point.coordinates)
            distance = math.hypot(x - px, y - py)
            if distance < min_distance and distance <= self._eraser_hit_radius:
                min_distance = distance
                nearest = point

        if nearest is None:
            return None

        self.points = [p for p in self.points if p.id != nearest.id]
        self._after_removal()
        return nearest

    # Prompt edits (original-image coordinates)

    def add_point(self, coordinates: Coordinates, category: Category | None = None) -> Point:
        point = Point(coordinates, category if category is not None else self.category)
        self.points.append(point)
        self._trigger_inference()
        return point

    def add_box(self, start: Coordinates, end: Coordinates) -> Box:
        box = Box(start=start, end=end, category=self.category)
        self.boxes.append(box)
        self._trigger_inference()
        return box

    def undo(self) -> Point | Box | None:
        """Remove the most recently created point or box."""
        removed: Point | Box | None = None
        if self.points and self.boxes:
            if self.points[-1].created_at > self.boxes[-1].created_at:
                removed = self.points.pop()
            else:
                removed = self.boxes.pop()
        elif self.points:
            removed = self.points.pop()
        elif self.boxes:
            removed = self.boxes.pop()

        if removed is not None:
            self._after_removal()
        return removed

    def _after_removal(self) -> None:
        if not self.points and not self.boxes:
            self._scheduler.invalidate()
            self.current_segmentation = None
        else:
            self._trigger_inference()

    def reset(self) -> None:
        """Clear prompts and the current segmentation. Layers are untouched."""
        self.points.clear()
        self.boxes.clear()
        self.current_box = None
        self.current_segmentation = None
        self._scheduler.invalidate()

    def commit(self) -> SegmentationLayer | None:
        """Turn the current segmentation into a new layer, then reset."""
        layer = self.current_segmentation
        if layer is None:
            return None

        layer.title = f"Untitled {len(self.layers) + 1}"
        layer.order = len(self.layers)
        self.layers.append(layer)
        self.reset()
        logger.info(f"Committed layer {layer.title} ({layer.id})")
        return layer

    def _trigger_inference(self) -> None:
        if self.image is None:
            logger.warning("No image loaded, skipping inference")
            return
        prompt = build_prompt(self.points, self.boxes, self.image.size, self._scheduler.orchestrator.model_size)
        if prompt is None:
            return
        self._scheduler.submit_segment(prompt, self.image.size)

    # Result delivery

    def process_results(self) -> int:
        """Apply finished inference results on the calling thread.

        Returns:
            Number of results applied.
        """
        results = self._scheduler.drain()
        for result in results:
            self._apply_result(result)
        return len(results)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until queued inference is done, then apply its results."""
        idle = self._scheduler.wait_idle(timeout)
        self.process_results()
        return idle

    def _apply_result(self, result: InferenceResult) -> None:
        if not result.ok:
            self.last_error = result.error
            logger.error(f"{result.kind.value} failed: {result.error}")
            return

        self.last_error = None
        if result.kind != TaskKind.SEGMENT or result.mask is None:
            return
        if not self.points and not self.boxes:
            return

        if self.current_segmentation is not None:
            tint = self.current_segmentation.tint
        else:
            tint = furthest_color([layer.tint for layer in self.layers])
        self.current_segmentation = SegmentationLayer(
            mask=result.mask,
            tint=tint,
            title=f"Untitled {len(self.layers) + 1}",
            order=len(self.layers),
        )

    # Layer edits

    def get_layer(self, layer_id: uuid.UUID) -> SegmentationLayer:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        raise LayerNotFoundError(layer_id)

    def toggle_visibility(self, layer_id: uuid.UUID) -> SegmentationLayer:
        layer = self.get_layer(layer_id)
        layer.visible = not layer.visible
        return layer

    def set_tint(self, layer_id: uuid.UUID, tint: RGB) -> SegmentationLayer:
        """Re-tint a layer's stored mask without re-running inference."""
        layer = self.get_layer(layer_id)
        layer.retint(tint)
        return layer

    def set_selected_tint(self, tint: RGB) -> list[SegmentationLayer]:
        """Re-tint every selected layer."""
        return [self.set_tint(layer_id, tint) for layer_id in self.selected_layer_ids]

    def rename_layer(self, layer_id: uuid.UUID, title: str) -> SegmentationLayer:
        layer = self.get_layer(layer_id)
        layer.title = title
        return layer

    def delete_layer(self, layer_id: uuid.UUID) -> SegmentationLayer:
        layer = self.get_layer(layer_id)
        self.layers.remove(layer)
        if layer_id in self.selected_layer_ids:
            self.selected_layer_ids.remove(layer_id)
        self._reindex()
        return layer

    def move_layer(self, layer_id: uuid.UUID, new_index: int) -> SegmentationLayer:
        """Move a layer to ``new_index`` in compositing order (0 is the bottom)."""
        layer = self.get_layer(layer_id)
        self.layers.remove(layer)
        new_index = max(0, min(new_index, len(self.layers)))
        self.layers.insert(new_index, layer)
        self._reindex()
        return layer

    def _reindex(self) -> None:
        for index, layer in enumerate(self.layers):
            layer.order = index

    def select_layer(self, layer_id: uuid.UUID, additive: bool = True) -> None:
        """Add a layer to the export selection. Selection order is preserved."""
        self.get_layer(layer_id)
        if not additive:
            self.selected_layer_ids.clear()
        if layer_id not in self.selected_layer_ids:
            self.selected_layer_ids.append(layer_id)

    def deselect_layer(self, layer_id: uuid.UUID) -> None:
        if layer_id in self.selected_layer_ids:
            self.selected_layer_ids.remove(layer_id)

    def clear_selection(self) -> None:
        self.selected_layer_ids.clear()

    def selected_layers(self) -> list[SegmentationLayer]:
        """Selected layers in selection order."""
        return [self.get_layer(layer_id) for layer_id in self.selected_layer_ids]

    def visible_layers(self) -> list[SegmentationLayer]:
        """Visible layers bottom to top."""
        return [layer for layer in self.layers if layer.visible]

    # Renderer snapshots

    def describe_layers(self) -> list[LayerInfo]:
        return [
            LayerInfo(
                id=layer.id,
                title=layer.title,
                tint=layer.tint,
                visible=layer.visible,
                order=layer.order,
                sequence=layer.sequence,
                width=layer.size[0],
                height=layer.size[1],
            )
            for layer in self.layers
        ]

    def describe(self) -> SessionInfo:
        return SessionInfo(
            tool=self.tool,
            category=self.category,
            engine_state=self._scheduler.orchestrator.state,
            points=[PromptPointInfo.model_validate(point) for point in self.points],
            box_count=len(self.boxes),
            has_current_segmentation=self.current_segmentation is not None,
            layers=self.describe_layers(),
            selected_layer_ids=list(self.selected_layer_ids),
            last_error=str(self.last_error) if self.last_error else None,
        )
