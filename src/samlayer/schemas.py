"""Pydantic schemas describing session state for an external renderer."""

import uuid

from pydantic import BaseModel, ConfigDict

from samlayer.enums import Category, EngineState, Tool


class LayerInfo(BaseModel):
    """Schema for a committed segmentation layer."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    tint: tuple[int, int, int]
    visible: bool
    order: int
    sequence: int
    width: int
    height: int


class PromptPointInfo(BaseModel):
    """Schema for a prompt point in original-image coordinates."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    x: float
    y: float
    category: Category


class SessionInfo(BaseModel):
    """Schema for a snapshot of the annotation session."""

    tool: Tool
    category: Category
    engine_state: EngineState
    points: list[PromptPointInfo]
    box_count: int
    has_current_segmentation: bool
    layers: list[LayerInfo]
    selected_layer_ids: list[uuid.UUID]
    last_error: str | None = None
