"""Shared enums for the application."""

import enum


class Category(enum.IntEnum):
    """Prompt category. The integer value is the label fed to the prompt encoder."""

    BACKGROUND = 0
    FOREGROUND = 1
    BOX_ORIGIN = 2
    BOX_END = 3

    @property
    def description(self) -> str:
        """Human readable name."""
        return self.name.replace("_", " ").title()


class Tool(str, enum.Enum):
    """Interaction tool determining how gestures are interpreted."""

    SELECTOR = "selector"
    POINT = "point"
    BOX = "box"
    ERASER = "eraser"


class EngineState(str, enum.Enum):
    """Lifecycle of the inference orchestrator."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class TaskKind(str, enum.Enum):
    """Kind of work item handled by the inference scheduler."""

    LOAD_MODEL = "load_model"
    ENCODE_IMAGE = "encode_image"
    SEGMENT = "segment"
