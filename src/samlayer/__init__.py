"""Interactive prompt-driven image segmentation with layers."""

__version__ = "0.1.0"
