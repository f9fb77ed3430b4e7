"""Exception taxonomy for segmentation and layer operations."""


class SamLayerError(Exception):
    """Base class for all samlayer errors."""


class ModelNotLoadedError(SamLayerError, RuntimeError):
    """The inference engine is not in the READY state."""


class MissingEncodingError(SamLayerError, RuntimeError):
    """Mask decoding was attempted without a matching image and prompt encoding."""


class ResizeFailureError(SamLayerError, RuntimeError):
    """A geometric post-processing operation could not be performed."""


class InvalidArgumentError(SamLayerError, ValueError):
    """Malformed user input such as point lists or mismatched types."""


class LayerNotFoundError(SamLayerError, KeyError):
    """No committed layer exists with the requested id."""
