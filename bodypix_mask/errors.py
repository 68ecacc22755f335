from __future__ import annotations


class BodyPixError(Exception):
    """Base class for every failure raised by the mask pipeline."""


class InvalidImageError(BodyPixError, ValueError):
    """Input image is empty or not an (H, W, 3) RGB array."""


class ShapeMismatchError(BodyPixError, ValueError):
    """Engine output does not have the expected (1, H, W, 1) layout."""


class OutOfBoundsError(BodyPixError, IndexError):
    """A coordinate lies outside the image (or grid) it was sampled from."""


class EngineExecutionError(BodyPixError, RuntimeError):
    """The external inference engine failed or returned unusable values."""
