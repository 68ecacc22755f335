from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

import numpy as np

from .errors import InvalidImageError, OutOfBoundsError, ShapeMismatchError

logger = logging.getLogger(__name__)

# Nearest float32 values strictly inside (0, 1).
_P_MIN = np.nextafter(np.float32(0.0), np.float32(1.0))
_P_MAX = np.nextafter(np.float32(1.0), np.float32(0.0))


def sigmoid(v: Union[float, np.ndarray]) -> Union[np.float32, np.ndarray]:
    """
    Logistic activation 1 / (1 + exp(-v)), evaluated without overflow and kept
    strictly inside (0, 1) after the cast to float32.
    """
    x = np.asarray(v, dtype=np.float64)
    p = np.exp(-np.logaddexp(0.0, -x)).astype(np.float32)
    p = np.clip(p, _P_MIN, _P_MAX)
    if p.ndim == 0:
        return np.float32(p)
    return p


@dataclass(frozen=True)
class SegmentationGrid:
    """
    Sigmoid-activated segmentation map at the network's native resolution.

    `values` is one contiguous, read-only float32 buffer indexed
    `grid_width * y + x`.
    """

    orig_width: int
    orig_height: int
    grid_width: int
    grid_height: int
    stride: int
    values: np.ndarray

    def __post_init__(self) -> None:
        if int(self.orig_width) <= 0 or int(self.orig_height) <= 0:
            raise InvalidImageError(f"Invalid image size: {(self.orig_height, self.orig_width)}")
        for name in ("grid_width", "grid_height", "stride"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.values.ndim != 1 or self.values.size != self.grid_width * self.grid_height:
            raise ValueError(
                f"Grid buffer has shape {self.values.shape}, expected ({self.grid_width * self.grid_height},)"
            )
        if not (np.all(self.values >= 0.0) and np.all(self.values <= 1.0)):
            raise ValueError("Grid values must be probabilities in [0, 1].")

    @classmethod
    def from_probabilities(cls, stride: int, orig_width: int, orig_height: int, probs: Any) -> "SegmentationGrid":
        """
        Build a grid from an already-activated (grid_height, grid_width) array.
        """
        p = np.asarray(probs, dtype=np.float32)
        if p.ndim != 2:
            raise ShapeMismatchError(f"Expected 2D probability map, got shape={p.shape}")
        gh, gw = p.shape
        values = np.ascontiguousarray(p).reshape(-1).copy()
        values.setflags(write=False)
        return cls(
            orig_width=int(orig_width),
            orig_height=int(orig_height),
            grid_width=int(gw),
            grid_height=int(gh),
            stride=int(stride),
            values=values,
        )

    @classmethod
    def from_raw_logits(cls, stride: int, orig_width: int, orig_height: int, raw: Any) -> "SegmentationGrid":
        """
        Activate an engine output of shape (1, grid_height, grid_width, 1).

        Grid dimensions come from the tensor shape; they are never recomputed
        from stride and image size. `raw` may be a numpy array or a CPU tensor.
        """
        logits = np.asarray(raw, dtype=np.float32)
        if logits.ndim != 4 or logits.shape[0] != 1 or logits.shape[3] != 1:
            raise ShapeMismatchError(
                f"Expected segmentation logits (1,H,W,1), got shape={tuple(logits.shape)}"
            )
        gh, gw = int(logits.shape[1]), int(logits.shape[2])
        if gh == 0 or gw == 0:
            raise ShapeMismatchError(f"Segmentation logits are empty: shape={tuple(logits.shape)}")

        logger.debug("Segmentation grid %dx%d (stride %d) for %dx%d image", gw, gh, stride, orig_width, orig_height)
        return cls.from_probabilities(stride, orig_width, orig_height, sigmoid(logits[0, :, :, 0]))

    def as_2d(self) -> np.ndarray:
        """Read-only (grid_height, grid_width) view of the buffer."""
        return self.values.reshape(self.grid_height, self.grid_width)

    def at(self, x: int, y: int) -> float:
        """Bounds-checked read of grid cell (column x, row y)."""
        if not (0 <= x < self.grid_width and 0 <= y < self.grid_height):
            raise OutOfBoundsError(
                f"Grid cell ({x}, {y}) outside {self.grid_width}x{self.grid_height} grid"
            )
        return float(self.values[self.grid_width * y + x])

    @property
    def last_column(self) -> int:
        return self.grid_width - 1

    @property
    def last_row(self) -> int:
        return self.grid_height - 1
