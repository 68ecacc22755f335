from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from PIL import Image

from .config import MASK_THRESHOLD
from .errors import InvalidImageError
from .grid import SegmentationGrid
from .interpolate import Interpolation, probability_mask
from .io import as_rgb_array


@dataclass(frozen=True)
class CompositeImages:
    visualization: np.ndarray
    silhouette: np.ndarray
    cutout: np.ndarray
    mask: np.ndarray


def _resolve_mask(
    grid: SegmentationGrid,
    orig: np.ndarray,
    policy: Interpolation,
    mask: Optional[np.ndarray],
    workers: Optional[int] = None,
) -> np.ndarray:
    h, w = orig.shape[:2]
    if (w, h) != (grid.orig_width, grid.orig_height):
        raise InvalidImageError(
            f"Image size {w}x{h} does not match grid source size {grid.orig_width}x{grid.orig_height}"
        )
    if mask is None:
        return probability_mask(grid, policy, workers=workers)
    if mask.shape != (h, w):
        raise InvalidImageError(f"Mask shape {mask.shape} does not match image {(h, w)}")
    return mask


def mask_to_gray(mask: np.ndarray) -> np.ndarray:
    """
    Probability mask -> gray RGB uint8, rounding half up (0.5 -> 128).
    """
    shade = np.floor(np.clip(mask, 0.0, 1.0).astype(np.float64) * 255.0 + 0.5).astype(np.uint8)
    return np.repeat(shade[:, :, None], 3, axis=2)


def _keep_where(orig: np.ndarray, keep: np.ndarray) -> np.ndarray:
    out = np.zeros_like(orig)
    out[keep] = orig[keep]
    return out


def visualize(
    grid: SegmentationGrid,
    orig: Union[np.ndarray, Image.Image],
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    *,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Grayscale rendering of the foreground probability; `orig` only sets the size."""
    rgb = as_rgb_array(orig)
    return mask_to_gray(_resolve_mask(grid, rgb, policy, mask))


def silhouette(
    grid: SegmentationGrid,
    orig: Union[np.ndarray, Image.Image],
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    threshold: float = MASK_THRESHOLD,
    *,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Foreground pixels (probability > threshold) on black."""
    rgb = as_rgb_array(orig)
    m = _resolve_mask(grid, rgb, policy, mask)
    return _keep_where(rgb, m > float(threshold))


def cutout(
    grid: SegmentationGrid,
    orig: Union[np.ndarray, Image.Image],
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    threshold: float = MASK_THRESHOLD,
    *,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Background pixels (probability <= threshold) with the foreground blacked out."""
    rgb = as_rgb_array(orig)
    m = _resolve_mask(grid, rgb, policy, mask)
    return _keep_where(rgb, m <= float(threshold))


def composite(
    grid: SegmentationGrid,
    orig: Union[np.ndarray, Image.Image],
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    threshold: float = MASK_THRESHOLD,
    workers: Optional[int] = None,
) -> CompositeImages:
    """
    All three derived images from a single interpolation pass.
    """
    rgb = as_rgb_array(orig)
    m = _resolve_mask(grid, rgb, policy, None, workers=workers)
    return CompositeImages(
        visualization=visualize(grid, rgb, policy, mask=m),
        silhouette=silhouette(grid, rgb, policy, threshold, mask=m),
        cutout=cutout(grid, rgb, policy, threshold, mask=m),
        mask=m,
    )


def foreground_fraction(mask: np.ndarray, threshold: float = MASK_THRESHOLD) -> float:
    if mask.size == 0:
        return 0.0
    return float((mask > float(threshold)).mean())
