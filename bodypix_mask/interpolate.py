from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from .config import GRID_CELL_OFFSET
from .errors import OutOfBoundsError
from .grid import SegmentationGrid


class Interpolation(Enum):
    NONE = "none"
    LINEAR_MEAN = "linear_mean"


def _check_bounds(grid: SegmentationGrid, x: int, y: int) -> None:
    if not (0 <= x < grid.orig_width and 0 <= y < grid.orig_height):
        raise OutOfBoundsError(
            f"Pixel ({x}, {y}) outside {grid.orig_width}x{grid.orig_height} image"
        )


def _nearest_cells(coords: np.ndarray, stride: int, last: int) -> np.ndarray:
    return np.minimum(GRID_CELL_OFFSET + coords // stride, last)


def _linear_cells(coords: np.ndarray, stride: int, last: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Neighbour cells and weights along one axis. The second neighbour collapses
    onto the first at the last valid cell.
    """
    c1 = np.minimum(coords // stride, last)
    c2 = np.where(c1 >= last, c1, c1 + 1)
    w1 = (stride - coords % stride) / float(stride)
    return c1, c2, w1, 1.0 - w1


def _sample_nearest(grid: SegmentationGrid, x: int, y: int) -> float:
    sx = min(GRID_CELL_OFFSET + x // grid.stride, grid.last_column)
    sy = min(GRID_CELL_OFFSET + y // grid.stride, grid.last_row)
    return grid.at(sx, sy)


def _sample_linear_mean(grid: SegmentationGrid, x: int, y: int) -> float:
    s = grid.stride
    x1 = min(x // s, grid.last_column)
    x2 = x1 if x1 >= grid.last_column else x1 + 1
    y1 = min(y // s, grid.last_row)
    y2 = y1 if y1 >= grid.last_row else y1 + 1

    wx1 = (s - x % s) / float(s)
    wx2 = 1.0 - wx1
    wy1 = (s - y % s) / float(s)
    wy2 = 1.0 - wy1

    mean_x1 = wy1 * grid.at(x1, y1) + wy2 * grid.at(x1, y2)
    mean_x2 = wy1 * grid.at(x2, y1) + wy2 * grid.at(x2, y2)
    return wx1 * mean_x1 + wx2 * mean_x2


def _plane_nearest(grid: SegmentationGrid, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    v = grid.as_2d()
    sy = _nearest_cells(rows, grid.stride, grid.last_row)
    sx = _nearest_cells(cols, grid.stride, grid.last_column)
    return v[np.ix_(sy, sx)].astype(np.float64)


def _plane_linear_mean(grid: SegmentationGrid, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    v = grid.as_2d().astype(np.float64)
    y1, y2, wy1, wy2 = _linear_cells(rows, grid.stride, grid.last_row)
    x1, x2, wx1, wx2 = _linear_cells(cols, grid.stride, grid.last_column)

    wy1 = wy1[:, None]
    wy2 = wy2[:, None]
    mean_x1 = wy1 * v[np.ix_(y1, x1)] + wy2 * v[np.ix_(y2, x1)]
    mean_x2 = wy1 * v[np.ix_(y1, x2)] + wy2 * v[np.ix_(y2, x2)]
    return wx1[None, :] * mean_x1 + wx2[None, :] * mean_x2


_SAMPLERS: Dict[Interpolation, Callable[[SegmentationGrid, int, int], float]] = {
    Interpolation.NONE: _sample_nearest,
    Interpolation.LINEAR_MEAN: _sample_linear_mean,
}

_PLANES: Dict[Interpolation, Callable[[SegmentationGrid, np.ndarray, np.ndarray], np.ndarray]] = {
    Interpolation.NONE: _plane_nearest,
    Interpolation.LINEAR_MEAN: _plane_linear_mean,
}


def sample(
    grid: SegmentationGrid,
    x: int,
    y: int,
    policy: Interpolation = Interpolation.LINEAR_MEAN,
) -> float:
    """
    Foreground probability of full-resolution pixel (x, y).

    Policies:
      - NONE: the grid cell `1 + coord // stride` on each axis
      - LINEAR_MEAN: bilinear mix of the 2x2 cells around (x / stride, y / stride)
    Neighbours past the last grid row/column are clamped to it.
    """
    x = int(x)
    y = int(y)
    _check_bounds(grid, x, y)
    return float(_SAMPLERS[policy](grid, x, y))


def probability_mask(
    grid: SegmentationGrid,
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    workers: Optional[int] = None,
) -> np.ndarray:
    """
    Evaluate `sample` for every pixel of the original image.

    Returns float64 (orig_height, orig_width), the same values `sample`
    reports, so thresholds agree pixel for pixel. With `workers > 1` the rows are
    split into bands evaluated on a thread pool; the grid is read-only so no
    locking is needed and the result is identical to the sequential path.
    """
    plane = _PLANES[policy]
    cols = np.arange(grid.orig_width, dtype=np.int64)
    rows = np.arange(grid.orig_height, dtype=np.int64)

    if workers is None or workers <= 1 or grid.orig_height < 2:
        return plane(grid, rows, cols)

    bands = [b for b in np.array_split(rows, min(int(workers), grid.orig_height)) if b.size]
    out = np.empty((grid.orig_height, grid.orig_width), dtype=np.float64)
    with ThreadPoolExecutor(max_workers=len(bands)) as pool:
        for band, values in zip(bands, pool.map(lambda b: plane(grid, b, cols), bands)):
            out[band[0] : band[-1] + 1] = values
    return out
