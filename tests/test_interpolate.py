from __future__ import annotations

import numpy as np
import pytest

from bodypix_mask.errors import OutOfBoundsError
from bodypix_mask.grid import SegmentationGrid
from bodypix_mask.interpolate import Interpolation, probability_mask, sample

STRIDE = 16


def _grid(gw: int = 5, gh: int = 4, orig_w: int = 64, orig_h: int = 48, seed: int = 0) -> SegmentationGrid:
    # 64x48 padded to 65x49 yields a 5x4 grid at stride 16.
    rng = np.random.default_rng(seed)
    probs = rng.uniform(0.01, 0.99, size=(gh, gw)).astype(np.float32)
    return SegmentationGrid.from_probabilities(STRIDE, orig_w, orig_h, probs)


def test_no_interpolation_reads_offset_cell():
    grid = _grid()
    assert sample(grid, 0, 0, Interpolation.NONE) == grid.at(1, 1)
    assert sample(grid, 15, 15, Interpolation.NONE) == grid.at(1, 1)
    assert sample(grid, 17, 33, Interpolation.NONE) == grid.at(2, 3)


def test_no_interpolation_is_idempotent():
    grid = _grid()
    first = sample(grid, 40, 20, Interpolation.NONE)
    assert sample(grid, 40, 20, Interpolation.NONE) == first


def test_no_interpolation_clamps_past_last_cell():
    # 4x3 grid: the last image block would read cell 1 + 63 // 16 = 4
    grid = _grid(gw=4, gh=3)
    assert sample(grid, 63, 47, Interpolation.NONE) == grid.at(3, 2)


def test_linear_mean_is_exact_on_grid_aligned_pixels():
    grid = _grid()
    for x in (0, 16, 32, 48):
        for y in (0, 16, 32):
            assert sample(grid, x, y) == pytest.approx(grid.at(x // STRIDE, y // STRIDE), abs=1e-7)


def test_linear_mean_matches_bilinear_formula():
    grid = _grid()
    x, y = 20, 5
    wx1 = (STRIDE - 4) / STRIDE
    wy1 = (STRIDE - 5) / STRIDE
    expected = wx1 * (wy1 * grid.at(1, 0) + (1 - wy1) * grid.at(1, 1)) + (1 - wx1) * (
        wy1 * grid.at(2, 0) + (1 - wy1) * grid.at(2, 1)
    )
    assert sample(grid, x, y) == pytest.approx(expected, abs=1e-7)


def test_linear_mean_is_a_convex_combination():
    grid = _grid(seed=3)
    v = grid.as_2d()
    for x in range(0, 64, 3):
        for y in range(0, 48, 5):
            x1 = min(x // STRIDE, grid.last_column)
            y1 = min(y // STRIDE, grid.last_row)
            x2 = min(x1 + 1, grid.last_column)
            y2 = min(y1 + 1, grid.last_row)
            neighbours = [v[y1, x1], v[y2, x1], v[y1, x2], v[y2, x2]]
            p = sample(grid, x, y)
            assert min(neighbours) - 1e-6 <= p <= max(neighbours) + 1e-6


def test_linear_mean_clamps_at_last_column_and_row():
    grid = _grid(gw=4, gh=3)
    v = grid.as_2d()
    # x in the last stride block: x1 == x2 == 3, so only rows mix.
    for x in range(48, 64):
        p = sample(grid, x, 0)
        lo, hi = sorted((float(v[0, 3]), float(v[1, 3])))
        assert lo - 1e-6 <= p <= hi + 1e-6
    # bottom-right corner collapses onto one cell
    assert sample(grid, 63, 47) == pytest.approx(grid.at(3, 2), abs=1e-7)


def test_linear_mean_is_continuous_across_the_clamped_edge():
    grid = _grid(gw=4, gh=3, seed=7)
    mask = probability_mask(grid)
    spread = float(grid.values.max() - grid.values.min())
    assert np.abs(np.diff(mask, axis=1)).max() <= spread + 1e-6
    assert np.abs(np.diff(mask, axis=0)).max() <= spread + 1e-6


@pytest.mark.parametrize("x,y", [(64, 0), (0, 48), (-1, 0), (0, -1)])
@pytest.mark.parametrize("policy", list(Interpolation))
def test_sample_rejects_pixels_outside_the_image(x, y, policy):
    with pytest.raises(OutOfBoundsError):
        sample(_grid(), x, y, policy)


@pytest.mark.parametrize("policy", list(Interpolation))
def test_probability_mask_matches_per_pixel_sampling(policy):
    grid = _grid(gw=4, gh=3, seed=11)
    mask = probability_mask(grid, policy)
    assert mask.shape == (48, 64)
    assert mask.dtype == np.float64
    for y in range(48):
        for x in range(64):
            assert mask[y, x] == pytest.approx(sample(grid, x, y, policy), abs=1e-6)


@pytest.mark.parametrize("policy", list(Interpolation))
def test_threaded_mask_equals_sequential(policy):
    grid = _grid(seed=5)
    assert np.array_equal(probability_mask(grid, policy, workers=3), probability_mask(grid, policy))


def test_sampling_does_not_touch_the_grid():
    grid = _grid()
    before = grid.values.copy()
    probability_mask(grid, workers=2)
    sample(grid, 10, 10)
    assert np.array_equal(grid.values, before)
