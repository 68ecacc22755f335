from __future__ import annotations

import logging

import numpy as np
import torch

from .catalog import ModelDescriptor
from .errors import EngineExecutionError
from .grid import SegmentationGrid
from .model import InferenceEngine
from .preprocess import NormalizedTensor

logger = logging.getLogger(__name__)


def _extract_primary_output(y):
    """
    Engines may return:
      - a single tensor / array
      - (tensor, ...) tuple/list (segments are taken from the first entry)
      - dict keyed by output node name
    """
    if isinstance(y, (torch.Tensor, np.ndarray)):
        return y
    if isinstance(y, (list, tuple)) and len(y) > 0:
        return y[0]
    if isinstance(y, dict):
        for k in ("float_segments", "segments", "logits"):
            v = y.get(k, None)
            if v is not None:
                return v
        return next(iter(y.values()))
    return y


def _to_numpy(y) -> np.ndarray:
    if isinstance(y, torch.Tensor):
        return y.detach().to("cpu").float().numpy()
    return np.asarray(y, dtype=np.float32)


def predict_logits(engine: InferenceEngine, x: NormalizedTensor) -> np.ndarray:
    """
    Run the engine once and return its raw logits as float32 numpy.

    Any engine failure is re-raised as EngineExecutionError; the output shape is
    checked later, when the grid is built.
    """
    logger.debug("Engine input shape (NHWC): %s", x.shape)
    try:
        y = engine(x.to_nhwc())
        logits = _to_numpy(_extract_primary_output(y))
    except Exception as e:  # noqa: BLE001 - engine is opaque
        raise EngineExecutionError(f"Inference failed: {type(e).__name__}: {e}") from e

    if not np.isfinite(logits).all():
        raise EngineExecutionError("Non-finite values detected in segmentation logits.")
    logger.debug("Engine output shape: %s", logits.shape)
    return logits


def predict_grid(
    engine: InferenceEngine,
    x: NormalizedTensor,
    descriptor: ModelDescriptor,
    orig_width: int,
    orig_height: int,
) -> SegmentationGrid:
    """Forward pass followed by sigmoid activation at grid resolution."""
    logits = predict_logits(engine, x)
    return SegmentationGrid.from_raw_logits(descriptor.stride, orig_width, orig_height, logits)
