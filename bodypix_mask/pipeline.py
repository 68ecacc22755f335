from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .catalog import ModelDescriptor, get_model_descriptor
from .composite import CompositeImages, composite, foreground_fraction
from .config import MASK_THRESHOLD
from .contracts import GridInfo, RunMetadata
from .grid import SegmentationGrid
from .inference import predict_grid
from .interpolate import Interpolation
from .io import as_rgb_array, load_image, save_png, write_json
from .model import InferenceEngine, load_engine
from .preprocess import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTimings:
    preprocess_s: float
    inference_s: float
    interpolate_s: float
    save_s: float
    total_s: float


def segment_image(
    image: Union[np.ndarray, Image.Image],
    engine: InferenceEngine,
    descriptor: ModelDescriptor,
) -> SegmentationGrid:
    """
    Preprocess -> inference -> sigmoid. Returns a fresh read-only grid.
    """
    rgb = as_rgb_array(image)
    h, w = rgb.shape[:2]
    x = normalize(rgb, descriptor.architecture)
    return predict_grid(engine, x, descriptor, w, h)


def output_paths(image_path: str, out_dir: str) -> dict:
    stem = Path(image_path).stem
    root = Path(out_dir)
    return {
        "mask": str(root / f"{stem}_mask.png"),
        "silhouette": str(root / f"{stem}_silhouette.png"),
        "cutout": str(root / f"{stem}_cutout.png"),
        "metadata": str(root / f"{stem}.json"),
    }


def _discard(paths: Iterable[str]) -> None:
    for p in paths:
        Path(p).unlink(missing_ok=True)


def process_image(
    image_path: str,
    out_dir: str,
    engine: InferenceEngine,
    descriptor: ModelDescriptor,
    *,
    model_label: str = "",
    policy: Interpolation = Interpolation.LINEAR_MEAN,
    threshold: float = MASK_THRESHOLD,
    workers: Optional[int] = None,
) -> Tuple[CompositeImages, StageTimings]:
    """
    Deterministic, linear pipeline:
      1) Load image
      2) Preprocess
      3) Inference + activation
      4) Interpolate + composite
      5) Save mask / silhouette / cutout + metadata JSON
    Any stage failing aborts the whole call and leaves no outputs behind:
    files are written under staged names and renamed only after all succeed.
    """
    t0 = time.perf_counter()

    # Preprocess
    t_pre0 = time.perf_counter()
    rgb = load_image(image_path)
    h, w = rgb.shape[:2]
    x = normalize(rgb, descriptor.architecture)
    t_pre1 = time.perf_counter()

    # Inference
    t_inf0 = time.perf_counter()
    grid = predict_grid(engine, x, descriptor, w, h)
    t_inf1 = time.perf_counter()

    # Interpolate + composite
    t_int0 = time.perf_counter()
    images = composite(grid, rgb, policy, threshold, workers=workers)
    t_int1 = time.perf_counter()

    # Save: stage every output, publish only once all of them are written
    t_save0 = time.perf_counter()
    paths = output_paths(image_path, out_dir)
    staged = {key: f"{path}.partial" for key, path in paths.items()}
    try:
        save_png(images.visualization, staged["mask"])
        save_png(images.silhouette, staged["silhouette"])
        save_png(images.cutout, staged["cutout"])
        t_save1 = time.perf_counter()

        t1 = time.perf_counter()
        timings = StageTimings(
            preprocess_s=t_pre1 - t_pre0,
            inference_s=t_inf1 - t_inf0,
            interpolate_s=t_int1 - t_int0,
            save_s=t_save1 - t_save0,
            total_s=t1 - t0,
        )

        meta = RunMetadata(
            source_path=str(Path(image_path).resolve()),
            model=model_label or descriptor.display_name,
            architecture=descriptor.architecture.value,
            orig_width=w,
            orig_height=h,
            grid=GridInfo(stride=grid.stride, grid_width=grid.grid_width, grid_height=grid.grid_height),
            interpolation=policy.value,
            threshold=float(threshold),
            foreground_fraction=foreground_fraction(images.mask, threshold),
            outputs={k: v for k, v in paths.items() if k != "metadata"},
            timings_s=asdict(timings),
        )
        payload = meta.model_dump() if hasattr(meta, "model_dump") else meta.dict()
        write_json(staged["metadata"], payload)
    except Exception:
        _discard(staged.values())
        raise

    for key, tmp in staged.items():
        os.replace(tmp, paths[key])

    logger.debug(
        "%s: grid %dx%d, foreground %.3f",
        Path(image_path).name,
        grid.grid_width,
        grid.grid_height,
        meta.foreground_fraction,
    )
    return images, timings


def load_model_default(label: str, weights_path: Optional[str] = None) -> Tuple[InferenceEngine, ModelDescriptor]:
    descriptor = get_model_descriptor(label)
    return load_engine(descriptor, weights_path), descriptor
