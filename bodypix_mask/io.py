from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

import cv2
import numpy as np
from PIL import Image

from .errors import InvalidImageError


def load_image(path: str) -> np.ndarray:
    """
    Load an image as RGB uint8 ndarray of shape (H, W, 3).
    """
    bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if bgr is None:
        raise FileNotFoundError(f"Could not read image: {path}")
    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    if rgb.dtype != np.uint8:
        rgb = rgb.astype(np.uint8, copy=False)
    return rgb


def _flatten_alpha_to_black(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        comp = Image.alpha_composite(bg, rgba)
        return comp.convert("RGB")
    return img.convert("RGB")


def as_rgb_array(image: Union[np.ndarray, Image.Image]) -> np.ndarray:
    """
    Accept a PIL image or an (H, W, 3) uint8 array and return the array form.
    """
    if isinstance(image, Image.Image):
        image = np.array(_flatten_alpha_to_black(image), dtype=np.uint8)
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise InvalidImageError(f"Expected RGB image (H,W,3), got shape={arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidImageError(f"Invalid image size: {arr.shape[:2]}")
    if arr.dtype != np.uint8:
        raise InvalidImageError(f"Expected uint8 RGB image, got dtype={arr.dtype}")
    return arr


def save_png(img: np.ndarray, path: str) -> None:
    """
    Save an RGB uint8 array as lossless PNG.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(as_rgb_array(img)).save(str(p), format="PNG", optimize=False)


def write_json(path: str, data: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
