from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from .catalog import Architecture
from .config import MOBILENET_SCALE, PAD_PIXELS, RESNET_MEAN_RGB
from .io import as_rgb_array


@dataclass(frozen=True)
class NormalizedTensor:
    """
    Flat float32 network input, row-major (y outer, x inner), channels R,G,B.
    """

    values: np.ndarray
    width: int
    height: int

    def __post_init__(self) -> None:
        expected = self.width * self.height * 3
        if self.values.ndim != 1 or self.values.size != expected:
            raise ValueError(
                f"Normalized tensor has {self.values.size} values, expected {expected} "
                f"for {self.width}x{self.height}x3"
            )

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (1, self.height, self.width, 3)

    def to_nhwc(self) -> np.ndarray:
        return self.values.reshape(self.shape)


def _normalize_resnet(x: np.ndarray) -> np.ndarray:
    return x - np.array(RESNET_MEAN_RGB, dtype=np.float32).reshape(1, 1, 3)


def _normalize_mobilenet(x: np.ndarray) -> np.ndarray:
    return x / np.float32(MOBILENET_SCALE) - np.float32(1.0)


_NORMALIZERS: Dict[Architecture, Callable[[np.ndarray], np.ndarray]] = {
    Architecture.RESNET: _normalize_resnet,
    Architecture.MOBILENET: _normalize_mobilenet,
}


def pad_edge(img: np.ndarray, pad: int = PAD_PIXELS) -> np.ndarray:
    """
    Grow the image by `pad` pixels on the right and bottom, replicating the last
    column / row. Target pixel (x, y) reads source (min(x, W-1), min(y, H-1)).
    """
    if pad < 0:
        raise ValueError(f"pad must be >= 0, got {pad}")
    if pad == 0:
        return img
    return cv2.copyMakeBorder(np.ascontiguousarray(img), 0, pad, 0, pad, cv2.BORDER_REPLICATE)


def normalize(
    image: Union[np.ndarray, Image.Image],
    architecture: Architecture,
    pad: int = PAD_PIXELS,
) -> NormalizedTensor:
    """
    Convert an RGB image into the flat float32 buffer fed to the inference engine.

    The tensor is (H + pad) x (W + pad); values are centered per architecture:
      - ResNet: subtract the per-channel mean, no scaling
      - MobileNet: map 0..255 to -1..1
    """
    rgb = as_rgb_array(image)
    padded = pad_edge(rgb, pad)
    target_h, target_w = padded.shape[:2]

    try:
        normalizer = _NORMALIZERS[architecture]
    except KeyError:
        raise ValueError(f"Unsupported architecture: {architecture!r}") from None

    x = normalizer(padded.astype(np.float32))
    values = np.ascontiguousarray(x, dtype=np.float32).reshape(-1)
    values.setflags(write=False)
    return NormalizedTensor(values=values, width=int(target_w), height=int(target_h))

