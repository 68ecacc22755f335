from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional, Protocol

import cv2
import numpy as np
import torch

from .catalog import ModelDescriptor
from .config import INPUT_NODE, OUTPUT_NODE, get_models_dir

logger = logging.getLogger(__name__)


class InferenceEngine(Protocol):
    """
    External network runner: NHWC float32 (1, H, W, 3) in, raw logits
    (1, gridH, gridW, 1) out. One call in flight per instance.
    """

    def __call__(self, x: np.ndarray) -> Any: ...


def get_device() -> torch.device:
    """
    BODYPIX_DEVICE wins; otherwise MPS, then CUDA, then CPU.
    """
    requested = os.getenv("BODYPIX_DEVICE")
    if requested:
        return torch.device(requested)
    if torch.backends.mps.is_available():
        return torch.device("mps")
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


class FrozenGraphEngine:
    """
    Runs a converted BodyPix TensorFlow frozen graph (.pb) through OpenCV DNN.
    """

    def __init__(self, model_path: str, input_node: str = INPUT_NODE, output_node: str = OUTPUT_NODE):
        if not os.path.exists(model_path):
            raise FileNotFoundError(f"Model not found: {model_path}")
        try:
            self.net = cv2.dnn.readNetFromTensorflow(model_path)
        except cv2.error as e:
            raise RuntimeError(
                f"Failed to load frozen graph {model_path}. Convert the TF.js model first with get_model.py."
            ) from e
        self.input_node = input_node
        self.output_node = output_node

    def __call__(self, x: np.ndarray) -> np.ndarray:
        # OpenCV DNN blobs are NCHW.
        blob = np.ascontiguousarray(np.transpose(x, (0, 3, 1, 2)), dtype=np.float32)
        self.net.setInput(blob, self.input_node)
        out = self.net.forward(self.output_node)
        if out.ndim == 4:
            out = np.transpose(out, (0, 2, 3, 1))
        return out


class TorchScriptEngine:
    """
    Runs a TorchScript export of a BodyPix network that takes and returns NHWC tensors.
    """

    def __init__(self, model: torch.nn.Module, device: torch.device):
        self.model = model
        self.device = device

    def __call__(self, x: np.ndarray) -> torch.Tensor:
        t = torch.from_numpy(np.ascontiguousarray(x, dtype=np.float32)).to(self.device)
        return forward_model(self.model, t)


def load_torchscript_model(model_path: str, device: Optional[torch.device] = None) -> torch.nn.Module:
    """
    Load a TorchScript module saved via torch.jit.save.

    The archive is loaded on CPU first, cast to float32, then moved to `device`.
    """
    if device is None:
        device = get_device()

    if not os.path.exists(model_path):
        raise FileNotFoundError(f"Model not found: {model_path}")

    try:
        model = torch.jit.load(model_path, map_location="cpu")
    except Exception as e:  # noqa: BLE001 - surface a helpful error
        raise RuntimeError(
            "Failed to load model. Expected a TorchScript module saved with torch.jit.save()."
        ) from e

    model.eval()
    for p in model.parameters():
        p.requires_grad_(False)
    model = model.to(dtype=torch.float32)
    model.to(device)
    return model


def forward_model(model: torch.nn.Module, x: torch.Tensor) -> Any:
    with torch.no_grad():
        return model(x)


def resolve_weights_path(descriptor: ModelDescriptor, weights_path: Optional[str] = None) -> str:
    if weights_path:
        return weights_path
    return str(Path(get_models_dir()) / descriptor.weights_file)


def load_engine(descriptor: ModelDescriptor, weights_path: Optional[str] = None) -> InferenceEngine:
    """
    Pick an engine by file extension: TorchScript for .pt/.pth/.torchscript,
    OpenCV DNN for everything else (frozen .pb graphs).
    """
    path = resolve_weights_path(descriptor, weights_path)
    suffix = Path(path).suffix.lower()
    logger.info("Loading %s from %s", descriptor.display_name, path)
    if suffix in (".pt", ".pth", ".torchscript"):
        device = get_device()
        return TorchScriptEngine(load_torchscript_model(path, device=device), device)
    return FrozenGraphEngine(path)
