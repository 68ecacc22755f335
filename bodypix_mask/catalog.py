from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class Architecture(Enum):
    MOBILENET = "mobilenet"
    RESNET = "resnet"


@dataclass(frozen=True)
class ModelDescriptor:
    """One pretrained BodyPix variant."""

    display_name: str
    weights_file: str
    stride: int
    architecture: Architecture
    # Directory under the TF.js model bucket, e.g. "bodypix/resnet50/float".
    remote_path: str = ""

    def __post_init__(self) -> None:
        if self.stride <= 0:
            raise ValueError(f"stride must be positive, got {self.stride}")

    @property
    def manifest_name(self) -> str:
        return f"model-stride{self.stride}.json"


def _entry(remote_path: str, stride: int, architecture: Architecture, display_name: str) -> ModelDescriptor:
    weights_file = f"{remote_path.replace('/', '_')}-stride{stride}.pb"
    return ModelDescriptor(
        display_name=display_name,
        weights_file=weights_file,
        stride=stride,
        architecture=architecture,
        remote_path=remote_path,
    )


MODEL_CATALOG: Dict[str, ModelDescriptor] = {
    "resnet50-stride16": _entry("bodypix/resnet50/float", 16, Architecture.RESNET, "ResNet50 (stride 16)"),
    "resnet50-stride32": _entry("bodypix/resnet50/float", 32, Architecture.RESNET, "ResNet50 (stride 32)"),
    "mobilenet050-stride8": _entry("bodypix/mobilenet/float/050", 8, Architecture.MOBILENET, "MobileNet 0.50 (stride 8)"),
    "mobilenet050-stride16": _entry("bodypix/mobilenet/float/050", 16, Architecture.MOBILENET, "MobileNet 0.50 (stride 16)"),
    "mobilenet075-stride8": _entry("bodypix/mobilenet/float/075", 8, Architecture.MOBILENET, "MobileNet 0.75 (stride 8)"),
    "mobilenet075-stride16": _entry("bodypix/mobilenet/float/075", 16, Architecture.MOBILENET, "MobileNet 0.75 (stride 16)"),
    "mobilenet100-stride8": _entry("bodypix/mobilenet/float/100", 8, Architecture.MOBILENET, "MobileNet 1.00 (stride 8)"),
    "mobilenet100-stride16": _entry("bodypix/mobilenet/float/100", 16, Architecture.MOBILENET, "MobileNet 1.00 (stride 16)"),
}


def get_model_descriptor(label: str) -> ModelDescriptor:
    try:
        return MODEL_CATALOG[label]
    except KeyError:
        known = ", ".join(sorted(MODEL_CATALOG))
        raise KeyError(f"Unknown model '{label}'. Known models: {known}") from None


def model_labels() -> List[str]:
    return list(MODEL_CATALOG)
