from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, Field


class GridInfo(BaseModel):
    stride: int
    grid_width: int
    grid_height: int


class RunMetadata(BaseModel):
    """Per-image record emitted next to the derived images."""

    source_path: str
    model: str
    architecture: Literal["mobilenet", "resnet"]
    orig_width: int
    orig_height: int
    grid: GridInfo
    interpolation: Literal["none", "linear_mean"]
    threshold: float
    foreground_fraction: float
    outputs: Dict[str, str] = Field(default_factory=dict)
    timings_s: Dict[str, float] = Field(default_factory=dict)
