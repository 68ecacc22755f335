"""
Centralized configuration constants for the BodyPix mask pipeline.

Ground rules:
- float32 end to end
- batch size 1
"""

import os

# Input is over-sampled by one pixel on the right/bottom edge so the network
# returns a valid outer ring of grid cells for interpolation.
PAD_PIXELS = 1
# Grid cell 0 belongs to the padding ring; image content starts at cell 1.
GRID_CELL_OFFSET = 1

# Foreground decision threshold for silhouette / cutout.
# TODO: validate against per-model confidence calibration before exposing on the CLI.
MASK_THRESHOLD = 0.7

RESNET_MEAN_RGB = (123.15, 115.90, 103.06)
MOBILENET_SCALE = 127.5

# Node names in the converted BodyPix frozen graphs.
INPUT_NODE = "sub_2"
OUTPUT_NODE = "float_segments"

DEFAULT_MODEL = "resnet50-stride16"
MODELS_DIR = "assets/models"

TFJS_BASE_URL = "https://storage.googleapis.com/tfjs-models/savedmodel"
DOWNLOAD_TIMEOUT_S = 30.0


def get_models_dir() -> str:
    return os.getenv("BODYPIX_MODELS_DIR", MODELS_DIR)


def get_base_url() -> str:
    return os.getenv("BODYPIX_BASE_URL", TFJS_BASE_URL).rstrip("/")


def get_timeout_s() -> float:
    try:
        return float(os.getenv("BODYPIX_TIMEOUT_S", str(DOWNLOAD_TIMEOUT_S)))
    except ValueError:
        return DOWNLOAD_TIMEOUT_S
