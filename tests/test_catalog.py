from __future__ import annotations

import dataclasses

import pytest

from bodypix_mask.catalog import MODEL_CATALOG, Architecture, ModelDescriptor, get_model_descriptor, model_labels
from bodypix_mask.config import DEFAULT_MODEL


def test_default_model_is_in_catalog():
    assert DEFAULT_MODEL in model_labels()
    assert get_model_descriptor(DEFAULT_MODEL).architecture is Architecture.RESNET


def test_catalog_strides_and_architectures():
    for label, d in MODEL_CATALOG.items():
        assert d.stride in (8, 16, 32)
        expected = Architecture.RESNET if label.startswith("resnet") else Architecture.MOBILENET
        assert d.architecture is expected
        assert d.weights_file.endswith(f"-stride{d.stride}.pb")


def test_weights_file_and_manifest_names():
    d = get_model_descriptor("mobilenet075-stride8")
    assert d.weights_file == "bodypix_mobilenet_float_075-stride8.pb"
    assert d.manifest_name == "model-stride8.json"
    assert d.remote_path == "bodypix/mobilenet/float/075"


def test_unknown_label_lists_known_models():
    with pytest.raises(KeyError) as excinfo:
        get_model_descriptor("resnet101")
    assert "resnet50-stride16" in str(excinfo.value)


def test_descriptors_are_immutable():
    d = get_model_descriptor(DEFAULT_MODEL)
    with pytest.raises(dataclasses.FrozenInstanceError):
        d.stride = 8  # type: ignore[misc]


def test_stride_must_be_positive():
    with pytest.raises(ValueError):
        ModelDescriptor(display_name="bad", weights_file="bad.pb", stride=0, architecture=Architecture.RESNET)
