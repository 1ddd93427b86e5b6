from __future__ import annotations

import pytest

from wardrobe.config import Settings
from wardrobe.plugins import registry
from wardrobe.plugins.segmenters.rembg_segmenter import RembgSegmenter


def test_discover_registers_rembg():
    registry.discover()

    plugin = registry.get("segmenter", "rembg")
    assert isinstance(plugin, RembgSegmenter)
    assert "rembg" in registry.get_all("segmenter")


def test_register_unknown_type():
    with pytest.raises(ValueError, match="Unknown plugin type"):
        registry.register("parser", RembgSegmenter())


def test_get_unknown_plugin():
    assert registry.get("segmenter", "missing") is None
    assert registry.get("parser", "rembg") is None


@pytest.mark.parametrize(
    ("preset", "model"),
    [("small", "u2netp"), ("medium", "u2net"), ("large", "isnet-general-use")],
)
def test_model_presets(preset: str, model: str):
    assert RembgSegmenter(preset).model_name == model


def test_unknown_model_setting_falls_back_to_small():
    assert Settings(BG_REMOVAL_MODEL="huge").BG_REMOVAL_MODEL == "small"
    assert Settings(BG_REMOVAL_MODEL=" Large ").BG_REMOVAL_MODEL == "large"
