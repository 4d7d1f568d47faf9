"""
Bouquet Mosaic
==============

Fit a vase image onto a canvas, grow a seeded procedural bouquet out of
its opening, and reduce the result to a small palette with
Floyd-Steinberg dithering. The finished mosaic is exposed as a shuffled,
budget-capped list of cells for progressive rendering.
"""

__version__ = "1.0.0"

from bouquet_mosaic.arrangement import (
    ArrangementGuide,
    ArrangementOptions,
    ArrangementPoint,
    ArrangementResult,
    generate_arrangement,
)
from bouquet_mosaic.assets import AssetLoader, FlowerSprite, fallback_raster, prepare_sprite
from bouquet_mosaic.compositor import (
    Composition,
    LayeredComposition,
    MosaicCompositor,
    split_budget,
)
from bouquet_mosaic.config import LayeredPreset, ParamRange, Preset, Vessel
from bouquet_mosaic.dithering import dither
from bouquet_mosaic.palette import DEFAULT_PALETTE, Palette
from bouquet_mosaic.presets import generate_layered_presets, generate_presets
from bouquet_mosaic.rng import SeededRandom
from bouquet_mosaic.transform import adjust_brightness, adjust_contrast, fit_image

__all__ = [
    "DEFAULT_PALETTE",
    "ArrangementGuide",
    "ArrangementOptions",
    "ArrangementPoint",
    "ArrangementResult",
    "AssetLoader",
    "Composition",
    "FlowerSprite",
    "LayeredComposition",
    "LayeredPreset",
    "MosaicCompositor",
    "Palette",
    "ParamRange",
    "Preset",
    "SeededRandom",
    "Vessel",
    "adjust_brightness",
    "adjust_contrast",
    "dither",
    "fallback_raster",
    "fit_image",
    "generate_arrangement",
    "generate_layered_presets",
    "generate_presets",
    "prepare_sprite",
    "split_budget",
]
