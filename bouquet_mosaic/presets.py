"""Deterministic preset generation from a single top-level seed."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from bouquet_mosaic.config import DEFAULT_RANGES, LayeredPreset, ParamRange, Preset, Vessel
from bouquet_mosaic.rng import SeededRandom, derive_seed

logger = logging.getLogger(__name__)

ITEM_SEED_STEP = 1_013_904_223

DEFAULT_VASE_IMAGES: tuple[tuple[str, Vessel], ...] = (
    ("assets/vases/vase06.png", Vessel.VASE06),
    ("assets/vases/vase04.png", Vessel.VASE04),
    ("assets/vases/vase05.png", Vessel.VASE05),
)
DEFAULT_LAYER_BOTTOMS: tuple[str, ...] = tuple(
    f"assets/vases/vase{i:02d}.png" for i in range(1, 7)
)
DEFAULT_LAYER_TOPS: tuple[str, ...] = ("assets/bouquet/stillife06.png",)

# Sampling order is part of the reproducibility contract: item i always
# draws these fields in this order. True marks integer (floored) fields.
_SAMPLED_FIELDS: tuple[tuple[str, bool], ...] = (
    ("pixel_size", True),
    ("max_cells", True),
    ("brightness_offset", True),
    ("contrast_factor", True),
    ("seed", True),
    ("flower_count", True),
    ("bouquet_scale", False),
    ("bouquet_aspect", False),
    ("bouquet_lift", True),
    ("inner_lift", True),
    ("bouquet_dispersion", False),
    ("front_view_ratio", False),
    ("fit_scale", False),
)
_SEED_RANGE = ParamRange(1, 99_999)


def _sample(rand: SeededRandom, name: str, rng: ParamRange, integer: bool) -> Any:
    hi = rng.max
    # Integer pixel sizes are inclusive of the upper bound.
    if name == "pixel_size":
        hi += 0.999
    value = rand.uniform(rng.min, hi)
    return math.floor(value) if integer else value


def generate_presets(
    seed: int = 20260209,
    count: int = 8,
    ranges: Mapping[str, ParamRange] | None = None,
    fixed: Mapping[str, Any] | None = None,
    images: Sequence[tuple[str, Vessel]] = DEFAULT_VASE_IMAGES,
) -> list[Preset]:
    """Derive *count* bouquet presets from *seed*.

    Item i draws from its own stream seeded with
    ``(seed + i * 1013904223) mod 2**32``, so items are independent of
    each other and of *count*. *ranges* replace entries of
    :data:`DEFAULT_RANGES`; *fixed* values override whatever was sampled.

    Args:
        seed:   Top-level seed.
        count:  Number of presets (at least 1).
        ranges: Per-field sampling ranges (field or legacy names).
        fixed:  Unconditional overrides (field or legacy names).
        images: ``(path, vessel)`` pairs assigned round-robin.
    """
    count = max(1, int(count))
    merged = {**DEFAULT_RANGES, **Preset.normalise(ranges or {})}
    overrides = Preset.normalise(fixed or {})

    presets = []
    for i in range(count):
        rand = SeededRandom(derive_seed(seed, i, ITEM_SEED_STEP))
        values: dict[str, Any] = {}
        for name, integer in _SAMPLED_FIELDS:
            rng = _SEED_RANGE if name == "seed" else merged[name]
            values[name] = _sample(rand, name, rng, integer)

        if images:
            path, vessel = images[i % len(images)]
        else:
            path, vessel = Preset.image_path, Vessel.OTHER
        preset = Preset(
            name=f"Seed {seed} / {i + 1}",
            image_path=path,
            vessel=vessel,
            draw_as_rects=True,
            show_guides=False,
            **values,
        )
        presets.append(replace(preset, **overrides))

    logger.debug("Generated %d presets from seed %d", len(presets), seed)
    return presets


def generate_layered_presets(
    seed: int = 20260210,
    bottom_images: Sequence[str] = DEFAULT_LAYER_BOTTOMS,
    top_images: Sequence[str] = DEFAULT_LAYER_TOPS,
    fixed: Mapping[str, Any] | None = None,
) -> list[LayeredPreset]:
    """One still-life preset per (bottom, top) image pair, from one stream."""
    rand = SeededRandom(seed)
    overrides = LayeredPreset.normalise(fixed or {})

    presets = []
    for bottom in bottom_images:
        for top in top_images:
            preset = LayeredPreset(
                name=f"{Path(bottom).stem} + {Path(top).stem}",
                pixel_size=2,
                brightness_offset=math.floor(rand.uniform(-28, -10)),
                contrast_factor=math.floor(rand.uniform(8, 32)),
                still_life_offset=math.floor(rand.uniform(70, 130)),
                stack_offset=math.floor(rand.uniform(50, 95)),
                draw_as_rects=True,
                max_cells=1_000_000,
                reshuffle_every=0 if rand() > 0.5 else 30,
                seed=math.floor(rand.uniform(1, 99_999)),
                bottom_image=bottom,
                top_image=top,
                bottom_scale=rand.uniform(0.4, 0.72),
                top_scale=rand.uniform(0.5, 0.95),
            )
            presets.append(replace(preset, **overrides))
    return presets


def save_presets(path: str | Path, presets: Sequence[Preset | LayeredPreset]) -> Path:
    """Write presets as ``[{"name": ..., "variables": {...}}, ...]`` JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = []
    for preset in presets:
        variables = preset.to_dict()
        payload.append({"name": variables.pop("name"), "variables": variables})
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def load_presets(path: str | Path, layered: bool = False) -> list[Any]:
    """Read a JSON preset list; entries may use legacy camelCase names."""
    cls = LayeredPreset if layered else Preset
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        msg = f"{path}: expected a JSON list of presets"
        raise ValueError(msg)

    presets = []
    for i, entry in enumerate(data, 1):
        variables = dict(entry.get("variables", {}))
        variables.setdefault("name", entry.get("name", f"Preset {i}"))
        presets.append(cls.from_dict(variables))
    return presets
