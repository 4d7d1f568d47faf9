"""Centralised configuration via frozen dataclasses.

Precedence for every field, lowest to highest:

1. the dataclass default below,
2. a value sampled from a :class:`ParamRange` by the preset factory,
3. the factory's ``fixed`` overrides,
4. explicit keyword arguments (or ``dataclasses.replace``).

:meth:`Preset.from_dict` also understands the camelCase names used by the
original sketch variables; when both spellings are given the snake_case
name wins.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any

CONFIG_VERSION = 1

DEFAULT_SPRITE_PATHS: tuple[str, ...] = tuple(
    f"assets/flowers/flower{i:02d}.png" for i in range(1, 8)
)


class Vessel(str, enum.Enum):
    """Identity of a source image, used to look up its opening anchor."""

    VASE01 = "vase01"
    VASE02 = "vase02"
    VASE03 = "vase03"
    VASE04 = "vase04"
    VASE05 = "vase05"
    VASE06 = "vase06"
    OTHER = "other"


@dataclass(frozen=True)
class ParamRange:
    """Closed sampling interval for one tunable parameter."""

    min: float
    max: float


# Default sampling ranges for the preset factory, keyed by Preset field.
DEFAULT_RANGES: dict[str, ParamRange] = {
    "pixel_size": ParamRange(1, 2),
    "max_cells": ParamRange(30_000, 100_000),
    "brightness_offset": ParamRange(-68, -48),
    "contrast_factor": ParamRange(6, 36),
    "flower_count": ParamRange(32, 50),
    "bouquet_scale": ParamRange(0.25, 0.8),
    "bouquet_aspect": ParamRange(0.2, 0.9),
    "bouquet_lift": ParamRange(62, 92),
    "inner_lift": ParamRange(96, 132),
    "bouquet_dispersion": ParamRange(0.42, 0.9),
    "front_view_ratio": ParamRange(0.16, 0.28),
    "fit_scale": ParamRange(0.34, 0.5),
}


@dataclass(frozen=True)
class Preset:
    """All tuneable parameters for one bouquet composition.

    Attributes:
        name:               Display name.
        version:            Configuration schema version.
        canvas_width:       Output canvas width in screen pixels.
        canvas_height:      Output canvas height in screen pixels.
        pixel_size:         Side of one mosaic cell in screen pixels.
        brightness_offset:  Added to every RGB channel before contrast.
        contrast_factor:    Contrast stretch amount, roughly [-255, 255].
        draw_as_rects:      Square cells if True, round cells otherwise.
        max_cells:          Cells realised per frame (draw budget).
        reshuffle_every:    Re-order the reveal every N frames (0 = never).
        seed:               Source of all randomness for the composition.
        image_path:         Source (vessel) image.
        vessel:             Identity of the source image for anchor lookup.
        fit_scale:          Fraction of the canvas the source may occupy.
        arrangement_enabled: Composite the flower bouquet.
        flower_count:       Requested number of flowers (>= 6 enforced).
        bouquet_scale:      Overall bouquet size knob, [0, 1].
        bouquet_aspect:     Bouquet height/width knob, [0, 1].
        bouquet_lift:       Upward shift of the outer ring, canvas pixels.
        inner_lift:         Upward shift of the inner ring, canvas pixels.
        bouquet_dispersion: Jitter/spread knob, [0, 1].
        front_view_ratio:   Cap on outer ring height as a fraction of width.
        bouquet_density:    Explicit density override (None = derived).
        flower_size_scale:  Multiplier on every placed flower's size.
        footprint_scaling:  Draw sprites with more visible ink larger.
        placement_attempts: Rejection-sampling attempts per requested flower.
        sprite_paths:       Flower sprite images.
        sprite_size:        Side of the square each sprite is prepared into.
        show_guides:        Overlay the two ring ellipses when rendering.
        min_coverage:       Per-layer budget floor as a fraction of the total.
    """

    name: str = "Untitled"
    version: int = CONFIG_VERSION

    # Canvas and cells
    canvas_width: int = 1080
    canvas_height: int = 1080
    pixel_size: int = 3

    # Tone
    brightness_offset: int = -10
    contrast_factor: int = 10

    # Reveal
    draw_as_rects: bool = True
    max_cells: int = 50_000
    reshuffle_every: int = 0
    seed: int = 1337

    # Source
    image_path: str = "assets/vases/vase01.png"
    vessel: Vessel = Vessel.VASE01
    fit_scale: float = 0.5

    # Bouquet
    arrangement_enabled: bool = True
    flower_count: int = 42
    bouquet_scale: float = 0.5
    bouquet_aspect: float = 0.5
    bouquet_lift: int = 76
    inner_lift: int = 112
    bouquet_dispersion: float = 0.6
    front_view_ratio: float = 0.22
    bouquet_density: float | None = None
    flower_size_scale: float = 1.0
    footprint_scaling: bool = True
    placement_attempts: int = 140
    sprite_paths: tuple[str, ...] = DEFAULT_SPRITE_PATHS
    sprite_size: int = 36
    show_guides: bool = False

    # Layer budgets
    min_coverage: float = 0.0

    @classmethod
    def normalise(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        """Map legacy names to field names and coerce types; reject unknown keys."""
        return _normalise_keys(cls, data, _LEGACY_PRESET_KEYS)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Preset:
        return cls(**cls.normalise(data))

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["vessel"] = self.vessel.value
        out["sprite_paths"] = list(self.sprite_paths)
        return out


@dataclass(frozen=True)
class LayeredPreset:
    """A still life stacked on a vessel: two independently dithered layers.

    The bottom layer is realised first. The top layer is offset so its lower
    edge overlaps the bottom layer by ``still_life_offset`` cells.
    """

    name: str = "Untitled"
    version: int = CONFIG_VERSION
    canvas_width: int = 1080
    canvas_height: int = 1080
    pixel_size: int = 2
    brightness_offset: int = -20
    contrast_factor: int = 20
    draw_as_rects: bool = True
    max_cells: int = 50_000
    reshuffle_every: int = 0
    seed: int = 1337
    bottom_image: str = "assets/vases/vase01.png"
    top_image: str = "assets/bouquet/stillife06.png"
    bottom_scale: float = 0.5
    top_scale: float = 0.75
    still_life_offset: int = 100
    stack_offset: int = 80
    min_coverage: float = 0.0

    @classmethod
    def normalise(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        return _normalise_keys(cls, data, _LEGACY_LAYERED_KEYS)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LayeredPreset:
        return cls(**cls.normalise(data))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_LEGACY_SHARED_KEYS = {
    "pixelScale": "pixel_size",
    "brightnessOffset": "brightness_offset",
    "contrastFactor": "contrast_factor",
    "drawAsRects": "draw_as_rects",
    "maxPixels": "max_cells",
    "shuffleEveryNFrames": "reshuffle_every",
    "rngSeed": "seed",
}

_LEGACY_PRESET_KEYS = {
    **_LEGACY_SHARED_KEYS,
    "imagePath": "image_path",
    "vaseScale": "fit_scale",
    "flowerCount": "flower_count",
    "bouquetScale": "bouquet_scale",
    "bouquetAspect": "bouquet_aspect",
    "bouquetLift": "bouquet_lift",
    "bouquetInnerLift": "inner_lift",
    "bouquetDispersion": "bouquet_dispersion",
    "bouquetDensity": "bouquet_density",
    "frontViewRatio": "front_view_ratio",
    "showArrangementGuides": "show_guides",
}

_LEGACY_LAYERED_KEYS = {
    **_LEGACY_SHARED_KEYS,
    "bottomImagePath": "bottom_image",
    "topImagePath": "top_image",
    "vaseScale": "bottom_scale",
    "stilllifeScale": "top_scale",
    "stillLifeOffset": "still_life_offset",
    "stackYOffset": "stack_offset",
}


def _normalise_keys(
    cls: type, data: Mapping[str, Any], legacy: Mapping[str, str],
) -> dict[str, Any]:
    known = {f.name for f in fields(cls)}
    out: dict[str, Any] = {}
    # Legacy spellings first so canonical names overwrite them.
    for key, value in data.items():
        if key in legacy:
            out[legacy[key]] = value
    for key, value in data.items():
        if key in legacy:
            continue
        if key not in known:
            msg = f"Unknown {cls.__name__} parameter '{key}'"
            raise ValueError(msg)
        out[key] = value

    if out.get("version", CONFIG_VERSION) != CONFIG_VERSION:
        msg = (
            f"Unsupported {cls.__name__} version {out['version']!r} "
            f"(expected {CONFIG_VERSION})"
        )
        raise ValueError(msg)
    if "vessel" in out and not isinstance(out["vessel"], Vessel):
        try:
            out["vessel"] = Vessel(out["vessel"])
        except ValueError:
            available = ", ".join(v.value for v in Vessel)
            msg = f"Unknown vessel '{out['vessel']}'. Available: {available}"
            raise ValueError(msg) from None
    if "sprite_paths" in out:
        out["sprite_paths"] = tuple(out["sprite_paths"])
    return out
