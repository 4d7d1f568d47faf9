"""Build finished, quantised mosaics and their reveal order.

A build fits the source onto a render canvas, optionally paints the
bouquet on top, resamples to the cell grid, runs brightness -> contrast
-> dither, and collects every non-background cell. The cell list is
shuffled once from the preset seed; animated reveals derive later orders
from ``(seed, frame)`` alone, so asking for the same frame twice always
gives the same answer.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from PIL import Image

from bouquet_mosaic.arrangement import (
    ArrangementOptions,
    ArrangementPoint,
    ArrangementResult,
    generate_arrangement,
)
from bouquet_mosaic.assets import FlowerSprite, empty_image, fallback_raster
from bouquet_mosaic.config import LayeredPreset, Preset, Vessel
from bouquet_mosaic.dithering import dither
from bouquet_mosaic.palette import DEFAULT_PALETTE, Palette
from bouquet_mosaic.rng import SeededRandom, derive_seed
from bouquet_mosaic.transform import (
    FitResult,
    adjust_brightness,
    adjust_contrast,
    compute_working_size,
    fit_image,
    fit_on_background,
    to_raster,
)

logger = logging.getLogger(__name__)

# Fractional position of each vessel's opening within its fitted bounds.
OPENING_ANCHORS: dict[Vessel, tuple[float, float]] = {
    Vessel.VASE01: (0.5, 0.31),
    Vessel.VASE02: (0.5, 0.13),
    Vessel.VASE03: (0.5, 0.09),
}
DEFAULT_ANCHOR = (0.5, 0.2)

ARRANGEMENT_SEED_XOR = 0x9E37_79B9
RESHUFFLE_SEED_STEP = 10_007
LAYER_SEED_STEP = 0x85EB_CA6B


def opening_anchor(vessel: Vessel) -> tuple[float, float]:
    return OPENING_ANCHORS.get(vessel, DEFAULT_ANCHOR)


def tone_and_dither(
    raster: np.ndarray, brightness: float, contrast: float, palette: Palette,
) -> np.ndarray:
    """The fixed tone pipeline: brightness, then contrast, then dither."""
    adjust_brightness(raster, brightness)
    adjust_contrast(raster, contrast)
    return dither(raster, palette)


def collect_cells(raster: np.ndarray, palette: Palette) -> np.ndarray:
    """Linear indices (row-major) of every non-background pixel."""
    keep = ~palette.background_mask(raster)
    return np.flatnonzero(keep.ravel())


def shuffled(cells: np.ndarray, seed: int) -> np.ndarray:
    order = cells.copy()
    SeededRandom(seed).shuffle(order)
    return order


def reshuffle_epoch(frame: int, every: int) -> int:
    """First frame of the reshuffle period containing *frame* (0 = base order)."""
    if every <= 0 or frame <= 0:
        return 0
    return frame - frame % every


def split_budget(
    total: int, sizes: Sequence[int], min_coverage: float = 0.0,
) -> list[int]:
    """Share a cell budget between layers.

    Each layer is first guaranteed ``min(size, floor(min_coverage * total))``
    cells (floors shrink proportionally if they alone exceed the total),
    the rest is split in proportion to each layer's remaining capacity,
    and rounding leftovers go to layers in order. The result never sums
    past *total* and no layer gets more than its size.
    """
    total = max(0, int(total))
    sizes = [max(0, int(s)) for s in sizes]
    if sum(sizes) <= total:
        return sizes

    coverage = min(1.0, max(0.0, float(min_coverage)))
    floor_each = int(coverage * total)
    alloc = [min(s, floor_each) for s in sizes]
    reserved = sum(alloc)
    if reserved > total:
        alloc = [a * total // reserved for a in alloc]
        reserved = sum(alloc)

    remaining = total - reserved
    capacity = [s - a for s, a in zip(sizes, alloc, strict=True)]
    cap_sum = sum(capacity)
    if cap_sum > 0:
        for i, cap in enumerate(capacity):
            alloc[i] += remaining * cap // cap_sum

    leftover = total - sum(alloc)
    while leftover > 0:
        progressed = False
        for i, size in enumerate(sizes):
            if leftover == 0:
                break
            if alloc[i] < size:
                alloc[i] += 1
                leftover -= 1
                progressed = True
        if not progressed:
            break
    return alloc


@dataclass(eq=False)
class Layer:
    """One dithered raster with its drawable cells and reveal order.

    ``cells`` is fixed once built; only the order and the budget vary.
    """

    raster: np.ndarray
    cells: np.ndarray
    draw_order: np.ndarray
    seed: int
    reshuffle_every: int
    _frame_cache: dict[int, np.ndarray] = field(
        default_factory=dict, init=False, repr=False,
    )

    @property
    def width(self) -> int:
        return self.raster.shape[1]

    @property
    def height(self) -> int:
        return self.raster.shape[0]

    def __len__(self) -> int:
        return len(self.cells)

    def order_for_frame(self, frame: int) -> np.ndarray:
        epoch = reshuffle_epoch(frame, self.reshuffle_every)
        if epoch == 0:
            return self.draw_order
        order = self._frame_cache.get(epoch)
        if order is None:
            seed = derive_seed(self.seed, epoch, RESHUFFLE_SEED_STEP)
            order = shuffled(self.cells, seed)
            self._frame_cache = {epoch: order}
        return order

    def visible_cells(self, budget: int, frame: int = 0) -> np.ndarray:
        """The first ``min(budget, len(cells))`` cells of this frame's order."""
        order = self.order_for_frame(frame)
        return order[: max(0, min(int(budget), len(order)))]


@dataclass(eq=False)
class Composition(Layer):
    preset: Preset = field(default_factory=Preset)
    fit: FitResult | None = None
    arrangement: ArrangementResult | None = None


@dataclass(frozen=True)
class Bounds:
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def center_x(self) -> int:
        return (self.min_x + self.max_x) // 2


def layer_bounds(raster: np.ndarray, palette: Palette) -> Bounds:
    """Bounding box of non-background pixels; all zeros when there are none."""
    ys, xs = np.nonzero(~palette.background_mask(raster))
    if len(xs) == 0:
        return Bounds(0, 0, 0, 0)
    return Bounds(int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max()))


@dataclass(eq=False)
class LayeredComposition:
    """A still life drawn over a vessel. ``top_offset`` is in cells."""

    preset: LayeredPreset
    bottom: Layer
    top: Layer
    top_offset: tuple[int, int]

    @property
    def layers(self) -> tuple[Layer, Layer]:
        return (self.bottom, self.top)

    def budgets(
        self, total: int | None = None, min_coverage: float | None = None,
    ) -> list[int]:
        total = self.preset.max_cells if total is None else total
        coverage = self.preset.min_coverage if min_coverage is None else min_coverage
        return split_budget(total, [len(self.bottom), len(self.top)], coverage)


def _overlay(canvas: Image.Image, sprite: Image.Image, x0: int, y0: int) -> None:
    """Alpha-composite *sprite* at (x0, y0), clipped to the canvas."""
    left = max(0, -x0)
    top = max(0, -y0)
    right = min(sprite.width, canvas.width - x0)
    bottom = min(sprite.height, canvas.height - y0)
    if right <= left or bottom <= top:
        return
    canvas.alpha_composite(
        sprite.crop((left, top, right, bottom)), dest=(x0 + left, y0 + top),
    )


def sprite_draw_size(
    point_size: float,
    sprite: FlowerSprite,
    size_scale: float = 1.0,
    footprint: bool = True,
) -> int:
    """Side in canvas pixels a sprite is drawn at.

    With *footprint* on, sprites with more visible ink are drawn larger:
    ``size * (0.7 + visible_scale * 0.9)``.
    """
    size = point_size * size_scale
    if footprint:
        size *= 0.7 + sprite.visible_scale * 0.9
    return max(1, round(size))


def composite_sprites(
    canvas: Image.Image,
    points: Sequence[ArrangementPoint],
    sprites: Sequence[FlowerSprite],
    size_scale: float = 1.0,
    footprint: bool = True,
) -> None:
    """Paint *points* onto *canvas* in list order (back to front)."""
    if not sprites:
        return
    for point in points:
        sprite = sprites[point.sprite_index % len(sprites)]
        size = sprite_draw_size(point.size, sprite, size_scale, footprint)
        img = sprite.image.resize((size, size), Image.LANCZOS)
        if point.rotation:
            img = img.rotate(
                -math.degrees(point.rotation), resample=Image.BICUBIC, expand=True,
            )
        _overlay(
            canvas, img,
            round(point.x - img.width / 2), round(point.y - img.height / 2),
        )


class MosaicCompositor:
    """Turns presets plus loaded images into compositions."""

    def __init__(self, palette: Palette = DEFAULT_PALETTE) -> None:
        self.palette = palette

    def _layer(self, raster: np.ndarray, seed: int, reshuffle_every: int) -> dict:
        cells = collect_cells(raster, self.palette)
        return {
            "raster": raster,
            "cells": cells,
            "draw_order": shuffled(cells, seed),
            "seed": seed,
            "reshuffle_every": max(0, int(reshuffle_every)),
        }

    def arrange(
        self, preset: Preset, fit: FitResult, sprite_count: int,
    ) -> ArrangementResult:
        anchor_x, anchor_y = opening_anchor(preset.vessel)
        options = ArrangementOptions(
            center_x=fit.offset_x + anchor_x * fit.width,
            center_y=fit.offset_y + anchor_y * fit.height,
            flower_count=preset.flower_count,
            scale=preset.bouquet_scale,
            aspect=preset.bouquet_aspect,
            lift=preset.bouquet_lift,
            inner_lift=preset.inner_lift,
            dispersion=preset.bouquet_dispersion,
            front_view_ratio=preset.front_view_ratio,
            sprite_count=max(1, sprite_count),
            density=preset.bouquet_density,
            attempts_per_flower=preset.placement_attempts,
        )
        rand = SeededRandom(derive_seed(preset.seed, xor=ARRANGEMENT_SEED_XOR))
        return generate_arrangement(options, rand)

    def build(
        self,
        preset: Preset,
        source: Image.Image | None,
        sprites: Sequence[FlowerSprite] = (),
    ) -> Composition:
        """Build the finished mosaic for *preset*.

        A ``None`` source (failed load) is replaced by the fallback
        gradient; the build never fails on asset problems.
        """
        t0 = time.perf_counter()
        if source is None:
            logger.warning("Source image unavailable, using fallback gradient")
            source = fallback_raster()

        pixel_size = max(1, int(preset.pixel_size))
        work_w, work_h = compute_working_size(
            preset.canvas_width, preset.canvas_height, pixel_size,
        )
        fit = fit_image(source, work_w * pixel_size, work_h * pixel_size,
                        preset.fit_scale)
        canvas = fit.image.copy()

        arrangement = None
        if preset.arrangement_enabled and fit.width > 0 and fit.height > 0:
            arrangement = self.arrange(preset, fit, len(sprites))
            composite_sprites(canvas, arrangement.points, sprites,
                              preset.flower_size_scale, preset.footprint_scaling)
            logger.info("Placed %d of %d flowers",
                        len(arrangement.points), arrangement.requested)

        raster = to_raster(canvas.resize((work_w, work_h), Image.LANCZOS))
        tone_and_dither(raster, preset.brightness_offset,
                        preset.contrast_factor, self.palette)

        composition = Composition(
            **self._layer(raster, preset.seed, preset.reshuffle_every),
            preset=preset,
            fit=fit,
            arrangement=arrangement,
        )
        logger.info("Built '%s': %dx%d grid, %d drawable cells (%.2f s)",
                    preset.name, work_w, work_h, len(composition),
                    time.perf_counter() - t0)
        return composition

    def build_layered(
        self,
        preset: LayeredPreset,
        bottom: Image.Image | None,
        top: Image.Image | None,
    ) -> LayeredComposition:
        """Build a two-layer still life; failed images become empty layers."""
        t0 = time.perf_counter()
        if bottom is None:
            logger.warning("Bottom image unavailable, using empty layer")
            bottom = empty_image()
        if top is None:
            logger.warning("Top image unavailable, using empty layer")
            top = empty_image()

        work_w, work_h = compute_working_size(
            preset.canvas_width, preset.canvas_height, preset.pixel_size,
        )
        background = self.palette.background

        bottom_raster = fit_on_background(bottom, work_w, work_h,
                                          preset.bottom_scale, background)
        tone_and_dither(bottom_raster, preset.brightness_offset,
                        preset.contrast_factor, self.palette)
        top_raster = fit_on_background(top, work_w, work_h,
                                       preset.top_scale, background)
        tone_and_dither(top_raster, preset.brightness_offset,
                        preset.contrast_factor, self.palette)

        bottom_bounds = layer_bounds(bottom_raster, self.palette)
        top_bounds = layer_bounds(top_raster, self.palette)
        offset = (
            bottom_bounds.center_x - top_bounds.center_x,
            bottom_bounds.min_y - top_bounds.max_y + preset.still_life_offset,
        )

        result = LayeredComposition(
            preset=preset,
            bottom=Layer(**self._layer(
                bottom_raster, derive_seed(preset.seed, 1, LAYER_SEED_STEP), 0,
            )),
            top=Layer(**self._layer(
                top_raster, preset.seed, preset.reshuffle_every,
            )),
            top_offset=offset,
        )
        logger.info("Built layered '%s': %d + %d cells, top offset %s (%.2f s)",
                    preset.name, len(result.bottom), len(result.top), offset,
                    time.perf_counter() - t0)
        return result
