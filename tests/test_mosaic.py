"""Tests for the bouquet_mosaic package."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import math
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from typer.testing import CliRunner

from bouquet_mosaic.arrangement import (
    ArrangementOptions,
    ArrangementPoint,
    generate_arrangement,
    sample_near_with_far_tail,
)
from bouquet_mosaic.assets import (
    AssetLoader,
    fallback_raster,
    prepare_sprite,
    read_image,
)
from bouquet_mosaic.cli import app
from bouquet_mosaic.compositor import (
    MosaicCompositor,
    collect_cells,
    composite_sprites,
    layer_bounds,
    opening_anchor,
    reshuffle_epoch,
    split_budget,
    sprite_draw_size,
    tone_and_dither,
)
from bouquet_mosaic.config import LayeredPreset, ParamRange, Preset, Vessel
from bouquet_mosaic.dithering import diffuse_errors, dither
from bouquet_mosaic.palette import DEFAULT_PALETTE, Palette
from bouquet_mosaic.presets import (
    generate_layered_presets,
    generate_presets,
    load_presets,
    save_presets,
)
from bouquet_mosaic.render import (
    render_composition,
    render_layered,
    save_frame,
    save_reveal_gif,
)
from bouquet_mosaic.rng import SeededRandom, derive_seed
from bouquet_mosaic.transform import (
    adjust_brightness,
    adjust_contrast,
    compute_working_size,
    contrast_gain,
    fit_image,
    fit_on_background,
)

# -- Fixtures ----------------------------------------------------------

MONO = Palette([(0, 0, 0), (255, 255, 255)])


@pytest.fixture
def raster() -> np.ndarray:
    """Random opaque non-square RGBA raster."""
    rng = np.random.default_rng(456)
    rgba = rng.integers(0, 256, size=(5, 7, 4), dtype=np.uint8)
    rgba[..., 3] = 255
    return rgba


@pytest.fixture
def source() -> Image.Image:
    """Light grey portrait-ish vessel stand-in."""
    return Image.new("RGBA", (40, 60), (200, 200, 200, 255))


@pytest.fixture
def sprites():
    img = Image.new("RGBA", (48, 48), (0, 0, 0, 0))
    arr = np.array(img)
    yy, xx = np.mgrid[0:48, 0:48]
    disc = (xx - 24) ** 2 + (yy - 24) ** 2 < 18 ** 2
    arr[disc] = (234, 67, 53, 255)
    red = prepare_sprite(Image.fromarray(arr), 36)
    yellow = prepare_sprite(Image.new("RGBA", (30, 20), (251, 188, 5, 255)), 36)
    return [red, yellow]


@pytest.fixture
def small_preset() -> Preset:
    return Preset(
        name="small",
        canvas_width=60,
        canvas_height=60,
        pixel_size=3,
        brightness_offset=0,
        contrast_factor=0,
        fit_scale=1.0,
        max_cells=100,
        reshuffle_every=5,
        seed=4242,
        flower_count=12,
        bouquet_lift=0,
        inner_lift=4,
    )


@pytest.fixture
def tmp_images(tmp_path: Path) -> dict[str, Path]:
    vase = tmp_path / "vase.png"
    Image.new("RGBA", (30, 50), (120, 200, 90, 255)).save(vase)
    flower = tmp_path / "flower.png"
    Image.new("RGBA", (16, 16), (250, 180, 10, 255)).save(flower)
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    return {"vase": vase, "flower": flower, "broken": broken,
            "missing": tmp_path / "missing.png"}


# -- Seeded random -----------------------------------------------------

class TestSeededRandom:
    def test_reproducible(self) -> None:
        a = SeededRandom(1337)
        b = SeededRandom(1337)
        assert [a.next() for _ in range(200)] == [b.next() for _ in range(200)]

    def test_unit_interval(self) -> None:
        rand = SeededRandom(20260209)
        values = [rand() for _ in range(5_000)]
        assert min(values) >= 0.0
        assert max(values) < 1.0

    def test_different_seeds(self) -> None:
        a = [SeededRandom(1).next() for _ in range(10)]
        b = [SeededRandom(2).next() for _ in range(10)]
        assert a != b

    def test_seed_wraps_to_uint32(self) -> None:
        a = SeededRandom(-1)
        b = SeededRandom(2**32 - 1)
        assert a.seed == b.seed
        assert [a() for _ in range(20)] == [b() for _ in range(20)]

    def test_roughly_uniform(self) -> None:
        rand = SeededRandom(99)
        values = np.array([rand() for _ in range(20_000)])
        assert abs(values.mean() - 0.5) < 0.02
        hist, _ = np.histogram(values, bins=10, range=(0, 1))
        assert hist.min() > 1_600

    def test_shuffle_is_deterministic_permutation(self) -> None:
        base = np.arange(50)
        a = SeededRandom(5).shuffle(base.copy())
        b = SeededRandom(5).shuffle(base.copy())
        np.testing.assert_array_equal(a, b)
        np.testing.assert_array_equal(np.sort(a), base)
        assert not np.array_equal(a, base)

    def test_known_sequence(self) -> None:
        known = {
            1337: [0.1844118325971067, 0.18998925131745636, 0.8104719922412187,
                   0.6437488221563399, 0.430774615611881],
            20260209: [0.8792291327845305, 0.568536322331056, 0.9917848526965827,
                       0.8456846049521118, 0.2694381249602884],
        }
        for seed, expected in known.items():
            rand = SeededRandom(seed)
            assert [rand() for _ in expected] == expected

    def test_derive_seed(self) -> None:
        assert derive_seed(20260209, 3, 1013904223) == (20260209 + 3 * 1013904223) % 2**32
        assert derive_seed(1337, xor=0x9E3779B9) == 1337 ^ 0x9E3779B9


# -- Palette -----------------------------------------------------------

class TestPalette:
    def test_nearest(self) -> None:
        assert DEFAULT_PALETTE.nearest((240, 250, 245)) == (248, 249, 250)
        assert DEFAULT_PALETTE.nearest((60, 130, 250)) == (66, 133, 244)

    def test_ties_resolve_to_first(self) -> None:
        p = Palette([(0, 0, 0), (20, 0, 0)])
        assert p.nearest_index(10, 0, 0) == 0
        q = Palette([(20, 0, 0), (0, 0, 0)])
        assert q.nearest_index(10, 0, 0) == 0

    def test_is_background(self) -> None:
        assert DEFAULT_PALETTE.is_background((0, 0, 0))
        assert not DEFAULT_PALETTE.is_background((0, 0, 1))

    def test_background_mask(self) -> None:
        img = np.zeros((2, 2, 4), dtype=np.uint8)
        img[0, 1, :3] = 255
        mask = MONO.background_mask(img)
        np.testing.assert_array_equal(mask, [[True, False], [True, True]])

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            Palette([])

    def test_invalid_name(self) -> None:
        with pytest.raises(ValueError):
            Palette.named("invalid_palette")

    def test_from_hex(self) -> None:
        p = Palette.from_hex(["#000000", "#FF7F11"])
        assert p.colors == ((0, 0, 0), (255, 127, 17))
        assert p.background == (0, 0, 0)


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = Preset()
        assert cfg.seed == 1337
        assert cfg.max_cells == 50_000
        assert cfg.placement_attempts == 140
        assert cfg.reshuffle_every == 0

    def test_frozen(self) -> None:
        cfg = Preset()
        with pytest.raises(AttributeError):
            cfg.seed = 1  # type: ignore[misc]

    def test_legacy_names(self) -> None:
        cfg = Preset.from_dict({"pixelScale": 4, "rngSeed": 9, "flowerCount": 20})
        assert cfg.pixel_size == 4
        assert cfg.seed == 9
        assert cfg.flower_count == 20

    def test_canonical_name_wins(self) -> None:
        cfg = Preset.from_dict({"pixelScale": 4, "pixel_size": 2})
        assert cfg.pixel_size == 2

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError):
            Preset.from_dict({"pixelScael": 4})

    def test_vessel_parsing(self) -> None:
        assert Preset.from_dict({"vessel": "vase03"}).vessel is Vessel.VASE03
        with pytest.raises(ValueError):
            Preset.from_dict({"vessel": "teapot"})

    def test_version(self) -> None:
        assert Preset.from_dict({"version": 1}).version == 1
        with pytest.raises(ValueError, match="version"):
            Preset.from_dict({"version": 2})
        with pytest.raises(ValueError, match="version"):
            LayeredPreset.from_dict({"version": 0})

    def test_layered_legacy_names(self) -> None:
        cfg = LayeredPreset.from_dict({"stackYOffset": 60, "stilllifeScale": 0.6})
        assert cfg.stack_offset == 60
        assert cfg.top_scale == 0.6


# -- Transform ---------------------------------------------------------

class TestTransform:
    def test_working_size(self) -> None:
        assert compute_working_size(1080, 1080, 2) == (540, 540)
        assert compute_working_size(1080, 1350, 3) == (360, 450)
        assert compute_working_size(1, 1, 5) == (1, 1)
        assert compute_working_size(10, 10, 0) == (10, 10)

    def test_fit_landscape(self) -> None:
        src = Image.new("RGBA", (200, 100), (255, 0, 0, 255))
        fit = fit_image(src, 100, 100, 1.0)
        assert (fit.width, fit.height) == (100, 50)
        assert (fit.offset_x, fit.offset_y) == (0, 25)
        assert fit.image.size == (100, 100)

    def test_fit_scaled_and_centred(self) -> None:
        src = Image.new("RGBA", (200, 100), (255, 0, 0, 255))
        fit = fit_image(src, 100, 100, 0.5)
        assert (fit.width, fit.height) == (50, 25)
        assert (fit.offset_x, fit.offset_y) == (25, 37.5)
        arr = np.array(fit.image)
        assert arr[50, 50, 3] == 255
        assert arr[5, 5, 3] == 0

    def test_fit_degenerate(self) -> None:
        src = Image.new("RGBA", (20, 20), (255, 0, 0, 255))
        fit = fit_image(src, 0, -5, 0.0)
        assert fit.image.size == (1, 1)
        assert fit.width == 0

    def test_fit_on_background(self) -> None:
        src = Image.new("RGBA", (10, 20), (200, 10, 10, 255))
        out = fit_on_background(src, 40, 40, 0.5, (0, 0, 0))
        assert out.shape == (40, 40, 4)
        assert tuple(out[0, 0]) == (0, 0, 0, 255)
        assert tuple(out[20, 20, :3]) == (200, 10, 10)

    def test_brightness_closed_form(self, raster: np.ndarray) -> None:
        for offset in (-300, -20, 0, 17, 255):
            img = raster.copy()
            adjust_brightness(img, offset)
            expected = np.clip(raster[..., :3].astype(int) + offset, 0, 255)
            np.testing.assert_array_equal(img[..., :3], expected)
            np.testing.assert_array_equal(img[..., 3], raster[..., 3])

    def test_contrast_zero_is_identity(self, raster: np.ndarray) -> None:
        img = raster.copy()
        adjust_contrast(img, 0)
        np.testing.assert_array_equal(img, raster)

    def test_contrast_stays_in_range(self, raster: np.ndarray) -> None:
        for factor in (-1000, -255, -40, 10, 200, 259, 5000):
            img = raster.copy()
            adjust_contrast(img, factor)
            assert img.dtype == np.uint8
            assert np.isfinite(contrast_gain(factor))
            np.testing.assert_array_equal(img[..., 3], raster[..., 3])

    def test_contrast_increases_spread(self) -> None:
        img = np.array([[[100, 128, 160, 255]]], dtype=np.uint8)
        adjust_contrast(img, 50)
        assert img[0, 0, 0] < 100
        assert img[0, 0, 1] == 128
        assert img[0, 0, 2] > 160


# -- Dithering ---------------------------------------------------------

class TestDithering:
    def test_output_in_palette(self, raster: np.ndarray) -> None:
        out = dither(raster.copy(), DEFAULT_PALETTE)
        colours = {tuple(c) for c in out[..., :3].reshape(-1, 3)}
        assert colours.issubset(set(DEFAULT_PALETTE.colors))

    def test_alpha_forced_opaque(self, raster: np.ndarray) -> None:
        raster[..., 3] = 17
        out = dither(raster, DEFAULT_PALETTE)
        assert (out[..., 3] == 255).all()

    def test_palette_image_unchanged(self) -> None:
        rng = np.random.default_rng(3)
        idx = rng.integers(0, len(DEFAULT_PALETTE), size=(6, 6))
        img = np.dstack([DEFAULT_PALETTE.array[idx], np.full((6, 6), 255, np.uint8)])
        out = dither(img.copy(), DEFAULT_PALETTE)
        np.testing.assert_array_equal(out, img)

    def test_error_is_conserved(self, raster: np.ndarray) -> None:
        indices, lost = diffuse_errors(raster, DEFAULT_PALETTE)
        quantised = DEFAULT_PALETTE.array[indices].astype(np.float64)
        original = raster[..., :3].astype(np.float64)
        np.testing.assert_allclose(
            original.sum(axis=(0, 1)), quantised.sum(axis=(0, 1)) + lost, atol=1e-6,
        )

    def test_mid_grey_checkerboard(self) -> None:
        img = np.full((4, 4, 4), 128, dtype=np.uint8)
        img[..., 3] = 255
        tone_and_dither(img, 0, 0, MONO)
        white = np.all(img[..., :3] == 255, axis=-1)
        black = np.all(img[..., :3] == 0, axis=-1)
        assert (white | black).all()
        assert 6 <= white.sum() <= 10
        np.testing.assert_array_equal(white[0], [True, False, True, False])


# -- Arrangement -------------------------------------------------------

def _options(**kwargs) -> ArrangementOptions:
    base = {"center_x": 540.0, "center_y": 400.0, "sprite_count": 7}
    base.update(kwargs)
    return ArrangementOptions(**base)


def _min_distance(a, b) -> float:
    """Smallest centre distance between distinct points of *a* and *b*."""
    best = math.inf
    for p in a:
        for q in b:
            if p is not q:
                best = min(best, math.hypot(p.x - q.x, p.y - q.y))
    return best


class TestArrangement:
    def test_sorted_by_depth(self) -> None:
        result = generate_arrangement(_options(), SeededRandom(11))
        depths = [p.depth for p in result.points]
        assert depths == sorted(depths)
        assert all(-1.0 <= d <= 1.0 for d in depths)

    def test_each_ring_keeps_its_gap(self) -> None:
        for seed in range(1, 11):
            result = generate_arrangement(
                _options(flower_count=50, dispersion=0.9), SeededRandom(seed),
            )
            outer = result.outer_points
            inner = result.inner_points
            assert sorted(outer + inner, key=lambda p: p.depth) == list(result.points)
            assert _min_distance(outer, outer) >= result.outer_min_gap - 1e-9
            assert _min_distance(inner, inner) >= result.inner_min_gap - 1e-9
            assert _min_distance(inner, outer) >= result.inner_min_gap - 1e-9
            assert result.inner_min_gap < result.outer_min_gap

    def test_reproducible(self) -> None:
        a = generate_arrangement(_options(), SeededRandom(77))
        b = generate_arrangement(_options(), SeededRandom(77))
        assert a == b

    def test_minimal_bouquet(self) -> None:
        result = generate_arrangement(
            ArrangementOptions(
                center_x=0, center_y=0, flower_count=6, scale=0, aspect=0,
                lift=0, inner_lift=0, dispersion=0, front_view_ratio=0,
            ),
            SeededRandom(1),
        )
        assert len(result.points) >= 2

    def test_count_clamped(self) -> None:
        result = generate_arrangement(_options(flower_count=-3), SeededRandom(5))
        assert result.requested == 6
        assert 1 <= len(result.points) <= 6

    def test_never_more_than_requested(self) -> None:
        result = generate_arrangement(_options(flower_count=40), SeededRandom(8))
        assert len(result.points) <= 40

    def test_point_fields(self) -> None:
        result = generate_arrangement(_options(sprite_count=3), SeededRandom(21))
        for p in result.points:
            assert 0 <= p.sprite_index < 3
            assert abs(p.rotation) <= 0.13
            assert p.size > 0

    def test_guides(self) -> None:
        result = generate_arrangement(_options(lift=80), SeededRandom(4))
        assert result.outer.center_y == 400.0 - 80
        assert result.inner.center_x == result.outer.center_x
        assert result.inner.center_y <= result.outer.center_y
        assert result.inner.radius_x < result.outer.radius_x
        assert result.outer.radius_x >= 55
        assert result.outer.radius_y >= 14

    def test_attempt_cap_limits_placement(self) -> None:
        result = generate_arrangement(
            _options(flower_count=50, attempts_per_flower=1), SeededRandom(9),
        )
        assert len(result.points) <= 50

    def test_far_tail_sampler_bounds(self) -> None:
        rand = SeededRandom(3)
        for _ in range(500):
            v = sample_near_with_far_tail(rand, 2.0, 10.0, 0.7)
            assert 2.0 <= v <= 10.0
        assert sample_near_with_far_tail(rand, 5.0, 5.0, 0.7) == 5.0

    def test_far_tail_is_mostly_near(self) -> None:
        rand = SeededRandom(12)
        values = [sample_near_with_far_tail(rand, 0.0, 1.0, 0.5) for _ in range(4_000)]
        near = sum(v < 0.5 for v in values)
        far = sum(v >= 0.81 for v in values)
        assert near > len(values) * 0.5
        assert far > 0


# -- Presets -----------------------------------------------------------

class TestPresets:
    def test_reproducible(self) -> None:
        a = generate_presets(seed=20260209, count=8)
        b = generate_presets(seed=20260209, count=8)
        assert a == b
        assert json.dumps([p.to_dict() for p in a]) == json.dumps([p.to_dict() for p in b])

    def test_items_independent_of_count(self) -> None:
        few = generate_presets(seed=20260209, count=3)
        many = generate_presets(seed=20260209, count=8)
        assert few == many[:3]

    def test_values_in_default_ranges(self) -> None:
        for p in generate_presets(seed=7, count=16):
            assert p.pixel_size in (1, 2)
            assert 30_000 <= p.max_cells <= 100_000
            assert -68 <= p.brightness_offset <= -48
            assert 6 <= p.contrast_factor <= 36
            assert 1 <= p.seed <= 99_999
            assert 32 <= p.flower_count <= 50
            assert 0.25 <= p.bouquet_scale <= 0.8
            assert 0.16 <= p.front_view_ratio <= 0.28
            assert p.draw_as_rects

    def test_fixed_overrides_win(self) -> None:
        items = generate_presets(seed=1, count=4, fixed={"pixel_size": 5, "flowerCount": 7})
        assert all(p.pixel_size == 5 for p in items)
        assert all(p.flower_count == 7 for p in items)

    def test_custom_range(self) -> None:
        items = generate_presets(
            seed=1, count=4, ranges={"flower_count": ParamRange(10, 10)},
        )
        assert all(p.flower_count == 10 for p in items)

    def test_images_round_robin(self) -> None:
        items = generate_presets(seed=1, count=4)
        assert items[0].image_path == items[3].image_path
        assert items[0].vessel is Vessel.VASE06

    def test_save_and_load(self, tmp_path: Path) -> None:
        items = generate_presets(seed=3, count=2)
        path = save_presets(tmp_path / "presets.json", items)
        assert load_presets(path) == items

    def test_load_legacy_seed_data(self, tmp_path: Path) -> None:
        path = tmp_path / "seed.json"
        path.write_text(json.dumps([
            {"variables": {"pixelScale": 2, "maxPixels": 40000, "rngSeed": 88}},
        ]))
        (preset,) = load_presets(path)
        assert (preset.pixel_size, preset.max_cells, preset.seed) == (2, 40000, 88)
        assert preset.name == "Preset 1"

    def test_layered_presets(self) -> None:
        a = generate_layered_presets()
        assert len(a) == 6
        assert a == generate_layered_presets()
        for p in a:
            assert p.reshuffle_every in (0, 30)
            assert 0.4 <= p.bottom_scale <= 0.72
            assert 70 <= p.still_life_offset < 130


# -- Budget ------------------------------------------------------------

class TestBudget:
    def test_everything_fits(self) -> None:
        assert split_budget(1_000, [300, 200]) == [300, 200]

    def test_proportional(self) -> None:
        assert split_budget(100, [300, 100]) == [75, 25]

    def test_coverage_floor(self) -> None:
        alloc = split_budget(100, [900, 100], min_coverage=0.3)
        assert sum(alloc) == 100
        assert alloc[1] >= 30

    def test_floors_exceeding_total(self) -> None:
        alloc = split_budget(10, [100, 100, 100], min_coverage=0.5)
        assert sum(alloc) == 10
        assert min(alloc) >= 3

    def test_invariants(self) -> None:
        rand = SeededRandom(31)
        for _ in range(200):
            sizes = [rand.integer(500) for _ in range(1 + rand.integer(4))]
            total = rand.integer(800)
            coverage = rand()
            alloc = split_budget(total, sizes, coverage)
            assert sum(alloc) <= total
            assert all(0 <= a <= s for a, s in zip(alloc, sizes, strict=True))
            if sum(sizes) > total:
                assert sum(alloc) == total

    def test_zero_total(self) -> None:
        assert split_budget(0, [10, 20], 0.5) == [0, 0]


# -- Compositor --------------------------------------------------------

class TestCompositor:
    def test_working_grid(self, small_preset, source, sprites) -> None:
        comp = MosaicCompositor().build(small_preset, source, sprites)
        assert comp.raster.shape == (20, 20, 4)
        assert (comp.width, comp.height) == (20, 20)

    def test_raster_in_palette(self, small_preset, source, sprites) -> None:
        comp = MosaicCompositor().build(small_preset, source, sprites)
        colours = {tuple(c) for c in comp.raster[..., :3].reshape(-1, 3)}
        assert colours.issubset(set(DEFAULT_PALETTE.colors))
        assert (comp.raster[..., 3] == 255).all()

    def test_cells_exclude_background(self, small_preset, source, sprites) -> None:
        comp = MosaicCompositor().build(small_preset, source, sprites)
        flat = comp.raster[..., :3].reshape(-1, 3)
        assert len(comp) > 0
        for i in comp.cells:
            assert not DEFAULT_PALETTE.is_background(flat[i])
        background = DEFAULT_PALETTE.background_mask(comp.raster).sum()
        assert len(comp) + background == 400

    def test_draw_order_is_permutation(self, small_preset, source) -> None:
        comp = MosaicCompositor().build(small_preset, source)
        np.testing.assert_array_equal(np.sort(comp.draw_order), comp.cells)

    def test_reproducible(self, small_preset, source, sprites) -> None:
        a = MosaicCompositor().build(small_preset, source, sprites)
        b = MosaicCompositor().build(small_preset, source, sprites)
        np.testing.assert_array_equal(a.raster, b.raster)
        np.testing.assert_array_equal(a.draw_order, b.draw_order)
        assert a.arrangement == b.arrangement

    def test_budget(self, small_preset, source) -> None:
        comp = MosaicCompositor().build(small_preset, source)
        n = len(comp)
        for budget in (0, 5, n, n + 100, -4):
            assert len(comp.visible_cells(budget)) == max(0, min(budget, n))

    def test_reshuffle_is_pure(self, small_preset, source) -> None:
        comp = MosaicCompositor().build(small_preset, source)
        np.testing.assert_array_equal(comp.order_for_frame(3), comp.draw_order)
        first = comp.order_for_frame(7).copy()
        np.testing.assert_array_equal(comp.order_for_frame(12), comp.order_for_frame(10))
        np.testing.assert_array_equal(comp.order_for_frame(7), first)
        np.testing.assert_array_equal(comp.order_for_frame(5), first)
        assert not np.array_equal(comp.order_for_frame(10), first)
        np.testing.assert_array_equal(np.sort(first), comp.cells)

    def test_reshuffle_epoch(self) -> None:
        assert reshuffle_epoch(29, 0) == 0
        assert reshuffle_epoch(4, 5) == 0
        assert reshuffle_epoch(5, 5) == 5
        assert reshuffle_epoch(14, 5) == 10

    def test_fallback_source(self, small_preset) -> None:
        comp = MosaicCompositor().build(small_preset, None)
        assert comp.raster.shape == (20, 20, 4)
        assert len(comp) > 0

    def test_arrangement_toggle(self, small_preset, source, sprites) -> None:
        with_flowers = MosaicCompositor().build(small_preset, source, sprites)
        assert with_flowers.arrangement is not None
        plain = MosaicCompositor().build(
            dataclasses.replace(small_preset, arrangement_enabled=False), source, sprites,
        )
        assert plain.arrangement is None

    def test_sprite_index_wraps(self, sprites) -> None:
        canvas = Image.new("RGBA", (50, 50), (0, 0, 0, 0))
        point = ArrangementPoint(x=25, y=25, depth=0.5, sprite_index=6,
                                 rotation=0.0, size=20)
        composite_sprites(canvas, [point], sprites[:1])
        r, g, b, a = canvas.getpixel((25, 25))
        assert a == 255
        assert r > 200 and g < 100
        assert canvas.getpixel((2, 2))[3] == 0

    def test_sprites_clipped_at_edges(self, sprites) -> None:
        canvas = Image.new("RGBA", (30, 30), (0, 0, 0, 0))
        points = [
            ArrangementPoint(x=-5, y=-5, depth=0, sprite_index=1, rotation=0.1, size=40),
            ArrangementPoint(x=200, y=200, depth=0, sprite_index=0, rotation=0, size=10),
        ]
        composite_sprites(canvas, points, sprites)
        assert canvas.getpixel((0, 0))[3] > 200

    def test_footprint_scales_drawn_size(self) -> None:
        solid = prepare_sprite(Image.new("RGBA", (50, 50), (255, 0, 0, 255)), 36)
        img = Image.new("RGBA", (36, 36), (0, 0, 0, 0))
        img.paste((255, 0, 0, 255), (15, 15, 21, 21))
        sparse = prepare_sprite(img, 36)
        assert sprite_draw_size(20, solid) == 35
        assert sprite_draw_size(20, sparse) == 20
        assert sprite_draw_size(20, solid, footprint=False) == 20
        assert sprite_draw_size(20, solid, size_scale=0.5) > sprite_draw_size(20, sparse, 0.5)

        point = ArrangementPoint(x=30, y=30, depth=0, sprite_index=0, rotation=0, size=20)
        scaled = Image.new("RGBA", (60, 60), (0, 0, 0, 0))
        composite_sprites(scaled, [point], [solid])
        plain = Image.new("RGBA", (60, 60), (0, 0, 0, 0))
        composite_sprites(plain, [point], [solid], footprint=False)
        assert scaled.getpixel((14, 30))[3] > 200
        assert plain.getpixel((14, 30))[3] == 0

    def test_opening_anchor(self) -> None:
        assert opening_anchor(Vessel.VASE02) == (0.5, 0.13)
        assert opening_anchor(Vessel.VASE05) == (0.5, 0.2)

    def test_collect_cells(self) -> None:
        img = np.zeros((2, 3, 4), dtype=np.uint8)
        img[0, 2, :3] = 255
        img[1, 0, :3] = 255
        np.testing.assert_array_equal(collect_cells(img, MONO), [2, 3])

    def test_layer_bounds(self) -> None:
        img = np.zeros((10, 10, 4), dtype=np.uint8)
        img[2:5, 3:8, :3] = 255
        b = layer_bounds(img, MONO)
        assert (b.min_x, b.min_y, b.max_x, b.max_y, b.center_x) == (3, 2, 7, 4, 5)
        empty = layer_bounds(np.zeros((4, 4, 4), np.uint8), MONO)
        assert (empty.min_x, empty.max_y) == (0, 0)

    def test_layered(self, source) -> None:
        preset = LayeredPreset(
            canvas_width=80, canvas_height=80, pixel_size=2, brightness_offset=0,
            contrast_factor=0, max_cells=300, still_life_offset=3, min_coverage=0.25,
        )
        top = Image.new("RGBA", (30, 30), (250, 190, 10, 255))
        layered = MosaicCompositor().build_layered(preset, source, top)
        assert layered.bottom.raster.shape == (40, 40, 4)
        assert len(layered.bottom) > 0
        assert len(layered.top) > 0
        budgets = layered.budgets()
        assert sum(budgets) <= 300
        assert all(b >= min(75, len(layer))
                   for b, layer in zip(budgets, layered.layers, strict=True))
        bottom_b = layer_bounds(layered.bottom.raster, DEFAULT_PALETTE)
        top_b = layer_bounds(layered.top.raster, DEFAULT_PALETTE)
        dx, dy = layered.top_offset
        assert top_b.center_x + dx == bottom_b.center_x
        assert top_b.max_y + dy == bottom_b.min_y + 3

    def test_layered_missing_images(self) -> None:
        preset = LayeredPreset(canvas_width=40, canvas_height=40)
        layered = MosaicCompositor().build_layered(preset, None, None)
        assert len(layered.bottom) == 0
        assert layered.budgets() == [0, 0]


# -- Assets ------------------------------------------------------------

class TestAssets:
    def test_fallback_raster(self) -> None:
        img = fallback_raster()
        assert img.size == (120, 180)
        assert img.getpixel((0, 0)) == (0, 255, 120, 255)
        assert img.getpixel((10, 5)) == (15, 240, 120, 255)
        assert np.array_equal(np.array(img), np.array(fallback_raster()))

    def test_read_failures(self, tmp_images) -> None:
        assert read_image(tmp_images["missing"]) is None
        assert read_image(tmp_images["broken"]) is None
        assert read_image(tmp_images["vase"]).mode == "RGBA"

    def test_loader_omits_failed_sprites(self, tmp_images) -> None:
        assets = asyncio.run(AssetLoader().load(
            tmp_images["vase"],
            [tmp_images["flower"], tmp_images["missing"], tmp_images["broken"]],
        ))
        assert assets.source is not None
        assert assets.source.size == (30, 50)
        assert len(assets.sprites) == 1

    def test_loader_missing_source(self, tmp_images) -> None:
        assets = asyncio.run(AssetLoader().load(tmp_images["missing"]))
        assert assets.source is None
        assert assets.sprites == []

    def test_stale_load_cancelled(self, tmp_images) -> None:
        async def scenario() -> None:
            loader = AssetLoader()
            stale = asyncio.create_task(loader.load_many([tmp_images["vase"]]))
            await asyncio.sleep(0)
            (fresh,) = await loader.load_many([tmp_images["flower"]])
            assert fresh is not None
            with pytest.raises(asyncio.CancelledError):
                await stale

        asyncio.run(scenario())

    def test_prepare_opaque_sprite(self) -> None:
        sprite = prepare_sprite(Image.new("RGBA", (50, 50), (255, 0, 0, 255)), 36)
        assert sprite.image.size == (36, 36)
        assert sprite.visible_scale == pytest.approx(1.15)

    def test_prepare_transparent_sprite(self) -> None:
        sprite = prepare_sprite(Image.new("RGBA", (20, 40), (0, 0, 0, 0)), 36)
        assert sprite.visible_scale == 0.55

    def test_sparse_sprite_has_small_footprint(self) -> None:
        img = Image.new("RGBA", (36, 36), (0, 0, 0, 0))
        img.paste((255, 0, 0, 255), (15, 15, 21, 21))
        sparse = prepare_sprite(img, 36)
        solid = prepare_sprite(Image.new("RGBA", (36, 36), (255, 0, 0, 255)), 36)
        assert sparse.visible_scale == pytest.approx(0.35)
        assert sparse.visible_scale < solid.visible_scale


# -- Rendering ---------------------------------------------------------

class TestRender:
    def test_budget_controls_drawn_cells(self, small_preset, source) -> None:
        comp = MosaicCompositor().build(
            dataclasses.replace(small_preset, arrangement_enabled=False), source,
        )
        for budget in (0, 10, 50):
            img = render_composition(comp, budget=budget)
            assert img.size == (60, 60)
            lit = np.any(np.array(img) != 0, axis=-1).sum()
            assert lit == min(budget, len(comp)) * 9

    def test_dots_and_guides(self, small_preset, source, sprites) -> None:
        preset = dataclasses.replace(small_preset, draw_as_rects=False, show_guides=True)
        comp = MosaicCompositor().build(preset, source, sprites)
        img = render_composition(comp)
        assert img.size == (60, 60)

    def test_layered_render(self, source) -> None:
        preset = LayeredPreset(canvas_width=60, canvas_height=60, stack_offset=2)
        layered = MosaicCompositor().build_layered(preset, source, source)
        assert render_layered(layered).size == (60, 60)

    def test_save(self, tmp_path: Path, small_preset, source) -> None:
        comp = MosaicCompositor().build(small_preset, source)
        png = save_frame(render_composition(comp), tmp_path / "out" / "frame.png")
        assert Image.open(png).size == (60, 60)
        gif = save_reveal_gif(comp, tmp_path / "reveal.gif", frames=4)
        assert gif.exists()


# -- CLI ---------------------------------------------------------------

class TestCli:
    def test_presets_command(self, tmp_path: Path) -> None:
        out = tmp_path / "presets.json"
        result = CliRunner().invoke(
            app, ["presets", "--count", "3", "--output", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert len(json.loads(out.read_text())) == 3
