"""Procedural bouquet layout: two jittered elliptical rings of flowers.

The outer ring is placed first with a strong front bias; the inner ring
sits higher and smaller and must keep clear of everything already
placed. Points are returned sorted by depth (back to front) so they can
be painted in order.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

from bouquet_mosaic.rng import SeededRandom

logger = logging.getLogger(__name__)

MIN_FLOWERS = 6
# Flower count at which ring geometry is tuned; spacing is scaled from it.
REFERENCE_COUNT = 42
DEFAULT_ATTEMPTS_PER_FLOWER = 140


@dataclass(frozen=True)
class ArrangementPoint:
    x: float
    y: float
    depth: float
    sprite_index: int
    rotation: float
    size: float


@dataclass(frozen=True)
class ArrangementGuide:
    """An ellipse; informational only, never read back by placement."""

    center_x: float
    center_y: float
    radius_x: float
    radius_y: float


@dataclass(frozen=True)
class ArrangementOptions:
    """Inputs to :func:`generate_arrangement`.

    Shape knobs are nominally in [0, 1] and are clamped before use.
    Lifts are upward shifts in canvas pixels. ``density`` is an optional
    override blended 70/30 with the count-derived density.
    """

    center_x: float
    center_y: float
    flower_count: int = REFERENCE_COUNT
    scale: float = 0.5
    aspect: float = 0.5
    lift: float = 76.0
    inner_lift: float = 112.0
    dispersion: float = 0.6
    front_view_ratio: float = 0.22
    sprite_count: int = 1
    density: float | None = None
    attempts_per_flower: int = DEFAULT_ATTEMPTS_PER_FLOWER


@dataclass(frozen=True)
class ArrangementResult:
    """Placed points, back to front, plus each ring's own points and gap."""

    points: tuple[ArrangementPoint, ...]
    outer_points: tuple[ArrangementPoint, ...]
    inner_points: tuple[ArrangementPoint, ...]
    outer: ArrangementGuide
    inner: ArrangementGuide
    outer_min_gap: float
    inner_min_gap: float
    requested: int


@dataclass(frozen=True)
class _RingParams:
    min_gap: float
    jitter_min: float
    jitter_max: float
    vertical_jitter: float
    tangent_jitter_factor: float
    size_min: float
    size_max: float
    sprite_count: int
    front_bias: float
    dispersion: float
    attempts_per_flower: int


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _pick_angle(rand: SeededRandom, front_bias: float) -> float:
    """Angle in [0, 2pi); the front half [0, pi) with probability *front_bias*."""
    if rand() < front_bias:
        return rand() * math.pi
    return math.pi + rand() * math.pi


def sample_near_with_far_tail(
    rand: SeededRandom, lo: float, hi: float, dispersion: float,
) -> float:
    """Mostly-small magnitude in [lo, hi] with an occasional far outlier.

    A power curve keeps most draws near *lo*; with a probability that grows
    with *dispersion* the draw is instead taken from the far end of the
    span (its last 18-28 %).
    """
    span = max(0.0, hi - lo)
    if span <= 0:
        return lo

    near_power = _lerp(3.2, 2.05, dispersion)
    t = rand() ** near_power

    far_chance = 0.08 + dispersion * 0.24
    if rand() < far_chance:
        far_start = 0.72 + dispersion * 0.18
        t = far_start + rand() * (1 - far_start)

    return lo + span * t


def _place_ring(
    existing: list[ArrangementPoint],
    count: int,
    guide: ArrangementGuide,
    params: _RingParams,
    rand: SeededRandom,
) -> list[ArrangementPoint]:
    """Rejection-sample up to *count* points around *guide*.

    Gives up after ``count * attempts_per_flower`` tries; unplaced slots
    are dropped.
    """
    points: list[ArrangementPoint] = []
    min_gap_sq = params.min_gap * params.min_gap
    attempts = count * max(1, params.attempts_per_flower)
    tangent_jitter = params.min_gap * params.tangent_jitter_factor

    for _ in range(attempts):
        if len(points) >= count:
            break

        angle = _pick_angle(rand, params.front_bias)
        cos_a = math.cos(angle)
        sin_a = math.sin(angle)

        ring_x = guide.center_x + cos_a * guide.radius_x
        ring_y = guide.center_y + sin_a * guide.radius_y

        jitter_abs = sample_near_with_far_tail(
            rand, params.jitter_min, params.jitter_max, params.dispersion,
        )
        radial = jitter_abs if rand() < 0.68 else -jitter_abs
        tangent = (rand() - 0.5) * 2 * tangent_jitter
        vertical_amp = sample_near_with_far_tail(
            rand,
            params.vertical_jitter * 0.2,
            params.vertical_jitter * 1.45,
            params.dispersion,
        )
        y_offset = (rand() - 0.5) * 2 * vertical_amp

        # Normal is (cos, sin); tangent is (-sin, cos).
        x = ring_x + cos_a * radial - sin_a * tangent
        y = ring_y + sin_a * radial + cos_a * tangent * 0.2 + y_offset

        if any(
            (x - p.x) ** 2 + (y - p.y) ** 2 < min_gap_sq
            for p in existing
        ) or any(
            (x - p.x) ** 2 + (y - p.y) ** 2 < min_gap_sq
            for p in points
        ):
            continue

        sprite_index = rand.integer(params.sprite_count)
        rotation = (rand() - 0.5) * 0.26
        size = (
            (params.size_min + rand() * (params.size_max - params.size_min))
            * (0.9 + max(0.0, sin_a) * 0.22)
        )
        points.append(ArrangementPoint(x, y, sin_a, sprite_index, rotation, size))

    return points


def generate_arrangement(
    options: ArrangementOptions, rand: SeededRandom,
) -> ArrangementResult:
    """Lay out a bouquet around ``(center_x, center_y)``.

    Every stochastic decision is drawn from *rand*, so the same stream
    state and options always give the same layout. Never raises for
    degenerate inputs: counts and knobs are clamped, radii are floored.
    """
    flower_count = max(MIN_FLOWERS, int(options.flower_count))
    scale = _clamp(options.scale, 0.0, 1.0)
    aspect = _clamp(options.aspect, 0.0, 1.0)
    dispersion = _clamp(options.dispersion, 0.05, 1.0)
    front_view_ratio = _clamp(options.front_view_ratio, 0.1, 0.8)

    # Density: more flowers -> looser baseline.
    count_norm = _clamp((flower_count - 10) / 50, 0.0, 1.0)
    auto_base = 0.76 - count_norm * 0.24
    auto_jitter = (rand() - 0.5) * 0.14
    density = _clamp(auto_base + auto_jitter, 0.38, 0.88)
    if options.density is not None:
        density = _clamp(density * 0.7 + options.density * 0.3, 0.3, 0.9)

    # Outer ellipse; circle_scale keeps per-flower spacing stable.
    count_ratio = _clamp(flower_count / REFERENCE_COUNT, 0.4, 1.4)
    circle_scale = count_ratio ** 0.88

    width_base = _lerp(260, 440, count_norm)
    width_scale = _lerp(0.78, 1.28, scale)
    width_noise = 1 + (rand() - 0.5) * 0.18
    outer_width = max(110.0, width_base * width_scale * width_noise * circle_scale)

    aspect_base = _lerp(0.36, 0.76, aspect)
    aspect_noise = 1 + (rand() - 0.5) * 0.14
    raw_height = outer_width * aspect_base * aspect_noise
    front_height = min(raw_height, outer_width * front_view_ratio)
    outer_height = max(28.0, front_height * circle_scale)

    outer = ArrangementGuide(
        center_x=options.center_x,
        center_y=options.center_y - options.lift,
        radius_x=outer_width * 0.5,
        radius_y=outer_height * 0.5,
    )

    # Split between rings.
    share_noise = (rand() - 0.5) * 0.08
    outer_share = _clamp(0.62 + (0.5 - density) * 0.12 + share_noise, 0.54, 0.78)
    outer_count = int(_clamp(round(flower_count * outer_share), 4, flower_count - 2))
    inner_count = max(2, flower_count - outer_count)

    # Inner ellipse: higher and smaller.
    inner_scale_noise = (rand() - 0.5) * 0.1
    inner_scale = _clamp(0.5 + density * 0.24 + inner_scale_noise, 0.44, 0.84)
    inner_lift_jitter = (rand() - 0.5) * 2 * max(4.0, outer.radius_y * 0.12)
    inner_lift = max(0.0, options.inner_lift + inner_lift_jitter)
    inner = ArrangementGuide(
        center_x=outer.center_x,
        center_y=outer.center_y - inner_lift,
        radius_x=max(1.0, outer.radius_x * inner_scale),
        radius_y=max(1.0, outer.radius_y * inner_scale),
    )

    # Spacing and jitter, all derived from area per flower.
    area_outer = math.pi * outer.radius_x * outer.radius_y
    area_inner = math.pi * inner.radius_x * inner.radius_y * 0.9
    base_spacing = math.sqrt((area_outer + area_inner) / flower_count)
    offset_damping = _lerp(1.08, 0.66, count_norm)

    min_gap = max(2.0, base_spacing * _lerp(1.26, 0.78, density))
    jitter_min = max(1.5, min_gap * (0.1 + 0.22 * dispersion) * offset_damping)
    jitter_max = max(
        jitter_min + 1, min_gap * (0.5 + 1.55 * dispersion) * offset_damping,
    )
    vertical_jitter = max(
        4.0,
        outer.radius_y * (0.3 + 0.9 * dispersion) * _lerp(0.92, 0.56, count_norm),
    )
    tangent_jitter_factor = (0.26 + 0.75 * dispersion) * _lerp(0.9, 0.64, count_norm)
    base_size = _lerp(64, 92, count_norm) * _lerp(1.08, 1.38, scale)
    size_spread = _lerp(0.42, 0.62, dispersion)
    size_min = max(20.0, base_size * (1 - size_spread * 0.45))
    size_max = max(size_min + 8, base_size * (1 + size_spread * 1.65))

    outer_params = _RingParams(
        min_gap=min_gap,
        jitter_min=jitter_min,
        jitter_max=jitter_max,
        vertical_jitter=vertical_jitter,
        tangent_jitter_factor=tangent_jitter_factor,
        size_min=size_min,
        size_max=size_max,
        sprite_count=max(1, options.sprite_count),
        front_bias=0.82,
        dispersion=dispersion,
        attempts_per_flower=options.attempts_per_flower,
    )
    inner_params = replace(
        outer_params,
        min_gap=max(2.0, min_gap * 0.88),
        jitter_min=jitter_min * 0.6,
        jitter_max=jitter_max * 0.76,
        vertical_jitter=vertical_jitter * 0.72,
        size_min=size_min * 0.92,
        size_max=size_max * 1.02,
        front_bias=0.68,
    )

    placed: list[ArrangementPoint] = []
    outer_points = _place_ring(placed, outer_count, outer, outer_params, rand)
    placed.extend(outer_points)
    inner_points = _place_ring(placed, inner_count, inner, inner_params, rand)
    placed.extend(inner_points)

    logger.debug(
        "Bouquet: outer %d/%d, inner %d/%d, gap %.1f, outer r=(%.1f, %.1f)",
        len(outer_points), outer_count, len(inner_points), inner_count,
        min_gap, outer.radius_x, outer.radius_y,
    )

    placed.sort(key=lambda p: p.depth)
    return ArrangementResult(
        points=tuple(placed),
        outer_points=tuple(outer_points),
        inner_points=tuple(inner_points),
        outer=outer,
        inner=inner,
        outer_min_gap=outer_params.min_gap,
        inner_min_gap=inner_params.min_gap,
        requested=flower_count,
    )
