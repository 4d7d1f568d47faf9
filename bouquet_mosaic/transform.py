"""Canvas fitting and tone adjustment.

Rasters are ``(H, W, 4)`` uint8 RGBA arrays. The tone stages mutate the
raster in place and must run in the fixed order brightness -> contrast ->
dither (see :mod:`bouquet_mosaic.dithering`).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image

# Contrast factors are clamped to keep 259 - factor away from zero.
CONTRAST_LIMIT = 255


@dataclass(frozen=True)
class FitResult:
    """Where a source image landed inside a target canvas.

    Offsets and sizes are the exact (fractional) placement; ``image`` is
    the transparent canvas with the resized source pasted in.
    """

    offset_x: float
    offset_y: float
    width: float
    height: float
    image: Image.Image


def compute_working_size(
    canvas_width: int, canvas_height: int, pixel_size: int,
) -> tuple[int, int]:
    """Grid size in cells: ``floor(canvas / pixel_size)``, minimum 1x1."""
    pixel_size = max(1, int(pixel_size))
    return (
        max(1, int(canvas_width) // pixel_size),
        max(1, int(canvas_height) // pixel_size),
    )


def to_raster(image: Image.Image) -> np.ndarray:
    """Copy a PIL image into a writable (H, W, 4) uint8 array."""
    return np.array(image.convert("RGBA"), dtype=np.uint8)


def fit_image(
    source: Image.Image,
    target_width: int,
    target_height: int,
    scale: float = 1.0,
) -> FitResult:
    """Uniformly scale *source* into a transparent canvas, centred.

    The source is scaled to the largest size that fits the target, times
    *scale* (clamped to [0, 1]).
    """
    tw = max(1, int(target_width))
    th = max(1, int(target_height))
    scale = min(1.0, max(0.0, float(scale)))
    canvas = Image.new("RGBA", (tw, th), (0, 0, 0, 0))

    sw, sh = source.size
    if sw <= 0 or sh <= 0 or scale <= 0:
        return FitResult(tw * 0.5, th * 0.5, 0.0, 0.0, canvas)

    k = min(tw / sw, th / sh) * scale
    new_w = sw * k
    new_h = sh * k
    dx = (tw - new_w) * 0.5
    dy = (th - new_h) * 0.5

    resized = source.convert("RGBA").resize(
        (max(1, round(new_w)), max(1, round(new_h))), Image.LANCZOS,
    )
    canvas.paste(resized, (round(dx), round(dy)))
    return FitResult(dx, dy, new_w, new_h, canvas)


def fit_on_background(
    source: Image.Image,
    width: int,
    height: int,
    scale: float,
    background: tuple[int, int, int],
) -> np.ndarray:
    """Fit *source* onto an opaque background-filled grid of ``width x height``.

    Integer arithmetic throughout: the aspect-fitted base size is floored,
    scaled, capped to the grid, and centred with floored offsets.
    """
    width = max(1, int(width))
    height = max(1, int(height))
    out = Image.new("RGBA", (width, height), (*background, 255))

    sw, sh = source.size
    if sw <= 0 or sh <= 0:
        return to_raster(out)

    img_aspect = sw / sh
    base_w, base_h = width, height
    if img_aspect > width / height:
        base_h = max(1, int(width / img_aspect))
    else:
        base_w = max(1, int(height * img_aspect))

    new_w = min(max(1, int(base_w * scale)), width)
    new_h = min(max(1, int(base_h * scale)), height)

    scaled = source.convert("RGBA").resize((new_w, new_h), Image.LANCZOS)
    out.paste(scaled, ((width - new_w) // 2, (height - new_h) // 2), mask=scaled)
    return to_raster(out)


def adjust_brightness(raster: np.ndarray, offset: float) -> np.ndarray:
    """Add *offset* to R, G and B, clamped to [0, 255]. Alpha is untouched."""
    rgb = raster[..., :3].astype(np.float64) + offset
    raster[..., :3] = np.clip(np.rint(rgb), 0, 255)
    return raster


def contrast_gain(factor: float) -> float:
    """Gain of the classic contrast stretch for *factor*."""
    factor = min(CONTRAST_LIMIT, max(-CONTRAST_LIMIT, float(factor)))
    return (259.0 * (factor + 255.0)) / (255.0 * (259.0 - factor))


def adjust_contrast(raster: np.ndarray, factor: float) -> np.ndarray:
    """Apply ``gain * (v - 128) + 128`` to R, G and B, clamped to [0, 255]."""
    gain = contrast_gain(factor)
    rgb = gain * (raster[..., :3].astype(np.float64) - 128.0) + 128.0
    raster[..., :3] = np.clip(np.rint(rgb), 0, 255)
    return raster
