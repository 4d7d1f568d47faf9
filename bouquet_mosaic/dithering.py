"""Floyd-Steinberg error-diffusion dithering against a fixed palette.

Each pixel, in row-major order, is snapped to its nearest palette colour
and the quantisation error is pushed onto the not-yet-visited neighbours:

          *   7/16
    3/16 5/16 1/16

Error that would land outside the canvas is dropped. Colour channels are
held in separate float buffers so nothing leaks into alpha. The scan is
strictly sequential; every decision depends on error diffused earlier.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from bouquet_mosaic.palette import Palette

logger = logging.getLogger(__name__)

# (dx, dy, weight)
_KERNEL = ((1, 0, 7 / 16), (-1, 1, 3 / 16), (0, 1, 5 / 16), (1, 1, 1 / 16))


def diffuse_errors(
    raster: np.ndarray, palette: Palette,
) -> tuple[np.ndarray, np.ndarray]:
    """Run error diffusion without touching *raster*.

    Args:
        raster:  (H, W, 3+) array; only the first three channels are read.
        palette: Target colours.

    Returns:
        ``(indices, lost)`` - an (H, W) array of palette indices and the
        (3,) per-channel error that fell off the canvas edges.
    """
    h, w = raster.shape[:2]
    n = w * h
    r = raster[..., 0].astype(np.float64).ravel().tolist()
    g = raster[..., 1].astype(np.float64).ravel().tolist()
    b = raster[..., 2].astype(np.float64).ravel().tolist()
    indices = [0] * n
    colors = palette.colors
    nearest = palette.nearest_index
    lost = [0.0, 0.0, 0.0]

    for y in range(h):
        row = y * w
        for x in range(w):
            idx = row + x
            old_r, old_g, old_b = r[idx], g[idx], b[idx]
            pick = nearest(old_r, old_g, old_b)
            indices[idx] = pick
            pr, pg, pb = colors[pick]
            err_r = old_r - pr
            err_g = old_g - pg
            err_b = old_b - pb

            for dx, dy, weight in _KERNEL:
                nx = x + dx
                ny = y + dy
                if nx < 0 or nx >= w or ny >= h:
                    lost[0] += err_r * weight
                    lost[1] += err_g * weight
                    lost[2] += err_b * weight
                    continue
                j = ny * w + nx
                r[j] += err_r * weight
                g[j] += err_g * weight
                b[j] += err_b * weight

    return np.array(indices, dtype=np.intp).reshape(h, w), np.array(lost)


def dither(raster: np.ndarray, palette: Palette) -> np.ndarray:
    """Quantise *raster* in place to *palette* with error diffusion.

    After this call every pixel is exactly one palette colour and fully
    opaque.

    Args:
        raster:  (H, W, 4) uint8 RGBA, tone-adjusted.
        palette: Target colours.

    Returns:
        The same array, for chaining.
    """
    h, w = raster.shape[:2]
    t0 = time.perf_counter()
    indices, _ = diffuse_errors(raster, palette)
    raster[..., :3] = palette.array[indices]
    raster[..., 3] = 255
    logger.debug("Dithered %dx%d to %d colours (%.2f s)",
                 w, h, len(palette), time.perf_counter() - t0)
    return raster
