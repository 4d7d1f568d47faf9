"""Image loading, sprite preparation and the procedural fallback.

Decoding happens off the event loop. A composition awaits all of its
assets before building; starting a new load cancels whatever the previous
one still had in flight, so a stale request can never feed a build.
Failures are logged and swallowed: a missing source becomes the fallback
raster, a missing sprite is simply left out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image
from skimage.measure import regionprops

logger = logging.getLogger(__name__)

# Alpha values at or below this are treated as empty when measuring sprites.
ALPHA_THRESHOLD = 6


@dataclass(frozen=True)
class FlowerSprite:
    """A square RGBA sprite plus a measure of its visible footprint."""

    image: Image.Image
    visible_scale: float


@dataclass
class Assets:
    source: Image.Image | None
    sprites: list[FlowerSprite] = field(default_factory=list)


def fallback_raster(width: int = 120, height: int = 180) -> Image.Image:
    """Deterministic diagonal gradient used when a source fails to load."""
    y, x = np.mgrid[0:height, 0:width]
    v = (x + y) % 255
    rgba = np.stack(
        [v, 255 - v, np.full_like(v, 120), np.full_like(v, 255)], axis=-1,
    ).astype(np.uint8)
    return Image.fromarray(rgba)


def empty_image(width: int = 20, height: int = 20) -> Image.Image:
    """Fully transparent placeholder for a failed layer image."""
    return Image.new("RGBA", (width, height), (0, 0, 0, 0))


def read_image(path: str | Path) -> Image.Image | None:
    """Decode *path* to RGBA, or ``None`` if it cannot be read."""
    try:
        with Image.open(path) as img:
            return img.convert("RGBA")
    except OSError as exc:
        logger.warning("Could not load image %s: %s", path, exc)
        return None


async def load_image(path: str | Path) -> Image.Image | None:
    return await asyncio.to_thread(read_image, path)


def prepare_sprite(src: Image.Image, target_size: int = 36) -> FlowerSprite:
    """Fit *src* into a transparent ``target_size`` square and measure it.

    ``visible_scale`` grows with the opaque area and with the opaque
    bounding box; sprites with little ink get a small value.
    """
    target_size = max(1, int(target_size))
    aspect = src.width / max(1, src.height)
    new_w = new_h = target_size
    if aspect > 1:
        new_h = max(1, int(target_size / aspect))
    else:
        new_w = max(1, int(target_size * aspect))

    scaled = src.convert("RGBA").resize((new_w, new_h), Image.LANCZOS)
    out = Image.new("RGBA", (target_size, target_size), (0, 0, 0, 0))
    out.paste(scaled, ((target_size - new_w) // 2, (target_size - new_h) // 2))

    mask = np.asarray(out)[..., 3] > ALPHA_THRESHOLD
    regions = regionprops(mask.astype(np.uint8))
    if not regions:
        return FlowerSprite(out, visible_scale=0.55)

    region = regions[0]
    min_row, min_col, max_row, max_col = region.bbox
    box_w = max_col - min_col
    box_h = max_row - min_row
    full = float(target_size * target_size)
    box_area_scale = (box_w * box_h / full) ** 0.5
    alpha_area_scale = (float(region.area) / full) ** 0.5
    visible_scale = max(0.35, min(1.15, alpha_area_scale * 1.35))

    return FlowerSprite(out, visible_scale=max(visible_scale, box_area_scale * 0.75))


class AssetLoader:
    """Loads the images one composition needs.

    Only the most recent :meth:`load` is allowed to finish; calling it
    again cancels the tasks of the previous call.
    """

    def __init__(self) -> None:
        self._pending: list[asyncio.Task[Image.Image | None]] = []

    def cancel(self) -> None:
        for task in self._pending:
            task.cancel()
        self._pending = []

    async def load_many(
        self, paths: Sequence[str | Path],
    ) -> list[Image.Image | None]:
        """Load *paths* concurrently; failed entries come back as ``None``."""
        self.cancel()
        tasks = [asyncio.create_task(load_image(p)) for p in paths]
        self._pending = tasks
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            if self._pending is tasks:
                self._pending = []

    async def load(
        self,
        source_path: str | Path,
        sprite_paths: Sequence[str | Path] = (),
        sprite_size: int = 36,
    ) -> Assets:
        images = await self.load_many([source_path, *sprite_paths])
        source, sprite_images = images[0], images[1:]
        sprites = [
            prepare_sprite(img, sprite_size) for img in sprite_images if img is not None
        ]
        if len(sprites) < len(sprite_images):
            logger.info("Loaded %d of %d flower sprites",
                        len(sprites), len(sprite_images))
        return Assets(source=source, sprites=sprites)
