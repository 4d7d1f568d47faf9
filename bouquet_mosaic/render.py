"""Pillow renderer: turn admitted cells into squares or dots on a canvas.

Only the first ``budget`` cells of a layer's current order are drawn,
which is how partial and progressive reveals work.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw

from bouquet_mosaic.arrangement import ArrangementGuide
from bouquet_mosaic.compositor import Composition, Layer, LayeredComposition

logger = logging.getLogger(__name__)

GUIDE_COLOURS = ((255, 64, 160), (64, 220, 255))


def draw_cells(
    draw: ImageDraw.ImageDraw,
    layer: Layer,
    cells: np.ndarray,
    pixel_size: int,
    origin: tuple[int, int] = (0, 0),
    as_rects: bool = True,
) -> int:
    """Draw *cells* of *layer* with their top-left grid corner at *origin*.

    Returns:
        Number of cells drawn.
    """
    width = layer.width
    pixels = layer.raster.reshape(-1, layer.raster.shape[-1])
    ox, oy = origin
    ps = pixel_size
    for i in cells.tolist():
        r, g, b = (int(c) for c in pixels[i, :3])
        px = ox + (i % width) * ps
        py = oy + (i // width) * ps
        box = (px, py, px + ps - 1, py + ps - 1)
        if as_rects:
            draw.rectangle(box, fill=(r, g, b))
        else:
            draw.ellipse(box, fill=(r, g, b))
    return len(cells)


def draw_guides(
    draw: ImageDraw.ImageDraw,
    guides: Sequence[ArrangementGuide],
    origin: tuple[int, int] = (0, 0),
) -> None:
    ox, oy = origin
    for guide, colour in zip(guides, GUIDE_COLOURS, strict=False):
        draw.ellipse(
            (
                ox + guide.center_x - guide.radius_x,
                oy + guide.center_y - guide.radius_y,
                ox + guide.center_x + guide.radius_x,
                oy + guide.center_y + guide.radius_y,
            ),
            outline=colour,
            width=2,
        )


def _grid_origin(
    canvas_w: int, canvas_h: int, grid_w: int, grid_h: int, pixel_size: int,
) -> tuple[int, int]:
    return (
        int((canvas_w - grid_w * pixel_size) * 0.5),
        int((canvas_h - grid_h * pixel_size) * 0.5),
    )


def render_composition(
    composition: Composition,
    frame: int = 0,
    budget: int | None = None,
) -> Image.Image:
    """Render one frame of a bouquet composition."""
    preset = composition.preset
    ps = max(1, int(preset.pixel_size))
    budget = preset.max_cells if budget is None else budget
    canvas = Image.new("RGB", (preset.canvas_width, preset.canvas_height), (0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    origin = _grid_origin(canvas.width, canvas.height,
                          composition.width, composition.height, ps)

    cells = composition.visible_cells(budget, frame)
    drawn = draw_cells(draw, composition, cells, ps, origin, preset.draw_as_rects)

    if preset.show_guides and composition.arrangement is not None:
        draw_guides(
            draw, (composition.arrangement.outer, composition.arrangement.inner), origin,
        )
    logger.debug("Frame %d: drew %d of %d cells", frame, drawn, len(composition))
    return canvas


def render_layered(
    layered: LayeredComposition,
    frame: int = 0,
    budget: int | None = None,
) -> Image.Image:
    """Render one frame of a still life: bottom layer first, then top."""
    preset = layered.preset
    ps = max(1, int(preset.pixel_size))
    canvas = Image.new("RGB", (preset.canvas_width, preset.canvas_height), (0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    ox, oy = _grid_origin(canvas.width, canvas.height,
                          layered.bottom.width, layered.bottom.height, ps)
    oy += preset.stack_offset * ps

    bottom_budget, top_budget = layered.budgets(budget)
    draw_cells(draw, layered.bottom, layered.bottom.visible_cells(bottom_budget, frame),
               ps, (ox, oy), preset.draw_as_rects)
    dx, dy = layered.top_offset
    draw_cells(draw, layered.top, layered.top.visible_cells(top_budget, frame),
               ps, (ox + dx * ps, oy + dy * ps), preset.draw_as_rects)
    return canvas


def save_frame(image: Image.Image, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path)
    return path


def save_reveal_gif(
    composition: Composition,
    path: str | Path,
    frames: int = 24,
    duration: int = 120,
) -> Path:
    """Animated GIF where frame k realises ``k / frames`` of the budget."""
    path = Path(path)
    frames = max(1, frames)
    total = min(composition.preset.max_cells, len(composition))
    images = [
        render_composition(composition, frame=k, budget=total * k // frames)
        for k in range(1, frames + 1)
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    images[0].save(
        path,
        save_all=True,
        append_images=images[1:],
        duration=duration,
        loop=0,
    )
    logger.info("Reveal animation saved: %s (%d frames)", path, len(images))
    return path
