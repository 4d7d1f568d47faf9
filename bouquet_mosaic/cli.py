"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from bouquet_mosaic.assets import AssetLoader
from bouquet_mosaic.compositor import MosaicCompositor
from bouquet_mosaic.config import LayeredPreset
from bouquet_mosaic.palette import NAMED_PALETTES, Palette
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

app = typer.Typer(
    name="bouquet-mosaic",
    help="Dithered pixel mosaics of vases with procedural bouquets.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _select(presets: list, index: int | None) -> list:
    if index is None:
        return presets
    if not 1 <= index <= len(presets):
        console.print(f"[red]Preset index must be in 1..{len(presets)}[/red]")
        raise typer.Exit(1)
    return [presets[index - 1]]


def _palette(name: str) -> Palette:
    try:
        return Palette.named(name)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


# -- presets command ---------------------------------------------------

@app.command()
def presets(
    seed: int = typer.Option(20260209, "--seed", "-s", help="Top-level seed"),
    count: int = typer.Option(8, "--count", "-n", help="Number of presets"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the presets to this JSON file",
    ),
) -> None:
    """List the presets derived from SEED."""
    items = generate_presets(seed=seed, count=count)

    table = Table(title=f"Presets from seed {seed}", border_style="cyan")
    for column in ("#", "Image", "Pixel", "Budget", "Bright", "Contrast",
                   "Seed", "Flowers", "Scale", "Dispersion"):
        table.add_column(column, justify="right" if column != "Image" else "left")
    for i, p in enumerate(items, 1):
        table.add_row(
            str(i), Path(p.image_path).name, str(p.pixel_size), f"{p.max_cells:,}",
            str(p.brightness_offset), str(p.contrast_factor), str(p.seed),
            str(p.flower_count), f"{p.bouquet_scale:.2f}",
            f"{p.bouquet_dispersion:.2f}",
        )
    console.print(table)

    if output is not None:
        save_presets(output, items)
        console.print(f"[green]✓[/green] Saved {len(items)} presets to {output}")


# -- render command ----------------------------------------------------

@app.command()
def render(
    output_dir: Path = typer.Option(
        Path("output"), "--output", "-o", help="Results folder",
    ),
    seed: int = typer.Option(20260209, "--seed", "-s", help="Top-level seed"),
    count: int = typer.Option(8, "--count", "-n", help="Number of presets"),
    presets_file: Path | None = typer.Option(
        None, "--presets", "-p", help="Load presets from JSON instead",
    ),
    index: int | None = typer.Option(
        None, "--index", "-i", help="Render only this preset (1-based)",
    ),
    image: Path | None = typer.Option(
        None, "--image", help="Override every preset's source image",
    ),
    flowers_dir: Path | None = typer.Option(
        None, "--flowers", help="Folder of flower sprite PNGs",
    ),
    palette_name: str = typer.Option(
        "primary", "--palette", help=f"One of: {', '.join(NAMED_PALETTES)}",
    ),
    budget: int | None = typer.Option(
        None, "--budget", "-b", help="Cells to realise (default: preset budget)",
    ),
    frame: int = typer.Option(0, "--frame", help="Frame index for reshuffled reveals"),
    guides: bool = typer.Option(False, "--guides/--no-guides", help="Overlay ring guides"),
    gif: bool = typer.Option(False, "--gif/--no-gif", help="Save a reveal GIF"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Render bouquet presets to PNG."""
    _setup_logging(verbose)
    compositor = MosaicCompositor(_palette(palette_name))

    items = load_presets(presets_file) if presets_file else generate_presets(seed, count)
    items = _select(items, index)

    sprite_paths = (
        tuple(str(p) for p in sorted(flowers_dir.glob("*.png")))
        if flowers_dir else None
    )

    console.print(Panel.fit(
        f"[bold]BOUQUET MOSAIC[/bold]\n"
        f"Presets: {len(items)}  |  Palette: {palette_name}  |  "
        f"Output: {output_dir}",
        border_style="cyan",
    ))

    loader = AssetLoader()
    for n, preset in enumerate(items, 1):
        if image is not None:
            preset = replace(preset, image_path=str(image))
        if sprite_paths is not None:
            preset = replace(preset, sprite_paths=sprite_paths)
        if guides:
            preset = replace(preset, show_guides=True)

        console.rule(f"[bold cyan][{n}/{len(items)}] {preset.name}[/bold cyan]")
        t0 = time.perf_counter()
        assets = asyncio.run(
            loader.load(preset.image_path, preset.sprite_paths, preset.sprite_size),
        )
        composition = compositor.build(preset, assets.source, assets.sprites)
        frame_img = render_composition(composition, frame=frame, budget=budget)

        stem = f"bouquet-preset-{n}"
        out = save_frame(frame_img, output_dir / f"{stem}.png")
        if gif:
            save_reveal_gif(composition, output_dir / f"{stem}-reveal.gif")

        shown = len(composition.visible_cells(
            preset.max_cells if budget is None else budget, frame,
        ))
        console.print(
            f"  [green]✓[/green] {out.name}  "
            f"[dim]{composition.width}x{composition.height} grid  "
            f"{shown:,}/{len(composition):,} cells  "
            f"time={time.perf_counter() - t0:.1f}s[/dim]"
        )

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- still-life command ------------------------------------------------

@app.command("still-life")
def still_life(
    output_dir: Path = typer.Option(Path("output"), "--output", "-o"),
    seed: int = typer.Option(20260210, "--seed", "-s"),
    presets_file: Path | None = typer.Option(None, "--presets", "-p"),
    index: int | None = typer.Option(None, "--index", "-i"),
    palette_name: str = typer.Option("primary", "--palette"),
    budget: int | None = typer.Option(None, "--budget", "-b"),
    min_coverage: float | None = typer.Option(
        None, "--min-coverage", help="Per-layer budget floor, fraction of total",
    ),
    frame: int = typer.Option(0, "--frame"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Render layered still-life presets (a bouquet image stacked on a vase)."""
    _setup_logging(verbose)
    compositor = MosaicCompositor(_palette(palette_name))

    items: list[LayeredPreset] = (
        load_presets(presets_file, layered=True)
        if presets_file else generate_layered_presets(seed)
    )
    items = _select(items, index)

    loader = AssetLoader()
    for n, preset in enumerate(items, 1):
        if min_coverage is not None:
            preset = replace(preset, min_coverage=min_coverage)
        bottom, top = asyncio.run(loader.load_many([preset.bottom_image, preset.top_image]))
        layered = compositor.build_layered(preset, bottom, top)
        out = save_frame(
            render_layered(layered, frame=frame, budget=budget),
            output_dir / f"still-life-preset-{n}.png",
        )
        b_bottom, b_top = layered.budgets(budget)
        console.print(
            f"  [green]✓[/green] {out.name}  "
            f"[dim]vase {b_bottom:,}/{len(layered.bottom):,}  "
            f"still life {b_top:,}/{len(layered.top):,} cells[/dim]"
        )


if __name__ == "__main__":
    app()
