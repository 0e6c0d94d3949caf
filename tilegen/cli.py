"""Command-line interface for the terrain tile generator."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import AppConfig, get_config
from .exceptions import TileGenerationError
from .models.position import GridPosition

console = Console()


def _parse_position(ctx, param, value: str) -> GridPosition:
    try:
        return GridPosition.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _config(ctx: click.Context) -> AppConfig:
    return ctx.obj["config"]


position_argument = click.argument("position", callback=_parse_position, metavar="RX,RY,X,Y")


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", type=click.Path(file_okay=False), help="Asset directory (tiles, masks, caches)")
@click.option("--log-level", default=None, help="Logging level (default from config)")
@click.pass_context
def main(ctx: click.Context, data_dir: Optional[str], log_level: Optional[str]):
    """Seamless Terrain Tile Generator - grow a world one tile at a time."""
    config = get_config()
    if data_dir:
        config = config.model_copy(update={"data_dir": Path(data_dir)})
    _configure_logging(log_level or config.log_level)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@position_argument
@click.option("--mode", type=click.Choice(["horizontal", "vertical", "interior"]), help="Show the prompt for a mode")
def terrain(position: GridPosition, mode: Optional[str]):
    """Show the terrain assigned to a grid position."""
    from .models.outpaint_region import CompositeMode
    from .services.terrain_service import build_prompt, describe_terrain, terrain_code_for, terrain_seed

    code = terrain_code_for(position)

    table = Table(title=f"Terrain at {position}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Seed", str(terrain_seed(position)))
    table.add_row("Terrain code", str(code))
    table.add_row("Description", describe_terrain(code))
    if mode:
        table.add_row("Prompt", build_prompt(CompositeMode(mode), code))
    console.print(table)


@main.command()
@position_argument
@click.option("--area", "-a", type=(int, int), help="Resolve a WIDTH HEIGHT block from the region origin instead")
@click.pass_context
def generate(ctx: click.Context, position: GridPosition, area: Optional[tuple[int, int]]):
    """Generate (or reuse) the tile at a position.

    With --area, POSITION's region is used and every tile in the block is
    resolved in dependency order.
    """
    from .services.tile_service import TileGenerationService

    config = _config(ctx)
    try:
        service = TileGenerationService.from_config(config)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1)

    try:
        if area:
            width, height = area
            paths = asyncio.run(
                service.resolve_area(position.region_x, position.region_y, width, height)
            )
            console.print(f"[green]Resolved {len(paths)} tile(s) in[/green] {config.tiles_dir}")
        else:
            path = asyncio.run(service.resolve_tile(position))
            console.print(f"[green]Tile ready:[/green] {path}")
    except TileGenerationError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1)

    fallbacks = [p for p, attempt in service.attempts.items() if attempt.used_fallback]
    if fallbacks:
        console.print(
            f"[yellow]Warning:[/yellow] {len(fallbacks)} tile(s) used placeholders: "
            + ", ".join(str(p) for p in fallbacks)
        )


@main.command()
@position_argument
@click.option("--force", is_flag=True, help="Overwrite an existing tile")
@click.pass_context
def fallback(ctx: click.Context, position: GridPosition, force: bool):
    """Write a placeholder tile without calling any service."""
    from .services.fallback_service import FallbackTileService

    config = _config(ctx)
    service = FallbackTileService(config.tiles_dir, config.tile_size)
    target = config.tiles_dir / position.filename
    if target.exists() and not force:
        console.print(f"[yellow]Tile already exists:[/yellow] {target} (use --force)")
        return

    path = service.fallback_tile(position)
    console.print(f"[green]Saved placeholder:[/green] {path}")


@main.command("close-map")
@position_argument
@click.pass_context
def close_map(ctx: click.Context, position: GridPosition):
    """Create the close map behind a world tile."""
    from collections import Counter

    from .services.close_map_service import CloseMapService

    config = _config(ctx)
    service = CloseMapService(
        config.tiles_dir,
        size=config.close_map_size,
        cell_size=config.close_map_tile_size,
    )
    metadata = service.generate_close_map(position)

    table = Table(title=f"Close map {position} ({metadata.terrain_code})")
    table.add_column("Feature", style="cyan")
    table.add_column("Cells", justify="right")
    for description, count in Counter(metadata.tile_descriptions).most_common():
        table.add_row(description, str(count))
    console.print(table)
    console.print(f"[dim]Saved to {service.close_map_dir(position)}[/dim]")


@main.command()
@position_argument
@click.pass_context
def info(ctx: click.Context, position: GridPosition):
    """Show information about a tile."""
    from .services.tile_service import describe_tile

    tile = describe_tile(_config(ctx).tiles_dir, position)

    table = Table(title=f"Tile {position}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Path", str(tile.path))
    table.add_row("Exists", "yes" if tile.exists else "no")
    table.add_row("Terrain code", str(tile.terrain_code))
    if tile.exists:
        table.add_row("Size", f"{tile.size_bytes:,} bytes")
        table.add_row("Created", tile.created.isoformat(timespec="seconds"))
        table.add_row("Modified", tile.modified.isoformat(timespec="seconds"))
    console.print(table)


@main.command("remove-bg")
@click.argument("image_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def remove_bg(ctx: click.Context, image_path: str):
    """Strip the background from an image file, in place."""
    from .services.background_removal_service import BackgroundRemovalService

    config = _config(ctx)
    service = BackgroundRemovalService.from_config(config)
    if not service.providers:
        console.print("[yellow]No background removal API keys set; using local heuristic[/yellow]")

    path = service.remove_background(image_path)
    console.print(f"[green]Background removed:[/green] {path}")


if __name__ == "__main__":
    main()
