"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
import time
from collections.abc import Iterator
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import ConfigError, MosaicError
from tile_mosaic.generator import Generator
from tile_mosaic.image_io import derive_output_path, load_image, output_format, save_image
from tile_mosaic.index import ColorIndex, load_index, save_index
from tile_mosaic.index_builder import IndexBuilder
from tile_mosaic.progress import GenerateReporter, IndexReporter, make_progress

app = typer.Typer(
    name="tile-mosaic",
    help="Build photomosaics out of a directory of tile images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("tile_mosaic")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


def _fail(exc: BaseException) -> typer.Exit:
    console.print(f"[red]Error:[/red] {exc}")
    return typer.Exit(1)


@contextlib.contextmanager
def _cancel_on_interrupt(cancel: threading.Event) -> Iterator[None]:
    """Turn the first Ctrl-C into a cancellation request."""

    def _handler(signum: int, frame: object) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        console.print("[yellow]Interrupted - finishing in-flight work ...[/yellow]")
        cancel.set()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not in the main thread; leave Ctrl-C alone.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _make_config(
    size: int,
    tile_width: int | None,
    tile_height: int | None,
    **kwargs: object,
) -> MosaicConfig:
    return MosaicConfig(
        tile_width=tile_width or size,
        tile_height=tile_height or size,
        **kwargs,
    )


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- generate command --------------------------------------------------

@app.command()
def generate(
    image: Path = typer.Option(..., "--image", "-i", help="Path to source image"),
    tiles: Path | None = typer.Option(
        None, "--tiles", "-t", help="Directory of tile images",
    ),
    index_file: Path | None = typer.Option(
        None, "--index-file", help="Saved index to use instead of --tiles",
    ),
    output: Path | None = typer.Option(
        None, "--out", "-o",
        help="Output image (.jpg/.png/.gif); default <name>.mosaic<ext>",
    ),
    size: int = typer.Option(_DEFAULTS.tile_width, "--size", "-s", help="Tile size"),
    tile_width: int | None = typer.Option(None, "--tile-width", help="Tile width"),
    tile_height: int | None = typer.Option(None, "--tile-height", help="Tile height"),
    workers: int = typer.Option(
        _DEFAULTS.workers, "--workers", "-w", help="Number of worker threads",
    ),
    blend: bool = typer.Option(
        _DEFAULTS.blend, "--blend/--no-blend",
        help="Blend transparent tile images onto the source image",
    ),
    scale: float = typer.Option(
        _DEFAULTS.scale, "--scale", help="Scale the source image by this factor",
    ),
    threshold: float = typer.Option(
        _DEFAULTS.index_threshold, "--threshold",
        help="Minimum share of a region for a colour cluster to count",
    ),
    strategy: str = typer.Option(
        _DEFAULTS.index_strategy, "--strategy", help="'kdtree' or 'linear'",
    ),
    seed: int | None = typer.Option(
        _DEFAULTS.seed, "--seed", help="Random seed for candidate choice",
    ),
    stable_order: bool = typer.Option(
        _DEFAULTS.stable_order, "--stable-order/--arrival-order",
        help="Insert indexed tiles sorted by path (reproducible tie-breaks)",
    ),
    save_index_path: Path | None = typer.Option(
        None, "--save-index", help="Also write the built index to this file",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Turn IMAGE into a mosaic of the tile images."""
    _setup_logging(verbose)

    if (tiles is None) == (index_file is None):
        raise _fail(ConfigError("Pass exactly one of --tiles or --index-file"))

    try:
        cfg = _make_config(
            size, tile_width, tile_height,
            workers=workers,
            blend=blend,
            scale=scale,
            index_threshold=threshold,
            index_strategy=strategy,
            seed=seed,
            stable_order=stable_order,
        )
        out = output if output is not None else derive_output_path(image)
        output_format(out)
        source = load_image(image)
    except (MosaicError, OSError) as exc:
        raise _fail(exc) from exc

    console.print(Panel.fit(
        f"[bold]TILE MOSAIC[/bold]\n"
        f"Source: {image.name} ({source.width}x{source.height})  |  Scale: {cfg.scale}\n"
        f"Tiles: {cfg.tile_width}x{cfg.tile_height}  |  Workers: {cfg.workers}\n"
        f"Blend: {cfg.blend}  |  Index: {cfg.index_strategy}",
        border_style="cyan",
    ))

    t_total = time.perf_counter()
    cancel = threading.Event()
    index_failed = 0
    with _cancel_on_interrupt(cancel), make_progress(console) as progress:
        try:
            if index_file is not None:
                index = load_index(index_file, cfg.index_strategy)
            else:
                index_reporter = IndexReporter(progress)
                index = _build(tiles, cfg, index_reporter, cancel)
                index_failed = index_reporter.failed
            if save_index_path is not None:
                save_index(index, save_index_path)

            reporter = GenerateReporter(progress)
            mosaic = Generator(cfg, index, on_status=reporter).generate(source, cancel)
            out.parent.mkdir(parents=True, exist_ok=True)
            save_image(mosaic, out)
        except (MosaicError, OSError) as exc:
            raise _fail(exc) from exc

    elapsed = time.perf_counter() - t_total
    console.print(
        f"[green]✓[/green] Saved to {out}  "
        f"[dim]{mosaic.width}x{mosaic.height}  tiles={reporter.done}"
        f"  failed={reporter.failed}  skipped images={index_failed}"
        f"  time={elapsed:.1f}s[/dim]"
    )
    if cancel.is_set():
        console.print("[yellow]Cancelled - mosaic is incomplete.[/yellow]")


def _build(
    tiles: Path, cfg: MosaicConfig, reporter: IndexReporter, cancel: threading.Event,
) -> ColorIndex:
    builder = IndexBuilder(cfg, on_status=reporter)
    result = builder.add_path(tiles, cancel)
    logger.info(
        "Loaded %d tile images (%d colours, %d failed)",
        result.indexed, len(builder.index), result.failed,
    )
    return builder.index


# -- index command -----------------------------------------------------

@app.command("index")
def index_command(
    tiles: Path = typer.Argument(..., help="Directory of tile images"),
    output: Path = typer.Option(Path("tiles.idx"), "--out", "-o", help="Index file"),
    size: int = typer.Option(_DEFAULTS.tile_width, "--size", "-s"),
    tile_width: int | None = typer.Option(None, "--tile-width"),
    tile_height: int | None = typer.Option(None, "--tile-height"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers", "-w"),
    threshold: float = typer.Option(_DEFAULTS.index_threshold, "--threshold"),
    resize: bool = typer.Option(
        _DEFAULTS.resize_tiles, "--resize/--no-resize",
        help="Fill tile images to the tile size before measuring colour",
    ),
    stable_order: bool = typer.Option(
        _DEFAULTS.stable_order, "--stable-order/--arrival-order",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Index the images in TILES and save the index for later runs."""
    _setup_logging(verbose)

    try:
        cfg = _make_config(
            size, tile_width, tile_height,
            workers=workers,
            index_threshold=threshold,
            resize_tiles=resize,
            stable_order=stable_order,
        )
    except MosaicError as exc:
        raise _fail(exc) from exc

    cancel = threading.Event()
    with _cancel_on_interrupt(cancel), make_progress(console) as progress:
        reporter = IndexReporter(progress)
        try:
            index = _build(tiles, cfg, reporter, cancel)
            output.parent.mkdir(parents=True, exist_ok=True)
            records = save_index(index, output)
        except (MosaicError, OSError) as exc:
            raise _fail(exc) from exc

    console.print(
        f"[green]✓[/green] {output}  "
        f"[dim]{records} images  colours={len(index)}  failed={reporter.failed}[/dim]"
    )


if __name__ == "__main__":
    app()
