#!/usr/bin/env python3
"""
benchmark.py — Time the indexing and generation pipelines on synthetic data.

    python benchmark.py --images 500 --colors 20000 --workers 8

Indexing runs over freshly written JPEG tiles in a temporary directory.
Generation runs against an index of random colours that all point at one
tile image, so the timing is dominated by colour extraction, lookup and
compositing rather than by the tile collection.
"""

from __future__ import annotations

import os
import tempfile
import time
from pathlib import Path

import numpy as np
import typer
from PIL import Image
from rich.console import Console
from rich.table import Table

from tile_mosaic.config import MosaicConfig
from tile_mosaic.generator import Generator
from tile_mosaic.index import new_index
from tile_mosaic.index_builder import IndexBuilder

console = Console()


def _write_tiles(folder: Path, count: int, size: int, rng: np.random.Generator) -> None:
    for i in range(count):
        pixels = rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)
        Image.fromarray(pixels).save(folder / f"{i}.jpg")


def main(
    images: int = typer.Option(200, "--images", help="Tile images to index"),
    image_size: int = typer.Option(100, "--image-size", help="Side of each tile image"),
    colors: int = typer.Option(10_000, "--colors", help="Distinct colours in the lookup index"),
    source_side: int = typer.Option(1024, "--source", help="Side of the synthetic source"),
    tile: int = typer.Option(16, "--tile", help="Output tile size"),
    workers: int = typer.Option(os.cpu_count() or 1, "--workers", "-w"),
    seed: int = typer.Option(0, "--seed"),
) -> None:
    """Benchmark index building, lookups and mosaic generation."""
    rng = np.random.default_rng(seed)
    table = Table(title="tile-mosaic benchmark")
    table.add_column("Stage")
    table.add_column("Items", justify="right")
    table.add_column("Seconds", justify="right")
    table.add_column("Items / s", justify="right")

    def _row(stage: str, items: int, seconds: float) -> None:
        table.add_row(stage, f"{items:,}", f"{seconds:.2f}", f"{items / max(seconds, 1e-9):,.0f}")

    cfg = MosaicConfig(tile_width=tile, tile_height=tile, workers=workers, seed=seed)

    with tempfile.TemporaryDirectory(prefix="mosaic-benchmark") as tmp:
        folder = Path(tmp)
        _write_tiles(folder, images, image_size, rng)

        t0 = time.perf_counter()
        result = IndexBuilder(cfg).add_path(folder)
        _row("index (directory)", result.indexed, time.perf_counter() - t0)

        sample = next(folder.glob("*.jpg"))
        for strategy in ("linear", "kdtree"):
            index = new_index(strategy)
            t0 = time.perf_counter()
            for color in rng.integers(0, 0x1000000, size=colors):
                index.insert(int(color), str(sample))
            _row(f"insert ({strategy})", colors, time.perf_counter() - t0)

            queries = rng.integers(0, 0x1000000, size=2_000)
            t0 = time.perf_counter()
            for q in queries:
                index.find_nearest(int(q))
            _row(f"find_nearest ({strategy})", len(queries), time.perf_counter() - t0)

        source = Image.fromarray(
            rng.integers(0, 256, size=(source_side, source_side, 3), dtype=np.uint8),
        )
        t0 = time.perf_counter()
        statuses = []
        Generator(cfg, index, on_status=statuses.append).generate(source)
        _row("generate", len(statuses), time.perf_counter() - t0)

    console.print(table)


if __name__ == "__main__":
    typer.run(main)
