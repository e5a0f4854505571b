"""Concurrent mosaic generation.

A single producer feeds tiles into a bounded queue; every worker pulls from
that shared queue, so a worker that finishes a cheap tile immediately takes
the next one. Workers composite straight into one shared canvas array
without locking: the tiler partitions the canvas, so no two workers ever
write the same pixel.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from tile_mosaic.color_utils import format_color, primary_color
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import NoCandidatesError, NoPrimaryColorError
from tile_mosaic.image_io import fill, load_image, scale_image
from tile_mosaic.index import ColorIndex
from tile_mosaic.index_builder import ITEM_ERRORS, Loader, Resizer
from tile_mosaic.pipeline import close, merge, receive, send
from tile_mosaic.tiler import Tile, count_tiles, iter_tiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationStatus:
    """Outcome of filling one output tile."""

    tile: Tile
    total: int
    color: int | None = None
    path: str | None = None
    error: BaseException | None = None

    @property
    def number(self) -> int:
        return self.tile.number

    @property
    def ok(self) -> bool:
        return self.error is None


class Generator:
    """Builds mosaics of a source image out of the images in a colour index.

    Args:
        config: Tile size, workers, blend, scale and threshold.
        index: A fully built index; only read here.
        loader: Decodes a candidate path into an image.
        resizer: Fills an image to ``(width, height)``.
        on_status: Called in the caller's thread once per tile, in
            completion order (not tile order).
    """

    def __init__(
        self,
        config: MosaicConfig,
        index: ColorIndex,
        *,
        loader: Loader = load_image,
        resizer: Resizer = fill,
        on_status: Callable[[GenerationStatus], None] | None = None,
    ) -> None:
        self.config = config
        self.index = index
        self.loader = loader
        self.resizer = resizer
        self.on_status = on_status

    def generate(
        self, source: Image.Image, cancel: threading.Event | None = None,
    ) -> Image.Image:
        """Return an RGBA mosaic the size of the (scaled) *source*.

        Tiles that fail are reported through ``on_status`` and left as they
        were on the canvas: transparent, or the source pixels with ``blend``.
        """
        cfg = self.config
        src = scale_image(source.convert("RGBA"), cfg.scale)
        pixels = np.asarray(src)
        h, w = pixels.shape[:2]
        canvas = pixels.copy() if cfg.blend else np.zeros_like(pixels)

        total = count_tiles(w, h, cfg.tile_width, cfg.tile_height)
        workers = cfg.workers
        logger.info(
            "Generating %dx%d mosaic: %d tiles of %dx%d, %d workers ...",
            w, h, total, cfg.tile_width, cfg.tile_height, workers,
        )
        t0 = time.perf_counter()

        tiles: queue.Queue = queue.Queue(maxsize=workers * 2)
        results: queue.Queue = queue.Queue(maxsize=workers * 2)
        stop = threading.Event()
        closed = threading.Event()
        seeds = np.random.SeedSequence(cfg.seed).spawn(workers)

        failed = 0
        with ThreadPoolExecutor(max_workers=workers + 1, thread_name_prefix="mosaic") as pool:
            futures = [pool.submit(self._tileize, w, h, tiles, workers, cancel, stop)]
            futures += [
                pool.submit(
                    self._worker, tiles, results, pixels, canvas,
                    np.random.default_rng(seed), total, stop, closed,
                )
                for seed in seeds
            ]
            try:
                for status in merge(results, workers):
                    if not status.ok:
                        failed += 1
                    if self.on_status is not None:
                        self.on_status(status)
            finally:
                closed.set()
                stop.set()

        for future in futures:
            future.result()

        logger.info(
            "Mosaic done: %d tiles, %d failed (%.1f s)",
            total, failed, time.perf_counter() - t0,
        )
        return Image.fromarray(canvas)

    def match_tile(
        self,
        tile: Tile,
        pixels: np.ndarray,
        canvas: np.ndarray,
        rng: np.random.Generator,
        total: int = 0,
    ) -> GenerationStatus:
        """Find, load and composite the replacement for one tile."""
        region = pixels[tile.y : tile.y + tile.height, tile.x : tile.x + tile.width]
        try:
            color = primary_color(
                region, self.config.index_threshold, self.config.down_size_to,
            )
        except NoPrimaryColorError as exc:
            return GenerationStatus(tile=tile, total=total, error=exc)

        _, paths = self.index.find_nearest(color)
        if not paths:
            msg = f"no candidates for {format_color(color)}"
            return GenerationStatus(
                tile=tile, total=total, color=color, error=NoCandidatesError(msg),
            )

        path = paths[int(rng.integers(len(paths)))] if len(paths) > 1 else paths[0]
        logger.debug("(%d, %d) - %s -> %s", tile.x, tile.y, format_color(color), path)
        try:
            replacement = self.resizer(self.loader(Path(path)), tile.width, tile.height)
        except ITEM_ERRORS as exc:
            return GenerationStatus(tile=tile, total=total, color=color, path=path, error=exc)

        self._composite(canvas, tile, replacement)
        return GenerationStatus(tile=tile, total=total, color=color, path=path)

    def _composite(self, canvas: np.ndarray, tile: Tile, replacement: Image.Image) -> None:
        rgba = np.asarray(replacement.convert("RGBA"))
        target = canvas[tile.y : tile.y + tile.height, tile.x : tile.x + tile.width]
        if self.config.blend:
            under = Image.fromarray(np.ascontiguousarray(target))
            target[...] = np.asarray(Image.alpha_composite(under, Image.fromarray(rgba)))
        else:
            target[...] = rgba

    def _tileize(
        self,
        width: int,
        height: int,
        tiles: queue.Queue,
        workers: int,
        cancel: threading.Event | None,
        stop: threading.Event,
    ) -> None:
        cfg = self.config
        try:
            for tile in iter_tiles(width, height, cfg.tile_width, cfg.tile_height, cancel):
                if not send(tiles, tile, cancel, stop):
                    logger.debug("Tiling stopped at tile %d", tile.number)
                    break
        except BaseException:
            stop.set()
            raise
        finally:
            close(tiles, workers, stop)

    def _worker(
        self,
        tiles: queue.Queue,
        results: queue.Queue,
        pixels: np.ndarray,
        canvas: np.ndarray,
        rng: np.random.Generator,
        total: int,
        stop: threading.Event,
        closed: threading.Event,
    ) -> None:
        try:
            for tile in receive(tiles, stop):
                status = self.match_tile(tile, pixels, canvas, rng, total)
                if not send(results, status, closed):
                    break
        except BaseException:
            stop.set()
            raise
        finally:
            close(results, 1, closed)


def generate(
    source: Image.Image,
    index: ColorIndex,
    config: MosaicConfig,
    *,
    on_status: Callable[[GenerationStatus], None] | None = None,
    cancel: threading.Event | None = None,
) -> Image.Image:
    """Build a mosaic of *source* from *index*."""
    return Generator(config, index, on_status=on_status).generate(source, cancel)
