"""Concurrent indexing of a directory of tile images.

The pipeline has three stages::

    walk (1 thread) --paths--> measure (N threads) --records--> insert (caller)

Only the calling thread touches the :class:`~tile_mosaic.index.ColorIndex`,
so the index itself needs no locking.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from tile_mosaic.color_utils import format_color, primary_color
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import IndexPathError, NoImagesFoundError, NoPrimaryColorError
from tile_mosaic.image_io import fill, load_image, walk_images
from tile_mosaic.index import ColorIndex, new_index
from tile_mosaic.pipeline import close, merge, receive, send

logger = logging.getLogger(__name__)

# Per-image failures: reported on the status stream, never fatal.
ITEM_ERRORS = (OSError, NoPrimaryColorError, Image.DecompressionBombError)

Loader = Callable[[Path], Image.Image]
Resizer = Callable[[Image.Image, int, int], Image.Image]
Walker = Callable[[Path, frozenset[str]], Iterable[tuple[Path, Exception | None]]]


class IndexState(enum.Enum):
    """Phase an :meth:`IndexBuilder.add_path` run is in.

    PROCESSING starts when the walk hands over its first path and MERGING
    when the first measured record reaches the index.
    """

    SCANNING = "scanning"
    PROCESSING = "processing"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class IndexImage:
    """Outcome of indexing one tile image."""

    path: Path
    color: int | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class IndexResult:
    indexed: int
    failed: int


class IndexBuilder:
    """Finds tile images under a directory and adds them to a colour index.

    Args:
        config: Tile size, worker count, threshold and strategy.
        index: Index to populate; a fresh one of ``config.index_strategy``
            is created when omitted.
        loader: Decodes a path into an image.
        resizer: Fills an image to ``(width, height)``.
        walker: Yields ``(path, error)`` for candidate files under a root.
        on_status: Called in the caller's thread once per discovered image.
    """

    def __init__(
        self,
        config: MosaicConfig,
        index: ColorIndex | None = None,
        *,
        loader: Loader = load_image,
        resizer: Resizer = fill,
        walker: Walker = walk_images,
        on_status: Callable[[IndexImage], None] | None = None,
    ) -> None:
        self.config = config
        self.index = index if index is not None else new_index(config.index_strategy)
        self.loader = loader
        self.resizer = resizer
        self.walker = walker
        self.on_status = on_status
        self.state: IndexState | None = None

    def measure(self, path: Path) -> int:
        """Primary colour of the image at *path* as it will look once placed."""
        img = self.loader(path)
        if self.config.resize_tiles:
            img = self.resizer(img, self.config.tile_width, self.config.tile_height)
        return primary_color(img, self.config.index_threshold, self.config.down_size_to)

    def add_path(
        self, root: str | Path, cancel: threading.Event | None = None,
    ) -> IndexResult:
        """Index every supported image under *root*.

        Returns:
            Counts of indexed and failed images for this run.

        Raises:
            IndexPathError: If *root* is missing or not a directory.
            NoImagesFoundError: If no image was indexed.
        """
        root = Path(root)
        self.state = IndexState.SCANNING
        if not root.is_dir():
            self.state = IndexState.FAILED
            msg = f"cannot scan {root}: not a directory"
            raise IndexPathError(msg)

        workers = self.config.workers
        logger.info("Indexing %s with %d workers ...", root, workers)
        t0 = time.perf_counter()

        paths: queue.Queue = queue.Queue(maxsize=workers * 2)
        merged: queue.Queue = queue.Queue(maxsize=workers * 2)
        stop = threading.Event()
        closed = threading.Event()

        indexed = failed = 0
        with ThreadPoolExecutor(max_workers=workers + 1, thread_name_prefix="index") as pool:
            futures = [pool.submit(self._scan, root, paths, workers, cancel, stop)]
            futures += [
                pool.submit(self._worker, paths, merged, stop, closed)
                for _ in range(workers)
            ]
            try:
                for record in self._ordered(merge(merged, workers)):
                    self.state = IndexState.MERGING
                    if record.ok:
                        self.index.insert(record.color, record.path)
                        indexed += 1
                        logger.debug("%s -> %s", record.path, format_color(record.color))
                    else:
                        failed += 1
                        logger.debug("%s: %s", record.path, record.error)
                    if self.on_status is not None:
                        self.on_status(record)
            except BaseException:
                self.state = IndexState.FAILED
                raise
            finally:
                closed.set()
                stop.set()

        try:
            for future in futures:
                future.result()
        except BaseException:
            self.state = IndexState.FAILED
            raise

        logger.info(
            "Indexed %d images (%d failed, %d colours) in %.1f s",
            indexed, failed, len(self.index), time.perf_counter() - t0,
        )

        if indexed == 0:
            self.state = IndexState.FAILED
            msg = f"no images found in {root}"
            raise NoImagesFoundError(msg)

        self.state = IndexState.DONE
        return IndexResult(indexed=indexed, failed=failed)

    def _ordered(self, records: Iterator[IndexImage]) -> Iterable[IndexImage]:
        if not self.config.stable_order:
            return records
        return sorted(records, key=lambda r: str(r.path))

    def _scan(
        self,
        root: Path,
        paths: queue.Queue,
        workers: int,
        cancel: threading.Event | None,
        stop: threading.Event,
    ) -> None:
        try:
            for path, err in self.walker(root, self.config.SUPPORTED_EXTENSIONS):
                # Set before the first send so no record can precede it.
                if self.state is IndexState.SCANNING:
                    self.state = IndexState.PROCESSING
                if not send(paths, (path, err), cancel, stop):
                    logger.debug("Directory walk stopped early")
                    break
        except BaseException:
            stop.set()
            raise
        finally:
            close(paths, workers, stop)

    def _worker(
        self,
        paths: queue.Queue,
        merged: queue.Queue,
        stop: threading.Event,
        closed: threading.Event,
    ) -> None:
        try:
            for path, err in receive(paths, stop):
                if err is None:
                    try:
                        record = IndexImage(path=path, color=self.measure(path))
                    except ITEM_ERRORS as exc:
                        record = IndexImage(path=path, error=exc)
                else:
                    record = IndexImage(path=path, error=err)
                if not send(merged, record, closed):
                    break
        except BaseException:
            stop.set()
            raise
        finally:
            close(merged, 1, closed)


def build_index(
    root: str | Path,
    config: MosaicConfig,
    *,
    on_status: Callable[[IndexImage], None] | None = None,
    cancel: threading.Event | None = None,
) -> ColorIndex:
    """Build a fresh colour index from the images under *root*."""
    builder = IndexBuilder(config, on_status=on_status)
    builder.add_path(root, cancel)
    return builder.index
