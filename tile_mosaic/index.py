"""Colour index: packed colour -> candidate tile paths, with nearest lookup.

Two lookup strategies share the same bookkeeping:

- **linear** scans every distinct colour with one vectorised distance pass.
- **kdtree** trains a :class:`scipy.spatial.cKDTree` over the distinct
  colours and retrains it after the colour set changes.

Both return the first-inserted colour when several are equally near, so the
choice of strategy never changes a mosaic.

Serialized form, repeated to end of stream::

    color        u32 little-endian
    path_length  u16 little-endian
    path         path_length bytes (UTF-8)
"""

from __future__ import annotations

import logging
import os
import struct
import threading
from pathlib import Path
from typing import BinaryIO

import numpy as np
from scipy.spatial import cKDTree

from tile_mosaic.color_utils import color_vector, color_vectors
from tile_mosaic.errors import ConfigError, IndexFormatError

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<IH")
_MAX_PATH_BYTES = 0xFFFF


class ColorIndex:
    """Maps distinct colours to the tile paths that share them.

    Mutated by a single writer while indexing, then shared read-only.
    """

    strategy = ""

    def __init__(self) -> None:
        self._paths: dict[int, list[str]] = {}
        self._colors: list[int] = []
        self._vectors: np.ndarray | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._colors)

    def __contains__(self, color: int) -> bool:
        return color in self._paths

    def colors(self) -> list[int]:
        """Distinct colours in insertion order."""
        return list(self._colors)

    def paths(self, color: int) -> list[str]:
        return list(self._paths.get(color, ()))

    def count_paths(self) -> int:
        return sum(len(p) for p in self._paths.values())

    def insert(self, color: int, path: str | Path) -> None:
        """Add *path* under *color*; a new colour joins the search set."""
        path = str(path)
        bucket = self._paths.get(color)
        if bucket is not None:
            bucket.append(path)
            return
        self._paths[color] = [path]
        self._colors.append(color)
        self._colors_changed()

    def find_nearest(self, color: int) -> tuple[int | None, list[str]]:
        """Return the nearest indexed colour and its candidate paths.

        Returns ``(None, [])`` when the index is empty.
        """
        if not self._colors:
            return None, []
        pos = self._nearest_position(np.array(color_vector(color), dtype=np.int64))
        nearest = self._colors[pos]
        return nearest, list(self._paths[nearest])

    def _colors_changed(self) -> None:
        self._vectors = None

    def _training_set(self) -> np.ndarray:
        """(N, 3) int64 RGB rows of the distinct colours, rebuilt on demand."""
        vectors = self._vectors
        if vectors is None:
            with self._lock:
                if self._vectors is None:
                    self._vectors = color_vectors(np.array(self._colors, dtype=np.int64))
                vectors = self._vectors
        return vectors

    def _nearest_position(self, query: np.ndarray) -> int:
        raise NotImplementedError

    # -- serialization -------------------------------------------------

    def write(self, stream: BinaryIO) -> int:
        """Serialize every (colour, path) pair; returns the record count.

        Records are grouped by colour in first-insertion order so that
        :meth:`read` rebuilds identical tie-breaks.
        """
        records = []
        for color in self._colors:
            for path in self._paths[color]:
                raw = path.encode("utf-8")
                if len(raw) > _MAX_PATH_BYTES:
                    msg = f"path {path[:64]}... is too long ({len(raw)} bytes)"
                    raise IndexFormatError(msg)
                records.append((color, raw))
        # Nothing reaches the stream unless every record fits.
        for color, raw in records:
            stream.write(_HEADER.pack(color, len(raw)))
            stream.write(raw)
        return len(records)

    def read(self, stream: BinaryIO) -> int:
        """Replay records from *stream* into this index; returns the count."""
        read = 0
        while True:
            header = stream.read(_HEADER.size)
            if not header:
                break
            if len(header) < _HEADER.size:
                msg = f"truncated record header after {read} records"
                raise IndexFormatError(msg)
            color, length = _HEADER.unpack(header)
            raw = stream.read(length)
            if len(raw) < length:
                msg = f"truncated path in record {read + 1}"
                raise IndexFormatError(msg)
            try:
                path = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                msg = f"record {read + 1} path is not valid UTF-8"
                raise IndexFormatError(msg) from exc
            self.insert(color, path)
            read += 1
        return read


class LinearIndex(ColorIndex):
    """O(n) scan over the distinct colours; fine up to a few thousand."""

    strategy = "linear"

    def _nearest_position(self, query: np.ndarray) -> int:
        d2 = np.sum((self._training_set() - query) ** 2, axis=1)
        # argmin returns the first minimum, i.e. the earliest inserted colour.
        return int(np.argmin(d2))


class KDTreeIndex(ColorIndex):
    """1-nearest-neighbour model trained on the distinct colours.

    Training is deferred to the first query after the colour set changed and
    happens under a lock, so concurrent readers see one consistent tree.
    """

    strategy = "kdtree"

    def __init__(self) -> None:
        super().__init__()
        self._tree: cKDTree | None = None
        self._tree_lock = threading.Lock()

    def _colors_changed(self) -> None:
        super()._colors_changed()
        self._tree = None

    def _train(self) -> cKDTree:
        vectors = self._training_set()
        with self._tree_lock:
            if self._tree is None:
                logger.debug("Training KD-tree on %d colours", len(vectors))
                self._tree = cKDTree(vectors.astype(np.float64))
            return self._tree

    def _nearest_position(self, query: np.ndarray) -> int:
        tree = self._tree
        if tree is None:
            tree = self._train()
        point = query.astype(np.float64)
        dist, _ = tree.query(point, k=1)
        # Gather every colour at the minimal distance and keep the first one.
        near = np.asarray(tree.query_ball_point(point, r=float(dist) + 1e-6), dtype=np.int64)
        d2 = np.sum((self._training_set()[near] - query) ** 2, axis=1)
        return int(near[d2 == d2.min()].min())


_STRATEGIES: dict[str, type[ColorIndex]] = {
    LinearIndex.strategy: LinearIndex,
    KDTreeIndex.strategy: KDTreeIndex,
}


def new_index(strategy: str = "kdtree") -> ColorIndex:
    """Create an empty index using *strategy* (``"kdtree"`` or ``"linear"``)."""
    cls = _STRATEGIES.get(strategy)
    if cls is None:
        available = ", ".join(sorted(_STRATEGIES))
        msg = f"Unknown index strategy '{strategy}'. Available: {available}"
        raise ConfigError(msg)
    return cls()


def save_index(index: ColorIndex, path: str | Path) -> int:
    """Write *index* to *path*; returns the number of records.

    The records go to a sibling temporary file that replaces *path* only once
    it is complete, so a failed save never leaves a loadable partial index.
    """
    path = Path(path)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp, "wb") as fh:
            count = index.write(fh)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Saved %d records (%d colours) to %s", count, len(index), path)
    return count


def load_index(path: str | Path, strategy: str = "kdtree") -> ColorIndex:
    """Rebuild an index from a file written by :func:`save_index`."""
    index = new_index(strategy)
    with open(path, "rb") as fh:
        count = index.read(fh)
    logger.info("Loaded %d records (%d colours) from %s", count, len(index), path)
    return index
