"""Divide an image into a grid of rectangular tiles."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class Tile:
    """A rectangular region of the source image.

    ``number`` is 1-based and follows raster order (left-to-right, then
    top-to-bottom); it only identifies the tile for progress reporting.
    """

    number: int
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Pillow-style ``(left, upper, right, lower)`` box."""
        return self.x, self.y, self.x + self.width, self.y + self.height


def tile_grid(
    width: int, height: int, tile_width: int, tile_height: int,
) -> tuple[int, int]:
    """Return ``(columns, rows)`` needed to cover ``width x height``."""
    return math.ceil(width / tile_width), math.ceil(height / tile_height)


def count_tiles(width: int, height: int, tile_width: int, tile_height: int) -> int:
    columns, rows = tile_grid(width, height, tile_width, tile_height)
    return columns * rows


def iter_tiles(
    width: int,
    height: int,
    tile_width: int,
    tile_height: int,
    cancel: threading.Event | None = None,
) -> Iterator[Tile]:
    """Lazily yield the tiles covering a ``width x height`` image.

    The tiles partition the image: edge tiles are clipped to its bounds and
    no two tiles overlap. Iteration stops early, without error, once
    *cancel* is set.
    """
    columns, _ = tile_grid(width, height, tile_width, tile_height)
    for row, y in enumerate(range(0, height, tile_height)):
        for column, x in enumerate(range(0, width, tile_width)):
            if cancel is not None and cancel.is_set():
                return
            yield Tile(
                number=1 + column + row * columns,
                x=x,
                y=y,
                width=min(tile_width, width - x),
                height=min(tile_height, height - y),
            )
