"""Shared fixtures: synthetic tile images written with Pillow."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from tile_mosaic.config import MosaicConfig

TILE = 10


def write_solid(
    path: Path,
    rgb: tuple[int, int, int],
    size: tuple[int, int] = (TILE, TILE),
    alpha: int = 255,
) -> Path:
    """Write a single-colour image; *size* is (width, height)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if alpha == 255:
        Image.new("RGB", size, rgb).save(path)
    else:
        Image.new("RGBA", size, (*rgb, alpha)).save(path)
    return path


@pytest.fixture
def config() -> MosaicConfig:
    return MosaicConfig(tile_width=TILE, tile_height=TILE, workers=3, seed=7)


@pytest.fixture
def rgb_dir(tmp_path: Path) -> Path:
    """Directory holding pure blue, green and red tiles."""
    folder = tmp_path / "tiles"
    write_solid(folder / "blue.png", (0, 0, 255))
    write_solid(folder / "green.png", (0, 255, 0))
    write_solid(folder / "red.png", (255, 0, 0))
    return folder


@pytest.fixture
def two_tone() -> np.ndarray:
    """20x20 RGB array: left half black, right half white."""
    arr = np.zeros((20, 20, 3), dtype=np.uint8)
    arr[:, 10:] = 255
    return arr
