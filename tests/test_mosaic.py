"""Tests for configuration, colour helpers, tiling and image I/O."""

from __future__ import annotations

import math
import threading
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from tests.conftest import write_solid
from tile_mosaic.color_utils import (
    average_color,
    color_vector,
    distance,
    format_color,
    pack_rgb,
    primary_color,
)
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import ConfigError, NoPrimaryColorError, UnsupportedFormatError
from tile_mosaic.image_io import (
    derive_output_path,
    fill,
    load_image,
    output_format,
    save_image,
    scale_image,
    walk_images,
)
from tile_mosaic.tiler import count_tiles, iter_tiles, tile_grid

# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert (cfg.tile_width, cfg.tile_height) == (10, 10)
        assert cfg.workers >= 1
        assert cfg.index_strategy == "kdtree"
        assert ".gif" in cfg.SUPPORTED_EXTENSIONS

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.tile_width = 32  # type: ignore[misc]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tile_width": 0},
            {"tile_height": -1},
            {"workers": 0},
            {"scale": 0.0},
            {"index_threshold": 1.0},
            {"index_strategy": "octree"},
        ],
    )
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ConfigError):
            MosaicConfig(**kwargs)

    def test_config_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            MosaicConfig(workers=0)


# -- Colour helpers ----------------------------------------------------

class TestColorMetric:
    def test_pack_round_trip(self) -> None:
        assert pack_rgb(0x12, 0x34, 0x56) == 0x123456
        assert color_vector(0x123456) == (0x12, 0x34, 0x56)
        assert format_color(0x00FF00) == "#00ff00"

    def test_distance_known_value(self) -> None:
        assert distance(0xFF0000, 0x00FF00) == 2 * 255**2
        assert distance(0x000000, 0x010203) == 1 + 4 + 9

    def test_symmetric_and_reflexive(self) -> None:
        rng = np.random.default_rng(3)
        colors = [int(c) for c in rng.integers(0, 0x1000000, size=40)]
        for a in colors:
            assert distance(a, a) == 0
            for b in colors[:10]:
                assert distance(a, b) == distance(b, a)

    def test_average_two_tone(self, two_tone: np.ndarray) -> None:
        assert average_color(two_tone) == 0x7F7F7F

    def test_average_empty_region(self) -> None:
        with pytest.raises(NoPrimaryColorError):
            average_color(np.zeros((0, 5, 3), dtype=np.uint8))


class TestPrimaryColor:
    def test_solid(self) -> None:
        arr = np.zeros((8, 8, 3), dtype=np.uint8)
        arr[:, :, 0] = 255
        assert primary_color(arr) == 0xFF0000

    def test_two_tone_tie_prefers_first_bucket(self, two_tone: np.ndarray) -> None:
        assert primary_color(two_tone) == 0x000000

    def test_dominant_beats_average(self) -> None:
        arr = np.zeros((10, 10, 3), dtype=np.uint8)
        arr[:, :] = (255, 0, 0)
        arr[:3, :] = (0, 0, 255)
        assert primary_color(arr) == 0xFF0000
        assert average_color(arr) != 0xFF0000

    def test_small_clusters_ignored(self) -> None:
        arr = np.zeros((20, 20, 3), dtype=np.uint8)
        arr[:, :] = (0, 200, 0)
        arr[0, 0] = (255, 255, 255)
        assert primary_color(arr, small_bucket=0.01) == 0x00C800

    def test_similar_buckets_merge(self) -> None:
        arr = np.zeros((10, 10, 3), dtype=np.uint8)
        arr[:6, :] = (120, 0, 0)
        arr[6:, :] = (130, 0, 0)
        assert primary_color(arr) == 0x7C0000

    def test_threshold_too_high(self, two_tone: np.ndarray) -> None:
        with pytest.raises(NoPrimaryColorError):
            primary_color(two_tone, small_bucket=0.6)

    def test_fully_transparent(self) -> None:
        arr = np.zeros((4, 4, 4), dtype=np.uint8)
        with pytest.raises(NoPrimaryColorError):
            primary_color(arr)

    def test_transparent_pixels_do_not_count(self) -> None:
        arr = np.zeros((10, 10, 4), dtype=np.uint8)
        arr[:, :] = (0, 0, 255, 255)
        arr[:7, :] = (255, 255, 255, 0)
        assert primary_color(arr) == 0x0000FF

    def test_accepts_pil_and_grayscale(self) -> None:
        assert primary_color(Image.new("RGB", (6, 6), (0, 0, 255))) == 0x0000FF
        assert primary_color(np.full((5, 5), 255, dtype=np.uint8)) == 0xFFFFFF

    def test_downsampled_large_region(self) -> None:
        arr = np.zeros((600, 500, 3), dtype=np.uint8)
        arr[:, :] = (0, 0, 255)
        assert primary_color(arr, down_size_to=50) == 0x0000FF


# -- Tiler -------------------------------------------------------------

class TestTiler:
    @pytest.mark.parametrize(
        ("w", "h", "tw", "th"),
        [(40, 30, 10, 10), (25, 17, 10, 4), (7, 3, 10, 10), (1, 1, 1, 1), (33, 8, 5, 8)],
    )
    def test_partition(self, w: int, h: int, tw: int, th: int) -> None:
        tiles = list(iter_tiles(w, h, tw, th))
        assert len(tiles) == math.ceil(w / tw) * math.ceil(h / th) == count_tiles(w, h, tw, th)

        coverage = np.zeros((h, w), dtype=np.int32)
        for t in tiles:
            assert t.x + t.width <= w
            assert t.y + t.height <= h
            coverage[t.y : t.y + t.height, t.x : t.x + t.width] += 1
        assert np.all(coverage == 1)

    def test_raster_order_numbers(self) -> None:
        tiles = list(iter_tiles(25, 20, 10, 10))
        columns, rows = tile_grid(25, 20, 10, 10)
        assert (columns, rows) == (3, 2)
        assert [t.number for t in tiles] == list(range(1, 7))
        assert [(t.x, t.y) for t in tiles[:4]] == [(0, 0), (10, 0), (20, 0), (0, 10)]

    def test_edge_tiles_clipped(self) -> None:
        tiles = list(iter_tiles(25, 15, 10, 10))
        last = tiles[-1]
        assert (last.x, last.y, last.width, last.height) == (20, 10, 5, 5)
        assert last.box == (20, 10, 25, 15)

    def test_fresh_sequence_each_call(self) -> None:
        assert list(iter_tiles(20, 20, 10, 10)) == list(iter_tiles(20, 20, 10, 10))

    def test_cancelled(self) -> None:
        cancel = threading.Event()
        cancel.set()
        assert list(iter_tiles(100, 100, 10, 10, cancel)) == []

    def test_cancel_midway(self) -> None:
        cancel = threading.Event()
        seen = []
        for tile in iter_tiles(100, 100, 10, 10, cancel):
            seen.append(tile)
            if len(seen) == 5:
                cancel.set()
        assert len(seen) == 5


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_load_is_rgba(self, tmp_path: Path) -> None:
        p = write_solid(tmp_path / "a.jpg", (10, 20, 30))
        img = load_image(p)
        assert img.mode == "RGBA"
        assert img.size == (10, 10)

    def test_load_corrupt(self, tmp_path: Path) -> None:
        p = tmp_path / "broken.png"
        p.write_bytes(b"not an image")
        with pytest.raises(OSError):
            load_image(p)

    def test_save_formats(self, tmp_path: Path) -> None:
        img = Image.new("RGBA", (8, 6), (255, 0, 0, 128))
        for suffix in (".jpg", ".jpeg", ".png", ".gif"):
            out = tmp_path / f"out{suffix}"
            save_image(img, out)
            assert Image.open(out).size == (8, 6)

    def test_unsupported_format(self, tmp_path: Path) -> None:
        with pytest.raises(UnsupportedFormatError):
            output_format(tmp_path / "out.bmp")
        with pytest.raises(UnsupportedFormatError):
            save_image(Image.new("RGB", (2, 2)), tmp_path / "out")

    def test_fill_exact_size(self) -> None:
        img = Image.new("RGBA", (64, 48), (0, 0, 255, 255))
        assert fill(img, 10, 12).size == (10, 12)
        assert fill(img, 64, 48) is img

    def test_scale(self) -> None:
        img = Image.new("RGBA", (40, 30))
        assert scale_image(img, 0.5).size == (20, 15)
        assert scale_image(img, 0.001).size == (1, 1)
        assert scale_image(img, 1.0) is img

    def test_walk_filters_and_orders(self, tmp_path: Path) -> None:
        write_solid(tmp_path / "b.PNG", (0, 0, 0))
        write_solid(tmp_path / "a.jpg", (0, 0, 0))
        write_solid(tmp_path / "sub" / "c.gif", (0, 0, 0))
        (tmp_path / "notes.txt").write_text("skip me")
        found = list(walk_images(tmp_path, MosaicConfig.SUPPORTED_EXTENSIONS))
        assert [p.name for p, _ in found] == ["a.jpg", "b.PNG", "c.gif"]
        assert all(err is None for _, err in found)

    def test_walk_missing_root(self, tmp_path: Path) -> None:
        found = list(walk_images(tmp_path / "missing", MosaicConfig.SUPPORTED_EXTENSIONS))
        assert len(found) == 1
        assert isinstance(found[0][1], OSError)

    def test_derive_output_path(self, tmp_path: Path) -> None:
        src = tmp_path / "photo.jpg"
        first = derive_output_path(src)
        assert first.name == "photo.mosaic.jpg"
        first.touch()
        assert derive_output_path(src).name == "photo.mosaic2.jpg"
