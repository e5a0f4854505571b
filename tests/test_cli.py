"""Tests for the Typer command-line interface and its progress sinks."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from rich.console import Console
from rich.progress import Progress
from typer.testing import CliRunner

from tests.conftest import write_solid
from tile_mosaic.cli import app
from tile_mosaic.errors import NoCandidatesError
from tile_mosaic.generator import GenerationStatus
from tile_mosaic.index import load_index
from tile_mosaic.index_builder import IndexImage
from tile_mosaic.progress import GenerateReporter, IndexReporter, make_progress
from tile_mosaic.tiler import Tile

runner = CliRunner()


@pytest.fixture
def source(tmp_path: Path) -> Path:
    p = tmp_path / "photo.png"
    Image.new("RGB", (30, 20), (250, 5, 5)).save(p)
    return p


class TestGenerateCommand:
    def test_success(self, tmp_path: Path, source: Path, rgb_dir: Path) -> None:
        out = tmp_path / "out" / "mosaic.png"
        result = runner.invoke(app, [
            "generate", "-i", str(source), "-t", str(rgb_dir), "-o", str(out),
            "-s", "10", "-w", "2", "--seed", "1",
        ])
        assert result.exit_code == 0, result.output
        img = Image.open(out)
        assert img.size == (30, 20)
        assert np.all(np.asarray(img.convert("RGB")) == (255, 0, 0))

    def test_default_output_path(self, source: Path, rgb_dir: Path) -> None:
        result = runner.invoke(app, ["generate", "-i", str(source), "-t", str(rgb_dir)])
        assert result.exit_code == 0, result.output
        assert (source.parent / "photo.mosaic.png").exists()

    def test_scale_and_jpeg(self, tmp_path: Path, source: Path, rgb_dir: Path) -> None:
        out = tmp_path / "small.jpg"
        result = runner.invoke(app, [
            "generate", "-i", str(source), "-t", str(rgb_dir), "-o", str(out),
            "--scale", "0.5", "--tile-width", "5", "--tile-height", "4",
        ])
        assert result.exit_code == 0, result.output
        assert Image.open(out).size == (15, 10)

    def test_unsupported_output(self, tmp_path: Path, source: Path, rgb_dir: Path) -> None:
        result = runner.invoke(app, [
            "generate", "-i", str(source), "-t", str(rgb_dir), "-o", str(tmp_path / "x.bmp"),
        ])
        assert result.exit_code == 1

    def test_needs_tiles_or_index(self, source: Path) -> None:
        result = runner.invoke(app, ["generate", "-i", str(source)])
        assert result.exit_code == 1

    def test_missing_tile_directory(self, tmp_path: Path, source: Path) -> None:
        result = runner.invoke(app, [
            "generate", "-i", str(source), "-t", str(tmp_path / "nope"),
            "-o", str(tmp_path / "out.png"),
        ])
        assert result.exit_code == 1
        assert not (tmp_path / "out.png").exists()

    def test_empty_tile_directory(self, tmp_path: Path, source: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(app, ["generate", "-i", str(source), "-t", str(empty)])
        assert result.exit_code == 1

    def test_missing_source(self, tmp_path: Path, rgb_dir: Path) -> None:
        result = runner.invoke(app, [
            "generate", "-i", str(tmp_path / "missing.png"), "-t", str(rgb_dir),
        ])
        assert result.exit_code == 1

    def test_invalid_tile_size(self, source: Path, rgb_dir: Path) -> None:
        result = runner.invoke(app, ["generate", "-i", str(source), "-t", str(rgb_dir), "-s", "0"])
        assert result.exit_code == 1


class TestIndexCommand:
    def test_index_then_generate(self, tmp_path: Path, source: Path, rgb_dir: Path) -> None:
        idx = tmp_path / "tiles.idx"
        result = runner.invoke(app, ["index", str(rgb_dir), "-o", str(idx), "-w", "2"])
        assert result.exit_code == 0, result.output
        assert len(load_index(idx)) == 3

        out = tmp_path / "from-index.gif"
        result = runner.invoke(app, [
            "generate", "-i", str(source), "--index-file", str(idx), "-o", str(out),
        ])
        assert result.exit_code == 0, result.output
        assert Image.open(out).size == (30, 20)

    def test_save_index_during_generate(self, tmp_path: Path, source: Path) -> None:
        tiles = tmp_path / "tiles"
        write_solid(tiles / "red.png", (255, 0, 0))
        idx = tmp_path / "saved.idx"
        result = runner.invoke(app, [
            "generate", "-i", str(source), "-t", str(tiles),
            "-o", str(tmp_path / "m.png"), "--save-index", str(idx),
        ])
        assert result.exit_code == 0, result.output
        assert load_index(idx).find_nearest(0xFF0000) == (0xFF0000, [str(tiles / "red.png")])

    def test_index_missing_directory(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["index", str(tmp_path / "nope"), "-o", str(tmp_path / "i.idx")])
        assert result.exit_code == 1

    def test_corrupt_index_file(self, tmp_path: Path, source: Path) -> None:
        idx = tmp_path / "bad.idx"
        idx.write_bytes(b"\x00\x00\xff\x00\x09\x00abc")
        result = runner.invoke(app, ["generate", "-i", str(source), "--index-file", str(idx)])
        assert result.exit_code == 1


class TestProgressReporters:
    @pytest.fixture
    def progress(self) -> Progress:
        return make_progress(Console(file=io.StringIO(), force_terminal=False))

    def test_generate_out_of_order(self, progress: Progress) -> None:
        reporter = GenerateReporter(progress)
        for number, error in [(5, None), (2, NoCandidatesError("none")), (9, None), (1, None)]:
            tile = Tile(number=number, x=0, y=0, width=1, height=1)
            reporter(GenerationStatus(tile=tile, total=9, color=0xFF0000, error=error))

        assert (reporter.max_tile, reporter.done, reporter.failed) == (9, 4, 1)
        task = progress.tasks[0]
        assert (task.completed, task.total) == (9, 9)
        assert "4 done, 1 failed" in task.description

    def test_generate_max_never_decreases(self, progress: Progress) -> None:
        reporter = GenerateReporter(progress)
        for number in (7, 3):
            tile = Tile(number=number, x=0, y=0, width=1, height=1)
            reporter(GenerationStatus(tile=tile, total=10))
        assert reporter.max_tile == 7
        assert progress.tasks[0].completed == 7

    def test_index_counts(self, progress: Progress) -> None:
        reporter = IndexReporter(progress)
        reporter(IndexImage(path=Path("a.png"), color=0x0000FF))
        reporter(IndexImage(path=Path("b.png"), error=OSError("broken")))
        assert (reporter.indexed, reporter.failed) == (1, 1)
        task = progress.tasks[0]
        assert task.completed == 2
        assert task.total is None
