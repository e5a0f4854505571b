"""Status sinks that drive rich progress bars."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from tile_mosaic.color_utils import format_color
from tile_mosaic.generator import GenerationStatus
from tile_mosaic.index_builder import IndexImage

logger = logging.getLogger(__name__)


class IndexReporter:
    """Counts indexing outcomes; the total is unknown while the walk runs."""

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self.task = progress.add_task("Indexing tiles", total=None)
        self.indexed = 0
        self.failed = 0

    def __call__(self, record: IndexImage) -> None:
        if record.ok:
            self.indexed += 1
        else:
            self.failed += 1
            logger.warning("Skipped %s: %s", record.path, record.error)
        self.progress.update(
            self.task,
            advance=1,
            description=f"Indexing tiles [dim]({self.failed} failed)[/dim]",
        )


class GenerateReporter:
    """Tracks the highest tile number seen.

    Tiles finish out of order, so the bar shows the furthest tile reached
    rather than assuming numbers arrive in sequence. The description carries
    the count of tiles actually finished, which can lag the bar.
    """

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self.task = progress.add_task("Placing tiles", total=None)
        self.max_tile = 0
        self.done = 0
        self.failed = 0

    def __call__(self, status: GenerationStatus) -> None:
        self.done += 1
        self.max_tile = max(self.max_tile, status.number)
        if not status.ok:
            self.failed += 1
            logger.debug("Tile %d left unchanged: %s", status.number, status.error)
        elif status.color is not None:
            logger.debug(
                "Tile %d %s -> %s", status.number, format_color(status.color), status.path,
            )
        self.progress.update(
            self.task,
            total=status.total,
            completed=self.max_tile,
            description=f"Placing tiles [dim]({self.done} done, {self.failed} failed)[/dim]",
        )


def make_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )
