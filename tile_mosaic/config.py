"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from tile_mosaic.errors import ConfigError

INDEX_STRATEGIES = ("linear", "kdtree")


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for indexing and generation.

    Attributes:
        tile_width:      Width of each output tile in pixels.
        tile_height:     Height of each output tile in pixels.
        workers:         Worker threads per pipeline (default: CPU count).
        blend:           Seed the canvas with the source and alpha-composite
                         tiles over it instead of overwriting.
        scale:           Factor applied to the source image before tiling.
        index_threshold: Minimum share of a region a colour cluster must
                         exceed to count as the primary colour.
        down_size_to:    Longest sampled side when extracting a primary colour.
        resize_tiles:    Fill tile images to the tile size before measuring
                         their colour during indexing.
        index_strategy:  "kdtree" (trained 1-NN) or "linear" (scan).
        stable_order:    Sort indexed records by path before insertion so
                         nearest-colour tie-breaks are reproducible.
        seed:            Seed for candidate selection (None = non-deterministic).
    """

    # Tiles
    tile_width: int = 10
    tile_height: int = 10

    # Concurrency
    workers: int = field(default_factory=lambda: os.cpu_count() or 1)

    # Compositing
    blend: bool = False
    scale: float = 1.0

    # Colour extraction
    index_threshold: float = 0.01
    down_size_to: int = 224

    # Indexing
    resize_tiles: bool = True
    index_strategy: str = "kdtree"
    stable_order: bool = False

    # Candidate selection
    seed: int | None = None

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".gif"}
    )

    def __post_init__(self) -> None:
        if self.tile_width <= 0 or self.tile_height <= 0:
            msg = f"Invalid tile size {self.tile_width}x{self.tile_height}"
            raise ConfigError(msg)
        if self.workers < 1:
            msg = f"Worker count must be at least 1, got {self.workers}"
            raise ConfigError(msg)
        if self.scale <= 0:
            msg = f"Scale must be positive, got {self.scale}"
            raise ConfigError(msg)
        if not 0.0 <= self.index_threshold < 1.0:
            msg = f"Index threshold must be in [0, 1), got {self.index_threshold}"
            raise ConfigError(msg)
        if self.down_size_to < 1:
            msg = f"down_size_to must be at least 1, got {self.down_size_to}"
            raise ConfigError(msg)
        if self.index_strategy not in INDEX_STRATEGIES:
            available = ", ".join(INDEX_STRATEGIES)
            msg = f"Unknown index strategy '{self.index_strategy}'. Available: {available}"
            raise ConfigError(msg)
