"""
Tile Mosaic
===========

Rebuild any image out of a collection of small tile images, each picked
because its dominant colour matches the region it replaces.

- **Indexing** walks a directory of tile images on a worker pool and maps
  each image's primary colour to its path.
- **Generation** cuts the source into a grid, looks up the nearest indexed
  colour for every tile, and composites a resized candidate in its place.
"""

__version__ = "1.0.0"

from tile_mosaic.color_utils import average_color, distance, pack_rgb, primary_color
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import (
    IndexPathError,
    MosaicError,
    NoImagesFoundError,
    NoPrimaryColorError,
)
from tile_mosaic.generator import GenerationStatus, Generator, generate
from tile_mosaic.index import ColorIndex, KDTreeIndex, LinearIndex, load_index, new_index, save_index
from tile_mosaic.index_builder import IndexBuilder, IndexImage, IndexResult, build_index
from tile_mosaic.tiler import Tile, count_tiles, iter_tiles

__all__ = [
    "ColorIndex",
    "GenerationStatus",
    "Generator",
    "IndexBuilder",
    "IndexImage",
    "IndexPathError",
    "IndexResult",
    "KDTreeIndex",
    "LinearIndex",
    "MosaicConfig",
    "MosaicError",
    "NoImagesFoundError",
    "NoPrimaryColorError",
    "Tile",
    "average_color",
    "build_index",
    "count_tiles",
    "distance",
    "generate",
    "iter_tiles",
    "load_index",
    "new_index",
    "pack_rgb",
    "primary_color",
    "save_index",
]
