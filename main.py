#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

    python main.py generate --image photo.jpg --tiles tiles/

Or index once and reuse the index:

    python -m tile_mosaic.cli index tiles/ --out tiles.idx
    python -m tile_mosaic.cli generate -i photo.jpg --index-file tiles.idx -s 16
"""

from tile_mosaic.cli import app

if __name__ == "__main__":
    app()
