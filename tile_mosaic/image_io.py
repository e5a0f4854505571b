"""Image loading, saving, resizing, and tile-directory traversal."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

from PIL import Image, ImageOps

from tile_mosaic.errors import UnsupportedFormatError

# Output suffix -> Pillow format name
OUTPUT_FORMATS: dict[str, str] = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".gif": "GIF",
}


def load_image(path: str | Path) -> Image.Image:
    """Decode the image at *path* into a fully loaded RGBA image.

    Raises:
        OSError: If the file cannot be read or decoded
            (:class:`PIL.UnidentifiedImageError` is a subclass).
    """
    with Image.open(path) as img:
        return img.convert("RGBA")


def output_format(path: str | Path) -> str:
    """Pillow format name for *path*'s suffix.

    Raises:
        UnsupportedFormatError: For suffixes other than jpg/jpeg/png/gif.
    """
    suffix = Path(path).suffix.lower()
    fmt = OUTPUT_FORMATS.get(suffix)
    if fmt is None:
        msg = f"Unknown output image type: '{suffix or path}'"
        raise UnsupportedFormatError(msg)
    return fmt


def save_image(image: Image.Image, path: str | Path) -> None:
    """Encode *image* to *path*, choosing the format from the suffix.

    JPEG has no alpha channel, so RGBA images are flattened to RGB first.
    """
    fmt = output_format(path)
    if fmt == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")
    image.save(path, format=fmt)


def fill(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize and centre-crop *image* to exactly ``width x height`` (Lanczos)."""
    if image.size == (width, height):
        return image
    return ImageOps.fit(image, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))


def scale_image(image: Image.Image, factor: float) -> Image.Image:
    """Scale both sides by *factor* (minimum 1 px), Lanczos resampling."""
    if factor == 1.0:
        return image
    w = max(1, round(image.width * factor))
    h = max(1, round(image.height * factor))
    return image.resize((w, h), Image.LANCZOS)


def walk_images(
    root: str | Path,
    extensions: frozenset[str],
) -> Iterator[tuple[Path, OSError | None]]:
    """Recursively yield ``(path, error)`` for image files under *root*.

    Entries are visited in lexical order. Files are kept when their
    lower-cased suffix is in *extensions*. A directory that cannot be listed
    yields ``(directory, error)`` and the walk carries on elsewhere.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        yield Path(root), exc
        return

    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError as exc:
            yield Path(entry.path), exc
            continue
        if is_dir:
            yield from walk_images(entry.path, extensions)
        elif Path(entry.name).suffix.lower() in extensions:
            yield Path(entry.path), None


def derive_output_path(source: str | Path) -> Path:
    """First free ``<stem>.mosaic<ext>``, ``<stem>.mosaic2<ext>``, ... beside *source*."""
    source = Path(source)
    candidate = source.with_name(f"{source.stem}.mosaic{source.suffix}")
    n = 2
    while candidate.exists():
        candidate = source.with_name(f"{source.stem}.mosaic{n}{source.suffix}")
        n += 1
    return candidate
