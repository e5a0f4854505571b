"""Packed-colour helpers, colour distance, and representative colours."""

from __future__ import annotations

import math

import numpy as np
from PIL import Image

from tile_mosaic.errors import NoPrimaryColorError

# Clusters closer than this (RGB Euclidean) are merged into one.
_SIMILAR_DISTANCE = 0.1 * 255 * math.sqrt(3)


def pack_rgb(r: int, g: int, b: int) -> int:
    """Pack three 8-bit channels into a 24-bit ``0xRRGGBB`` int."""
    return (int(r) & 0xFF) << 16 | (int(g) & 0xFF) << 8 | (int(b) & 0xFF)


def color_vector(color: int) -> tuple[int, int, int]:
    """Unpack ``0xRRGGBB`` into an (r, g, b) tuple."""
    return (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF


def color_vectors(colors: np.ndarray) -> np.ndarray:
    """Unpack an array of packed colours into (N, 3) int64 RGB rows."""
    c = np.asarray(colors, dtype=np.int64)
    return np.stack([(c >> 16) & 0xFF, (c >> 8) & 0xFF, c & 0xFF], axis=-1)


def format_color(color: int) -> str:
    return f"#{color:06x}"


def distance(a: int, b: int) -> int:
    """Squared Euclidean distance between two packed colours."""
    ar, ag, ab = color_vector(a)
    br, bg, bb = color_vector(b)
    return (ar - br) ** 2 + (ag - bg) ** 2 + (ab - bb) ** 2


def _as_rgba(region: np.ndarray | Image.Image) -> np.ndarray:
    """Return *region* as an (H, W, 4) uint8 array."""
    if isinstance(region, Image.Image):
        return np.asarray(region.convert("RGBA"))
    arr = np.asarray(region, dtype=np.uint8)
    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, np.newaxis], 3, axis=2)
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    return arr


def average_color(region: np.ndarray | Image.Image) -> int:
    """Arithmetic mean of the R, G and B channels over every pixel.

    Raises:
        NoPrimaryColorError: If the region has no pixels.
    """
    rgba = _as_rgba(region)
    if rgba.shape[0] == 0 or rgba.shape[1] == 0:
        msg = "empty region has no average colour"
        raise NoPrimaryColorError(msg)
    mean = rgba[:, :, :3].reshape(-1, 3).mean(axis=0)
    return pack_rgb(*mean.astype(np.uint8))


def primary_color(
    region: np.ndarray | Image.Image,
    small_bucket: float = 0.01,
    down_size_to: int = 224,
) -> int:
    """Colour of the largest colour cluster in *region*.

    Pixels are sampled on a grid so neither side exceeds *down_size_to*,
    weighted by alpha, and split into eight buckets by the high bit of each
    channel. Buckets holding no more than *small_bucket* of the total weight
    are dropped; survivors whose mean colours are close are merged, and the
    heaviest cluster wins. Ties keep bucket order, so a perfectly two-tone
    black and white region resolves to black.

    Args:
        region: (H, W, 3|4) uint8 array or PIL image.
        small_bucket: Minimum weight share a cluster must exceed.
        down_size_to: Longest sampled side.

    Returns:
        Packed ``0xRRGGBB`` colour.

    Raises:
        NoPrimaryColorError: If the region is empty, fully transparent, or no
            cluster clears *small_bucket*.
    """
    rgba = _as_rgba(region)
    h, w = rgba.shape[:2]
    if h == 0 or w == 0:
        msg = "empty region has no primary colour"
        raise NoPrimaryColorError(msg)

    step_x = max(int(w / down_size_to), 1)
    step_y = max(int(h / down_size_to), 1)
    sample = rgba[::step_y, ::step_x].reshape(-1, 4)

    weight = sample[:, 3].astype(np.float64) / 255.0
    total = float(weight.sum())
    if total <= 0.0:
        msg = "region is fully transparent"
        raise NoPrimaryColorError(msg)

    rgb = sample[:, :3].astype(np.int64)
    bucket = (rgb[:, 0] >> 7) << 2 | (rgb[:, 1] >> 7) << 1 | (rgb[:, 2] >> 7)
    counts = np.bincount(bucket, weights=weight, minlength=8)
    sums = np.stack(
        [np.bincount(bucket, weights=rgb[:, c] * weight, minlength=8) for c in range(3)],
        axis=1,
    )

    order = np.argsort(-counts, kind="stable")
    clusters: list[tuple[np.ndarray, float]] = []
    for b in order:
        count = float(counts[b])
        if count <= 0.0 or count / total <= small_bucket:
            continue
        mean = np.floor(sums[b] / count)
        for i, (c_mean, c_count) in enumerate(clusters):
            if np.sqrt(np.sum((c_mean - mean) ** 2)) < _SIMILAR_DISTANCE:
                merged = np.floor((c_mean * c_count + mean * count) / (c_count + count))
                clusters[i] = (merged, c_count + count)
                break
        else:
            clusters.append((mean, count))

    if not clusters:
        msg = f"no colour cluster above threshold {small_bucket}"
        raise NoPrimaryColorError(msg)

    best_mean, _ = max(clusters, key=lambda item: item[1])
    return pack_rgb(*best_mean.astype(np.uint8))
