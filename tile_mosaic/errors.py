"""Exception hierarchy shared by the indexing and generation pipelines."""

from __future__ import annotations


class MosaicError(Exception):
    """Base class for every error raised by tile_mosaic."""


class ConfigError(MosaicError, ValueError):
    """A configuration value is out of range."""


class IndexPathError(MosaicError):
    """The tile directory itself cannot be scanned."""


class NoImagesFoundError(MosaicError):
    """An indexing run finished without indexing a single image."""


class IndexFormatError(MosaicError):
    """A persisted index cannot be written or read."""


class UnsupportedFormatError(MosaicError):
    """The output path has an extension no encoder handles."""


class NoPrimaryColorError(MosaicError):
    """No colour cluster survived the size threshold."""


class NoCandidatesError(MosaicError):
    """The colour index returned no candidate images."""
