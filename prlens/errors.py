"""Exception hierarchy shared by the analysis core."""

from __future__ import annotations


class PRLensError(Exception):
    """Base class for every error raised by PRLens."""


class ConfigError(PRLensError):
    """A configuration value is missing, malformed or out of range."""


class ExtractionError(PRLensError):
    """A single extraction backend could not process a file.

    Raised inside backends only.  The :class:`~prlens.parser.Extractor`
    facade converts it into a soft failure on the file's result.
    """


class EmbeddingError(PRLensError):
    """An embedding generator failed to produce a vector."""


class IndexLoadError(PRLensError):
    """A persisted index snapshot could not be used."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class IndexNotFound(IndexLoadError):
    """No persisted index exists yet at the requested location."""


class CorruptIndex(IndexLoadError):
    """The persisted index exists but cannot be read."""


class StaleIndex(IndexLoadError):
    """The persisted index was written by an incompatible schema or generator.

    Recoverable by rebuilding the index.
    """

    def __init__(self, path: object, reason: str, found: object = None, expected: object = None) -> None:
        super().__init__(path, reason)
        self.found = found
        self.expected = expected
