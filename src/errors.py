"""Error taxonomy for the curator pipeline.

Per-item errors (``InvalidInput``, ``ExtractionError``) are caught at the
item boundary by the workflow and reported as strings. ``StoreError`` is
fatal to the whole run.
"""

from __future__ import annotations


class CuratorError(Exception):
    """Base error for the curator pipeline."""


class InvalidInput(CuratorError):
    """A malformed input item (URL, email payload). The item is rejected."""


class InvalidURL(InvalidInput):
    """URL is not a well-formed absolute HTTP(S) URL."""

    def __init__(self, url: str, reason: str = "malformed URL") -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class ExtractionError(CuratorError):
    """Extraction could not produce a record for a URL."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to extract {url}: {reason}")


class UnreachableResource(ExtractionError):
    """DNS failure, refused connection, or non-2xx status after retries."""


class StoreError(CuratorError):
    """Content store failure. Fatal to the run.

    ``status`` is a machine-readable code: ``unauthorized``, ``forbidden``,
    ``conflict``, ``not_found``, ``timeout``, ``invalid`` or ``error``.
    """

    def __init__(self, message: str, *, status: str = "error", path: str = "") -> None:
        self.status = status
        self.path = path
        super().__init__(message)


class MergeConflict(StoreError):
    """Two distinct canonical URLs resolved to one entry id."""

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message, status="conflict", path=path)
