"""Exception types raised by tour_export."""

from __future__ import annotations

from pathlib import Path


class TourExportError(Exception):
    """Base class for all errors raised by this package."""


class TrackFileError(TourExportError):
    """A GPX file could not be read or parsed."""

    def __init__(self, path: str | Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class MissingTimestampError(TrackFileError):
    """A GPX file has no usable point timestamp."""


class CredentialsError(TourExportError):
    """The credentials file is missing or incomplete."""


class DownloadError(TourExportError):
    """A request to the tour service failed."""
