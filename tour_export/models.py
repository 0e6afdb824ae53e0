"""Data models for GPX track documents and merge candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Final, Iterator


GPX_NAMESPACE: Final[str] = "http://www.topografix.com/GPX/1/1"
KML_NAMESPACE: Final[str] = "http://www.opengis.net/kml/2.2"

# Marker name placed on synthesized connector points by the merger.
GAP_CONNECTION_NAME: Final[str] = "Gap Connection"


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A single GPX track sample.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        elevation: Elevation in meters, None when the file has no <ele>.
        time: Raw <time> text, e.g. "2025-08-16T07:12:03.000Z". None when absent.
        name: Optional point name. Connector points carry GAP_CONNECTION_NAME.
        description: Optional <desc> text.
    """

    latitude: float
    longitude: float
    elevation: float | None = None
    time: str | None = None
    name: str | None = None
    description: str | None = None

    @property
    def is_gap_connection(self) -> bool:
        return self.name == GAP_CONNECTION_NAME


@dataclass(frozen=True, slots=True)
class TrackSegment:
    """A continuously recorded stretch of points."""

    points: tuple[TrackPoint, ...] = ()


@dataclass(frozen=True, slots=True)
class Track:
    """A named sequence of segments (one tour)."""

    name: str = ""
    segments: tuple[TrackSegment, ...] = ()


@dataclass(frozen=True, slots=True)
class TrackDocument:
    """Parsed content of one GPX file."""

    tracks: tuple[Track, ...] = ()
    version: str = "1.1"
    creator: str = ""
    xmlns: str = GPX_NAMESPACE

    def iter_points(self) -> Iterator[TrackPoint]:
        """Yield every point in document order."""

        for track in self.tracks:
            for segment in track.segments:
                yield from segment.points

    @property
    def segment_count(self) -> int:
        return sum(len(t.segments) for t in self.tracks)


@dataclass(frozen=True, slots=True)
class Ride:
    """One downloaded tour considered for merging.

    Note:
        The display name is the base name of the directory holding the GPX
        file, which the downloader names after the tour id.
    """

    path: Path
    name: str
    started_at: datetime
    document: TrackDocument = field(repr=False)

    def first_point(self) -> TrackPoint | None:
        return next(self.document.iter_points(), None)
