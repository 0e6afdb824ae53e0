"""Merge downloaded tour GPX files that fall inside a date range."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Final, Iterable, Sequence

from tour_export.errors import MissingTimestampError, TrackFileError
from tour_export.geo import midpoint
from tour_export.gpx_io import read_gpx, write_gpx
from tour_export.models import (
    GAP_CONNECTION_NAME,
    GPX_NAMESPACE,
    Ride,
    Track,
    TrackDocument,
    TrackPoint,
    TrackSegment,
)
from tour_export.timeutils import day_window, format_display, parse_point_time

logger = logging.getLogger(__name__)

GPX_SUFFIX: Final[str] = ".gpx"
MERGED_CREATOR: Final[str] = "Date Range GPX Merger"
GAP_CONNECTION_DESC: Final[str] = "Connected gap between rides"


@dataclass(frozen=True, slots=True)
class MergeConfig:
    """Parameters of one merge run."""

    start_date: date
    end_date: date
    output_path: Path
    tours_dir: Path = Path("tours")
    # Single continuous segment with connector points between rides.
    connect_gaps: bool = False

    @property
    def start_label(self) -> str:
        return self.start_date.isoformat()

    @property
    def end_label(self) -> str:
        return self.end_date.isoformat()


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Outcome of a merge run. document is None when no ride was in range."""

    rides: Sequence[Ride]
    document: TrackDocument | None
    output_path: Path


def _raise(err: OSError) -> None:
    raise err


def find_gpx_files(root: str | Path) -> list[Path]:
    """Recursively collect *.gpx files under root, in lexical walk order.

    Raises:
        OSError: If the directory (or any subdirectory) cannot be listed.
    """

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for fn in sorted(filenames):
            if fn.endswith(GPX_SUFFIX):
                found.append(Path(dirpath) / fn)
    return found


def ride_start_time(doc: TrackDocument, path: str | Path) -> datetime:
    """Return the timestamp of the first point that carries one.

    Raises:
        MissingTimestampError: If no point has a timestamp or it cannot be parsed.
    """

    for pt in doc.iter_points():
        if not pt.time:
            continue
        try:
            return parse_point_time(pt.time)
        except ValueError as exc:
            raise MissingTimestampError(path, str(exc)) from exc
    raise MissingTimestampError(path, "no timestamp found")


def load_ride(path: str | Path) -> Ride:
    """Parse one GPX file into a Ride named after its parent directory.

    Raises:
        TrackFileError: If the file cannot be parsed or has no usable timestamp.
    """

    p = Path(path)
    doc = read_gpx(p)
    return Ride(path=p, name=p.parent.name, started_at=ride_start_time(doc, p), document=doc)


def load_rides(paths: Iterable[Path]) -> list[Ride]:
    """Load every file, skipping (and logging) the ones that fail."""

    rides: list[Ride] = []
    for p in paths:
        try:
            rides.append(load_ride(p))
        except TrackFileError as exc:
            logger.warning("Skipping %s: %s", exc.path, exc.reason)
    return rides


def rides_in_range(rides: Iterable[Ride], start: date, end: date) -> list[Ride]:
    """Keep rides strictly after start midnight and before the day after end, sorted by time."""

    lo, hi = day_window(start, end)
    kept = [r for r in rides if lo < r.started_at < hi]
    for r in kept:
        logger.info("Found ride: %s (%s)", r.name, format_display(r.started_at))
    # sorted() is stable: equal timestamps keep discovery order
    return sorted(kept, key=lambda r: r.started_at)


def connector_point(prev: TrackPoint | None, cur: TrackPoint | None) -> TrackPoint | None:
    """Synthesize the point bridging two consecutive rides.

    Returns None when either side is missing or has latitude exactly 0.0.
    Latitude 0.0 is treated as "no position", so a boundary on the equator gets no connector.
    """

    if prev is None or cur is None:
        return None
    if prev.latitude == 0 or cur.latitude == 0:
        return None
    lat, lon = midpoint(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
    return TrackPoint(
        latitude=lat,
        longitude=lon,
        name=GAP_CONNECTION_NAME,
        description=GAP_CONNECTION_DESC,
    )


def connected_segment(rides: Sequence[Ride]) -> TrackSegment:
    """Concatenate all ride points into one segment, with a connector between rides."""

    points: list[TrackPoint] = []
    for i, ride in enumerate(rides):
        if i > 0:
            gap = connector_point(points[-1] if points else None, ride.first_point())
            if gap is not None:
                points.append(gap)
        points.extend(ride.document.iter_points())
    return TrackSegment(points=tuple(points))


def disconnected_segments(rides: Sequence[Ride]) -> list[TrackSegment]:
    """Every segment of every ride, keeping the original recording breaks."""

    return [seg for ride in rides for track in ride.document.tracks for seg in track.segments]


def build_merged_document(rides: Sequence[Ride], config: MergeConfig) -> TrackDocument:
    """Build a single-track document from rides already sorted by time."""

    if config.connect_gaps:
        segments: Sequence[TrackSegment] = [connected_segment(rides)]
    else:
        segments = disconnected_segments(rides)

    track = Track(
        name=f"Merged rides {config.start_label} to {config.end_label}",
        segments=tuple(segments),
    )
    return TrackDocument(
        tracks=(track,),
        version="1.1",
        creator=MERGED_CREATOR,
        xmlns=GPX_NAMESPACE,
    )


def merge_by_date(config: MergeConfig) -> MergeResult:
    """Merge all rides of config.tours_dir inside the date range into one GPX file.

    Args:
        config: Merge parameters.

    Returns:
        MergeResult. If no ride is in range nothing is written and document is None.

    Raises:
        OSError: If the tours directory cannot be scanned or the output cannot be written.
    """

    files = find_gpx_files(config.tours_dir)
    logger.debug("Found %s GPX file(s) under %s", len(files), config.tours_dir)

    rides = rides_in_range(load_rides(files), config.start_date, config.end_date)
    if not rides:
        return MergeResult(rides=[], document=None, output_path=config.output_path)

    doc = build_merged_document(rides, config)
    write_gpx(doc, config.output_path)
    return MergeResult(rides=rides, document=doc, output_path=config.output_path)
