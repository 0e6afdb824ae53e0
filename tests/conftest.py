"""Shared fixtures: synthetic GPX files laid out like downloaded tours."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Sequence

import pytest

GPX_HEAD = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<gpx version="1.1" creator="komoot" xmlns="http://www.topografix.com/GPX/1/1">\n'
)


def iso_ms(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def ride_points(lat: float, lon: float, start: datetime | None, n: int = 3) -> list[dict]:
    """n points heading north-east, one per minute."""

    pts = []
    for i in range(n):
        pt = {"lat": lat + i * 0.001, "lon": lon + i * 0.001, "ele": 100.0 + i}
        if start is not None:
            pt["time"] = iso_ms(start + timedelta(minutes=i))
        pts.append(pt)
    return pts


def gpx_text(segments: Sequence[Sequence[dict]], track_name: str = "Ride") -> str:
    body = [GPX_HEAD, f"  <trk>\n    <name>{track_name}</name>\n"]
    for seg in segments:
        body.append("    <trkseg>\n")
        for pt in seg:
            body.append(f'      <trkpt lat="{pt["lat"]}" lon="{pt["lon"]}">\n')
            if "ele" in pt:
                body.append(f"        <ele>{pt['ele']}</ele>\n")
            if "time" in pt:
                body.append(f"        <time>{pt['time']}</time>\n")
            if "name" in pt:
                body.append(f"        <name>{pt['name']}</name>\n")
            body.append("      </trkpt>\n")
        body.append("    </trkseg>\n")
    body.append("  </trk>\n</gpx>\n")
    return "".join(body)


@pytest.fixture
def tours_dir(tmp_path: Path) -> Path:
    d = tmp_path / "tours"
    d.mkdir()
    return d


@pytest.fixture
def write_tour(tours_dir: Path) -> Callable[..., Path]:
    """Factory: write tours/<tour_id>/tour.gpx and return its path."""

    def _write(tour_id: str, segments: Sequence[Sequence[dict]], track_name: str = "Ride") -> Path:
        d = tours_dir / tour_id
        d.mkdir(parents=True, exist_ok=True)
        p = d / "tour.gpx"
        p.write_text(gpx_text(segments, track_name), encoding="utf-8")
        return p

    return _write


@pytest.fixture
def three_tours(write_tour: Callable[..., Path]) -> dict[str, list[dict]]:
    """Tours 100, 200, 300 recorded on 2025-08-16, 2025-08-20 and 2025-08-30."""

    rides = {
        "100": ride_points(48.10, 11.50, datetime(2025, 8, 16, 8, 0), n=3),
        "200": ride_points(48.20, 11.60, datetime(2025, 8, 20, 9, 30), n=4),
        "300": ride_points(48.30, 11.70, datetime(2025, 8, 30, 7, 15), n=2),
    }
    # written out of date order so that sorting is observable
    for tour_id in ("300", "100", "200"):
        write_tour(tour_id, [rides[tour_id]])
    return rides
