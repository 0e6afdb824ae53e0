"""Convert a GPX track file to styled KML placemarks."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from tour_export.gpx_io import read_gpx, serialize_xml
from tour_export.models import KML_NAMESPACE, TrackDocument, TrackPoint, TrackSegment

logger = logging.getLogger(__name__)

NORMAL_STYLE: Final[str] = "normal"
GAP_STYLE: Final[str] = "gap"
GAP_SEGMENT_DESC: Final[str] = "Gap connection"
GAP_WIDTH_FACTOR: Final[float] = 0.75


@dataclass(frozen=True, slots=True)
class ConvertConfig:
    """Presentation options. Colors are KML aabbggrr hex strings."""

    line_color: str = "ff0000ff"  # red
    gap_color: str = "7f00ffff"  # translucent yellow
    line_width: float = 4.0
    show_waypoints: bool = False


@dataclass(frozen=True, slots=True)
class ConvertSummary:
    """Counts reported after a conversion."""

    input_path: Path
    output_path: Path
    tracks: int
    segments: int
    placemarks: int


def is_gap_segment(segment: TrackSegment, index: int, segment_count: int) -> bool:
    """Classify a segment as a gap connection.

    A segment is a gap if it contains a merger connector point, or if it has at most
    two points and is neither the first nor the last segment of its track. The second
    rule is a heuristic: short real segments in the middle of a track match it too.

    Args:
        segment: The segment to classify.
        index: 0-based index of the segment within its track.
        segment_count: Number of segments in the track.
    """

    if any(pt.is_gap_connection for pt in segment.points):
        return True
    return len(segment.points) <= 2 and 0 < index < segment_count - 1


def _fmt(value: float) -> str:
    return f"{value:.6f}"


def line_coordinate(pt: TrackPoint) -> str:
    """LineString coordinate "lon,lat[,ele]". Elevation is dropped when missing or exactly 0."""

    if pt.elevation:
        return f"{_fmt(pt.longitude)},{_fmt(pt.latitude)},{_fmt(pt.elevation)}"
    return f"{_fmt(pt.longitude)},{_fmt(pt.latitude)}"


def point_coordinate(pt: TrackPoint) -> str:
    """Point coordinate "lon,lat,ele", elevation always present."""

    return f"{_fmt(pt.longitude)},{_fmt(pt.latitude)},{_fmt(pt.elevation or 0.0)}"


def _sub_text(parent: ET.Element, tag: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, tag)
    elem.text = text
    return elem


def _add_style(document: ET.Element, style_id: str, color: str, width: float) -> None:
    style = ET.SubElement(document, "Style", {"id": style_id})
    line = ET.SubElement(style, "LineStyle")
    _sub_text(line, "color", color)
    _sub_text(line, "width", format(width, "g"))


def _add_waypoint(document: ET.Element, pt: TrackPoint) -> None:
    pm = ET.SubElement(document, "Placemark")
    _sub_text(pm, "name", pt.name or "")
    if pt.description:
        _sub_text(pm, "description", pt.description)
    point = ET.SubElement(pm, "Point")
    _sub_text(point, "coordinates", point_coordinate(pt))


def _add_line(document: ET.Element, name: str, segment: TrackSegment, gap: bool) -> None:
    pm = ET.SubElement(document, "Placemark")
    _sub_text(pm, "name", name)
    if gap:
        _sub_text(pm, "description", GAP_SEGMENT_DESC)
    _sub_text(pm, "styleUrl", f"#{GAP_STYLE if gap else NORMAL_STYLE}")
    line = ET.SubElement(pm, "LineString")
    _sub_text(line, "tessellate", "1")
    _sub_text(line, "coordinates", " ".join(line_coordinate(pt) for pt in segment.points))


def build_kml(doc: TrackDocument, config: ConvertConfig, name: str = "") -> ET.Element:
    """Build the <kml> element tree for a track document.

    Args:
        doc: Parsed GPX document.
        config: Colors, width and waypoint toggle.
        name: KML document name.

    Returns:
        Root <kml> element.
    """

    root = ET.Element("kml", {"xmlns": KML_NAMESPACE})
    document = ET.SubElement(root, "Document")
    _sub_text(document, "name", name)
    _add_style(document, NORMAL_STYLE, config.line_color, config.line_width)
    _add_style(document, GAP_STYLE, config.gap_color, config.line_width * GAP_WIDTH_FACTOR)

    unnamed = 0
    for track in doc.tracks:
        total = len(track.segments)
        base = track.name
        if not base:
            unnamed += 1
            base = f"Track {unnamed}"
        for idx, segment in enumerate(track.segments):
            if not segment.points:
                continue

            if config.show_waypoints:
                for pt in segment.points:
                    if pt.is_gap_connection:
                        _add_waypoint(document, pt)

            label = base
            if total > 1:
                label = f"{label} - Segment {idx + 1}"

            _add_line(document, label, segment, is_gap_segment(segment, idx, total))

    return root


def document_name(input_path: str | Path) -> str:
    s = str(input_path)
    return s[: -len(".gpx")] if s.endswith(".gpx") else s


def convert_gpx_to_kml(input_path: str | Path, output_path: str | Path, config: ConvertConfig) -> ConvertSummary:
    """Read a GPX file and write it as KML, overwriting output_path.

    Raises:
        TrackFileError: If the GPX file cannot be read or parsed.
        OSError: If the KML file cannot be written.
    """

    src = Path(input_path)
    dst = Path(output_path)
    doc = read_gpx(src)
    root = build_kml(doc, config, name=document_name(input_path))
    dst.write_text(serialize_xml(root), encoding="utf-8")

    placemarks = sum(1 for e in root.iter("Placemark"))
    logger.debug("Wrote %s placemark(s) to %s", placemarks, dst)
    return ConvertSummary(
        input_path=src,
        output_path=dst,
        tracks=len(doc.tracks),
        segments=doc.segment_count,
        placemarks=placemarks,
    )
