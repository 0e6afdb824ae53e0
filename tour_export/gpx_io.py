"""GPX input/output utilities for downloaded and merged track files."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Final

from tour_export.errors import TrackFileError
from tour_export.models import GPX_NAMESPACE, Track, TrackDocument, TrackPoint, TrackSegment

logger = logging.getLogger(__name__)

XML_DECLARATION: Final[str] = '<?xml version="1.0" encoding="UTF-8"?>'


def _local(tag: str) -> str:
    """Strip the "{namespace}" prefix ElementTree puts on qualified tags."""

    return tag.rsplit("}", 1)[-1]


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in elem if _local(c.tag) == name]


def _child_text(elem: ET.Element, name: str) -> str | None:
    for c in elem:
        if _local(c.tag) == name:
            return (c.text or "").strip()
    return None


def _parse_float(value: str) -> float:
    return float(value.strip())


def _parse_point(elem: ET.Element) -> TrackPoint:
    lat = elem.get("lat")
    lon = elem.get("lon")
    if lat is None or lon is None:
        raise ValueError("trkpt without lat/lon attribute")

    ele = _child_text(elem, "ele")
    return TrackPoint(
        latitude=_parse_float(lat),
        longitude=_parse_float(lon),
        elevation=_parse_float(ele) if ele else None,
        time=_child_text(elem, "time") or None,
        name=_child_text(elem, "name") or None,
        description=_child_text(elem, "desc") or None,
    )


def document_from_element(root: ET.Element) -> TrackDocument:
    """Build a TrackDocument from a parsed <gpx> root element.

    Raises:
        ValueError: If the root is not <gpx> or a coordinate is malformed.
    """

    if _local(root.tag) != "gpx":
        raise ValueError(f"expected <gpx> root element, got <{_local(root.tag)}>")

    xmlns = root.tag[1:].split("}", 1)[0] if root.tag.startswith("{") else ""
    tracks = []
    for trk in _children(root, "trk"):
        segments = tuple(
            TrackSegment(points=tuple(_parse_point(pt) for pt in _children(seg, "trkpt")))
            for seg in _children(trk, "trkseg")
        )
        tracks.append(Track(name=_child_text(trk, "name") or "", segments=segments))

    return TrackDocument(
        tracks=tuple(tracks),
        version=root.get("version", ""),
        creator=root.get("creator", ""),
        xmlns=xmlns,
    )


def read_gpx(gpx_path: str | Path) -> TrackDocument:
    """Load a GPX file.

    Args:
        gpx_path: Path to the GPX file.

    Returns:
        Parsed TrackDocument. Only <trk> data is kept; waypoints and routes are ignored.

    Raises:
        TrackFileError: If the file cannot be read or is not valid GPX.
    """

    p = Path(gpx_path)
    try:
        root = ET.parse(p).getroot()
    except OSError as exc:
        raise TrackFileError(p, f"cannot read file: {exc}") from exc
    except (ET.ParseError, LookupError) as exc:
        raise TrackFileError(p, f"malformed XML: {exc}") from exc

    try:
        doc = document_from_element(root)
    except ValueError as exc:
        raise TrackFileError(p, str(exc)) from exc

    logger.debug("Parsed %s: %s track(s), %s segment(s)", p, len(doc.tracks), doc.segment_count)
    return doc


def format_coordinate(value: float) -> str:
    """Format a float without exponent notation (xsd:decimal)."""

    s = repr(float(value))
    if "e" in s or "E" in s:
        s = f"{value:.12f}".rstrip("0").rstrip(".")
    return s


def _sub_text(parent: ET.Element, tag: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, tag)
    elem.text = text
    return elem


def document_to_element(doc: TrackDocument) -> ET.Element:
    root = ET.Element(
        "gpx",
        {
            "version": doc.version,
            "creator": doc.creator,
            "xmlns": doc.xmlns or GPX_NAMESPACE,
        },
    )
    for track in doc.tracks:
        trk = ET.SubElement(root, "trk")
        _sub_text(trk, "name", track.name)
        for segment in track.segments:
            seg = ET.SubElement(trk, "trkseg")
            for pt in segment.points:
                e = ET.SubElement(
                    seg,
                    "trkpt",
                    {"lat": format_coordinate(pt.latitude), "lon": format_coordinate(pt.longitude)},
                )
                # GPX 1.1 schema order: ele, time, name, desc
                if pt.elevation is not None:
                    _sub_text(e, "ele", format_coordinate(pt.elevation))
                if pt.time:
                    _sub_text(e, "time", pt.time)
                if pt.name:
                    _sub_text(e, "name", pt.name)
                if pt.description:
                    _sub_text(e, "desc", pt.description)
    return root


def serialize_xml(root: ET.Element) -> str:
    """Render an element tree as indented text with the XML declaration."""

    ET.indent(root, space="  ")
    return XML_DECLARATION + "\n" + ET.tostring(root, encoding="unicode")


def write_gpx(doc: TrackDocument, out_path: str | Path) -> None:
    """Write a TrackDocument to disk, overwriting any existing file.

    Raises:
        OSError: If the file cannot be written.
    """

    p = Path(out_path)
    p.write_text(serialize_xml(document_to_element(doc)), encoding="utf-8")
