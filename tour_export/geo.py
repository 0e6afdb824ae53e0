"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations


def midpoint(lat1: float, lon1: float, lat2: float, lon2: float) -> tuple[float, float]:
    """Arithmetic lat/lon midpoint of two points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        (lat, lon) in degrees.

    Note:
        This is not the great-circle midpoint and is wrong across the antimeridian.
        Connector points only need to be visually between two nearby rides.
    """

    return (lat1 + lat2) / 2.0, (lon1 + lon2) / 2.0
