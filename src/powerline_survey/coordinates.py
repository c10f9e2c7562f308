"""Coordinate text parsing and minimal GeoJSON-like geometry classification.

KML coordinates are always WGS84 in ``longitude,latitude[,altitude]`` format.
Altitude is dropped; positions are ``(lon, lat)`` tuples.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any, Literal, NamedTuple

from .models import Position

GeometryType = Literal["Point", "LineString", "MultiLineString"]


class Geometry(NamedTuple):
    """A validated Point / LineString / MultiLineString."""

    type: GeometryType
    coordinates: Any


def parse_coordinates(text: str) -> list[Position]:
    """Parse a KML ``<coordinates>`` text block, skipping malformed tuples.

    Format: ``lon,lat[,alt] lon,lat[,alt] ...`` (whitespace-separated tuples).
    """
    positions: list[Position] = []
    for token in text.strip().split():
        parts = token.split(",")
        if len(parts) < 2:
            continue
        try:
            lon = float(parts[0])
            lat = float(parts[1])
        except ValueError:
            continue
        if not (math.isfinite(lon) and math.isfinite(lat)):
            continue
        positions.append((lon, lat))
    return positions


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _as_position(value: Any) -> Position | None:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) or len(value) < 2:
        return None
    if not (_is_number(value[0]) and _is_number(value[1])):
        return None
    return (float(value[0]), float(value[1]))


def _as_path(value: Any) -> list[Position] | None:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return None
    path = [_as_position(item) for item in value]
    if any(p is None for p in path):
        return None
    return path  # type: ignore[return-value]


def parse_geometry(value: Any) -> Geometry | None:
    """Classify untyped input as a Point, LineString or MultiLineString.

    Returns None unless ``value`` is a mapping with a supported ``type`` and
    ``coordinates`` whose every position is a pair of finite numbers.
    """
    if not isinstance(value, Mapping):
        return None
    kind = value.get("type")
    coords = value.get("coordinates")

    if kind == "Point":
        position = _as_position(coords)
        return Geometry("Point", position) if position is not None else None

    if kind == "LineString":
        path = _as_path(coords)
        return Geometry("LineString", path) if path is not None else None

    if kind == "MultiLineString":
        if isinstance(coords, (str, bytes)) or not isinstance(coords, Sequence):
            return None
        paths = [_as_path(part) for part in coords]
        if any(p is None for p in paths):
            return None
        return Geometry("MultiLineString", paths)

    return None


def is_point(value: Any) -> bool:
    geometry = parse_geometry(value)
    return geometry is not None and geometry.type == "Point"


def point_wkt(position: Position) -> str:
    lon, lat = position
    return f"POINT({lon} {lat})"


def linestring_wkt(positions: Sequence[Position]) -> str:
    return "LINESTRING(" + ", ".join(f"{lon} {lat}" for lon, lat in positions) + ")"
