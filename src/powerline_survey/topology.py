"""Topology extraction from parsed KML documents.

Two survey layouts are supported:

- **Folders**: one top-level ``Folder`` per line, named after the line
  ``numero``. Sub-folders named like ``LineaAerea``/``Linea`` hold the path
  placemarks; sub-folders named like ``Estructuras`` hold the tower points.
- **Placemarks**: a flat list of ``Placemark`` nodes tagged through
  ``ExtendedData`` with ``linea`` (the line key) and, for towers,
  ``estructura``.

Both produce :class:`LineCandidates`, which :func:`normalize` turns into
:class:`LineTopology` records by parsing coordinates.
"""

from __future__ import annotations

import logging
from enum import Enum

from .coordinates import parse_coordinates
from .errors import UnrecognizedLayout
from .kml_reader import find_document
from .models import LineCandidates, LineTopology, MarkupElement, StructureCandidate

logger = logging.getLogger(__name__)

PATH_FOLDER_KEYS = ("lineaarea", "linea")
STRUCTURE_FOLDER_KEY = "estructura"


class Layout(str, Enum):
    FOLDERS = "folders"
    PLACEMARKS = "placemarks"


def detect_layout(document: MarkupElement) -> Layout:
    if document.find("Folder") is not None:
        return Layout.FOLDERS
    if document.find("Placemark") is not None:
        return Layout.PLACEMARKS
    raise UnrecognizedLayout("No Folders or Placemarks found in KML document")


def extract_topology(root: MarkupElement) -> list[LineTopology]:
    """Detect the layout of a parsed KML tree and return normalized per-line topology."""
    document = find_document(root)
    layout = detect_layout(document)
    if layout is Layout.FOLDERS:
        candidates = extract_folder_layout(document)
    else:
        candidates = extract_placemark_layout(document)
    logger.info("action=extract_topology layout=%s lineas=%d", layout.value, len(candidates))
    return [normalize(c) for c in candidates]


def _path_coordinates(placemark: MarkupElement) -> str | None:
    return placemark.child_text("LineString", "coordinates")


def _point_coordinates(placemark: MarkupElement) -> str | None:
    return placemark.child_text("Point", "coordinates")


def extract_folder_layout(document: MarkupElement) -> list[LineCandidates]:
    lines: list[LineCandidates] = []

    for folder in document.find_all("Folder"):
        numero = folder.child_text("name")
        if not numero:
            continue

        path_folder: MarkupElement | None = None
        structure_folder: MarkupElement | None = None
        for sub in folder.find_all("Folder"):
            sub_name = (sub.child_text("name") or "").lower()
            if any(key in sub_name for key in PATH_FOLDER_KEYS):
                path_folder = sub
            elif STRUCTURE_FOLDER_KEY in sub_name:
                structure_folder = sub

        line = LineCandidates(numero=numero)
        if path_folder is not None:
            for placemark in path_folder.find_all("Placemark"):
                coords = _path_coordinates(placemark)
                if coords:
                    line.tramos.append(coords)

        if structure_folder is not None:
            for placemark in structure_folder.find_all("Placemark"):
                name = placemark.child_text("name")
                coords = _point_coordinates(placemark)
                if name and coords:
                    line.estructuras.append(StructureCandidate(name=name, coordinates=coords))

        lines.append(line)

    return lines


def extended_data(placemark: MarkupElement) -> dict[str, str]:
    """Return the non-empty ``ExtendedData/Data`` name/value pairs of a placemark."""
    values: dict[str, str] = {}
    block = placemark.find("ExtendedData")
    if block is None:
        return values
    for data in block.find_all("Data"):
        key = data.attributes.get("name")
        value = data.child_text("value")
        if key and value and key not in values:
            values[key] = value
    return values


def extract_placemark_layout(document: MarkupElement) -> list[LineCandidates]:
    buckets: dict[str, LineCandidates] = {}

    for placemark in document.find_all("Placemark"):
        tags = extended_data(placemark)
        numero = tags.get("linea")
        if not numero:
            continue

        line = buckets.setdefault(numero, LineCandidates(numero=numero))

        if placemark.find("LineString") is not None:
            coords = _path_coordinates(placemark)
            if coords:
                line.tramos.append(coords)
        elif placemark.find("Point") is not None and tags.get("estructura"):
            name = placemark.child_text("name")
            coords = _point_coordinates(placemark)
            if name and coords:
                line.estructuras.append(StructureCandidate(name=name, coordinates=coords))
        # Untagged points used to be substations; they are no longer imported.

    return list(buckets.values())


def normalize(candidates: LineCandidates) -> LineTopology:
    """Parse candidate coordinates, discarding unusable segments and structures."""
    topology = LineTopology(numero=candidates.numero)

    for coords_text in candidates.tramos:
        positions = parse_coordinates(coords_text)
        if len(positions) < 2:
            continue
        topology.segments.append(positions)

    for candidate in candidates.estructuras:
        positions = parse_coordinates(candidate.coordinates)
        if not positions:
            continue
        topology.structures.append((candidate.name, positions[0]))

    dropped = len(candidates.tramos) - len(topology.segments) + len(candidates.estructuras) - len(topology.structures)
    if dropped:
        logger.debug("action=normalize linea=%s discarded=%d", candidates.numero, dropped)
    return topology
