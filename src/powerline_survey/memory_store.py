"""Process-local spatial store.

Implements both the store CRUD surface and the geometry primitives in Python,
so the service can run without a database (development, tests). Geometries
are kept as GeoJSON-like mappings in WGS84 lon/lat.

Transactions are serialized by a re-entrant lock, and each one keeps a journal
of undo steps for the writes it made. A rollback replays only that journal,
so work committed by other transactions is never reverted.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from pyproj import Geod
from shapely.geometry import Point, shape

from .coordinates import Geometry, parse_geometry
from .errors import StoreError
from .models import Line, Position, Segment, Structure

logger = logging.getLogger(__name__)


def _point(position: Position) -> dict[str, Any]:
    return {"type": "Point", "coordinates": [position[0], position[1]]}


def _linestring(positions: Sequence[Position]) -> dict[str, Any]:
    return {"type": "LineString", "coordinates": [[lon, lat] for lon, lat in positions]}


class InMemoryStore:
    """Dict-backed store; a transaction undoes its own writes when an exception escapes it."""

    def __init__(self, ellps: str = "WGS84"):
        self._lines: dict[str, Line] = {}
        self._segments: list[Segment] = []
        self._structures: list[Structure] = []
        self._geod = Geod(ellps=ellps)
        self._lock = threading.RLock()
        self._local = threading.local()

    # -- transactions -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStore]:
        journal: list[Callable[[], None]] = []
        with self._lock:
            journals = self._journals()
            journals.append(journal)
            try:
                yield self
            except BaseException:
                for undo in reversed(journal):
                    undo()
                logger.debug("action=rollback undone=%d", len(journal))
                raise
            finally:
                journals.pop()

    def _journals(self) -> list[list[Callable[[], None]]]:
        if not hasattr(self._local, "journals"):
            self._local.journals = []
        return self._local.journals

    def _record(self, undo: Callable[[], None]) -> None:
        # Writes outside a transaction commit immediately.
        journals = self._journals()
        if journals:
            journals[-1].append(undo)

    # -- reads ------------------------------------------------------------

    def get_line(self, line_id: str) -> Line | None:
        with self._lock:
            return self._lines.get(line_id)

    def find_line_by_numero(self, numero: str) -> Line | None:
        with self._lock:
            for line in self._lines.values():
                if line.numero == numero:
                    return line
        return None

    def list_segments(self, line_id: str) -> list[Segment]:
        with self._lock:
            return sorted((s for s in self._segments if s.linea_id == line_id), key=lambda s: s.orden)

    def list_structures(self, line_id: str) -> list[Structure]:
        with self._lock:
            structures = [s for s in self._structures if s.linea_id == line_id]
        return sorted(structures, key=lambda s: (s.km is None, s.km or 0.0))

    # -- writes -----------------------------------------------------------

    def create_line(self, numero: str, nombre: str | None = None) -> Line:
        with self._lock:
            if self.find_line_by_numero(numero) is not None:
                raise StoreError(f"duplicate key value: numero={numero}")
            line = Line(id=str(uuid.uuid4()), numero=numero, nombre=nombre)
            self._lines[line.id] = line
            self._record(lambda: self._lines.pop(line.id, None))
        return line

    def update_line(self, line_id: str, **changes: Any) -> Line:
        with self._lock:
            line = self._require_line(line_id)
            updated = line.model_copy(update=changes)
            self._lines[line_id] = updated
            self._record(lambda: self._lines.__setitem__(line_id, line))
        return updated

    def delete_line_children(self, line_id: str) -> None:
        with self._lock:
            segments = [s for s in self._segments if s.linea_id == line_id]
            structures = [s for s in self._structures if s.linea_id == line_id]
            self._segments = [s for s in self._segments if s.linea_id != line_id]
            self._structures = [s for s in self._structures if s.linea_id != line_id]

            def undo() -> None:
                self._segments.extend(segments)
                self._structures.extend(structures)

            self._record(undo)

    def insert_segment(self, line_id: str, orden: int, positions: Sequence[Position]) -> None:
        with self._lock:
            self._require_line(line_id)
            if len(positions) < 2:
                raise StoreError("a LineString needs at least two positions")
            segment = Segment(id=str(uuid.uuid4()), linea_id=line_id, orden=orden, geom=_linestring(positions))
            self._segments.append(segment)
            self._record(lambda: self._drop_segment(segment.id))

    def insert_structure(self, line_id: str, numero_estructura: str, km: float, position: Position) -> None:
        with self._lock:
            self._require_line(line_id)
            structure = Structure(
                id=str(uuid.uuid4()),
                linea_id=line_id,
                numero_estructura=numero_estructura,
                km=km,
                geom=_point(position),
            )
            self._structures.append(structure)
            self._record(lambda: self._drop_structure(structure.id))

    def finalize_import_for_line(self, line_id: str) -> None:
        """Build the line geometry from its segments and derive km values.

        ``km_fin`` is the geodesic length of the segments; each structure's km is
        its projected position along the merged path, scaled to that length.
        """
        with self._lock:
            self._finalize(line_id)

    def _finalize(self, line_id: str) -> None:
        self._require_line(line_id)
        paths = [s.geom["coordinates"] for s in self.list_segments(line_id)]
        if not paths:
            raise StoreError(f"linea {line_id} has no tramos")

        if len(paths) == 1:
            geom = {"type": "LineString", "coordinates": paths[0]}
        else:
            geom = {"type": "MultiLineString", "coordinates": paths}

        length_m = 0.0
        for path in paths:
            lons, lats = zip(*path)
            length_m += self._geod.line_length(lons, lats)
        km_fin = length_m / 1000

        path_shape = shape(geom)
        for index, structure in enumerate(self._structures):
            if structure.linea_id != line_id:
                continue
            lon, lat = structure.geom["coordinates"]
            fraction = path_shape.project(Point(lon, lat), normalized=True) if path_shape.length else 0.0
            measured = structure.model_copy(update={"km": fraction * km_fin})
            self._structures[index] = measured
            self._record(lambda old=structure, new=measured: self._swap_structure(new, old))

        self.update_line(line_id, geom=geom, km_inicio=0.0, km_fin=km_fin)
        logger.debug("action=finalize linea=%s tramos=%d km_fin=%.3f", line_id, len(paths), km_fin)

    def _drop_segment(self, segment_id: str) -> None:
        self._segments = [s for s in self._segments if s.id != segment_id]

    def _drop_structure(self, structure_id: str) -> None:
        self._structures = [s for s in self._structures if s.id != structure_id]

    def _swap_structure(self, current: Structure, previous: Structure) -> None:
        for index, structure in enumerate(self._structures):
            if structure is current:
                self._structures[index] = previous
                return

    def _require_line(self, line_id: str) -> Line:
        line = self._lines.get(line_id)
        if line is None:
            raise StoreError(f"linea {line_id} does not exist")
        return line

    # -- geometry primitives ----------------------------------------------

    def interpolate_point(self, geom1: Any, geom2: Any, km1: float, km2: float, km_target: float) -> dict[str, float]:
        """Point at ``km_target`` on the geodesic between two structures at ``km1`` and ``km2``."""
        (lon1, lat1), (lon2, lat2) = _point_coords(geom1), _point_coords(geom2)
        if km1 == km2:
            raise StoreError("interpolate_point needs two distinct km values")
        ratio = (km_target - km1) / (km2 - km1)
        azimuth, _, distance = self._geod.inv(lon1, lat1, lon2, lat2)
        lon, lat, _ = self._geod.fwd(lon1, lat1, azimuth, distance * ratio)
        return {"lat": lat, "lon": lon}

    def get_point_coords(self, geom: Any) -> dict[str, float]:
        lon, lat = _point_coords(geom)
        return {"lat": lat, "lon": lon}

    def interpolate_line_point(self, line_geom: Any, fraction: float) -> dict[str, float]:
        geometry = _require_geometry(line_geom)
        if geometry.type == "Point":
            raise StoreError("interpolate_line_point needs a LineString or MultiLineString")
        point = shape(geometry._asdict()).interpolate(fraction, normalized=True)
        return {"lat": point.y, "lon": point.x}


def _require_geometry(value: Any) -> Geometry:
    geometry = parse_geometry(value)
    if geometry is None:
        raise StoreError(f"invalid geometry: {value!r}")
    return geometry


def _point_coords(value: Any) -> Position:
    geometry = _require_geometry(value)
    if geometry.type != "Point":
        raise StoreError(f"expected a Point geometry, got {geometry.type}")
    return geometry.coordinates
