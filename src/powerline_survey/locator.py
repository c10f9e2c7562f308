"""Kilometer-to-coordinate resolution for reported faults.

Three strategies are tried in order of precision: interpolation between the
two structures bracketing the target km, the single nearest structure when
the target lies beyond the surveyed structures, and interpolation along the
full line geometry by km fraction.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from .errors import LineNotFound, OutOfRange, Unresolvable
from .models import LocationMethod, LocationResult, Structure
from .store import GeometryService, SpatialStore

logger = logging.getLogger(__name__)


def _finite(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coerce_lat_lon(data: Any) -> tuple[float, float] | None:
    """Read ``(lat, lon)`` from a primitive's result row.

    Accepts a mapping or a list of mappings (first row wins), with longitude
    under ``lon``, ``lng`` or ``longitude``.
    """
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        data = data[0] if data else None
    if not isinstance(data, Mapping):
        return None

    lat = _finite(_first_present(data, "lat", "latitude"))
    lon = _finite(_first_present(data, "lon", "lng", "longitude"))
    if lat is None or lon is None:
        return None
    return lat, lon


def _first_present(row: Mapping, *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def bracket_structures(structures: Sequence[Structure], km: float) -> tuple[Structure | None, Structure | None]:
    """Return the structures just below (``e1``) and just above (``e2``) ``km``.

    ``structures`` must be ordered by ascending km.
    """
    below: Structure | None = None
    above: Structure | None = None
    for structure in structures:
        structure_km = _finite(structure.km)
        if structure_km is None:
            continue
        if structure_km <= km:
            below = structure
        if structure_km >= km and above is None:
            above = structure
    return below, above


def line_fraction(km: float, km_inicio: float, km_fin: float) -> float:
    fraction = (km - km_inicio) / (km_fin - km_inicio)
    return max(0.0, min(1.0, fraction))


def resolve_fault_location(
    store: SpatialStore,
    geometry: GeometryService,
    linea_id: str,
    km: float,
) -> LocationResult:
    """Resolve kilometer ``km`` of line ``linea_id`` to a geographic point.

    Raises:
        LineNotFound: The line does not exist.
        OutOfRange: The line has a km extent and ``km`` falls outside it.
        Unresolvable: No strategy produced coordinates.
        StoreError: A store read or geometry primitive failed.
    """
    line = store.get_line(linea_id)
    if line is None:
        raise LineNotFound(linea_id)

    km_inicio = _finite(line.km_inicio)
    km_fin = _finite(line.km_fin)
    if km_inicio is not None and km_fin is not None and not (km_inicio <= km <= km_fin):
        raise OutOfRange(km, km_inicio, km_fin)

    structures = store.list_structures(line.id)
    e1, e2 = bracket_structures(structures, km)

    if e1 is not None and e2 is not None and float(e1.km) != float(e2.km):
        coords = coerce_lat_lon(geometry.interpolate_point(e1.geom, e2.geom, float(e1.km), float(e2.km), km))
        if coords is not None:
            return _resolved(linea_id, km, coords, "interpolation")

    single = e1 if e2 is None else e2 if e1 is None else None
    if single is not None:
        coords = coerce_lat_lon(geometry.get_point_coords(single.geom))
        if coords is not None:
            return _resolved(linea_id, km, coords, "single_structure")

    if line.geom is not None and km_inicio is not None and km_fin is not None and km_fin > km_inicio:
        fraction = line_fraction(km, km_inicio, km_fin)
        coords = coerce_lat_lon(geometry.interpolate_line_point(line.geom, fraction))
        if coords is not None:
            return _resolved(linea_id, km, coords, "line_geometry")

    logger.warning("action=locate linea=%s km=%s structures=%d resolved=false", linea_id, km, len(structures))
    raise Unresolvable()


def _resolved(linea_id: str, km: float, coords: tuple[float, float], method: LocationMethod) -> LocationResult:
    logger.info("action=locate linea=%s km=%s method=%s", linea_id, km, method)
    lat, lon = coords
    return LocationResult(lat=lat, lon=lon, geom=f"POINT({lon} {lat})", method=method)
