"""Interfaces of the spatial store the core depends on.

The store owns geometry storage. Geometry values returned by it (``geom``
fields) are opaque to the core and are handed back unchanged to the
:class:`GeometryService` primitives.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from .models import Line, Position, Structure


class StoreSession(Protocol):
    """Write surface available inside one store transaction."""

    def find_line_by_numero(self, numero: str) -> Line | None: ...

    def create_line(self, numero: str, nombre: str | None = None) -> Line: ...

    def delete_line_children(self, line_id: str) -> None: ...

    def insert_segment(self, line_id: str, orden: int, positions: Sequence[Position]) -> None: ...

    def insert_structure(self, line_id: str, numero_estructura: str, km: float, position: Position) -> None: ...

    def finalize_import_for_line(self, line_id: str) -> None: ...


class SpatialStore(Protocol):
    def transaction(self) -> AbstractContextManager[StoreSession]:
        """Run a unit of work; it commits on normal exit and rolls back if an exception escapes."""
        ...

    def get_line(self, line_id: str) -> Line | None: ...

    def list_structures(self, line_id: str) -> list[Structure]:
        """Structures of a line ordered by ascending ``km``."""
        ...


class GeometryService(Protocol):
    """Store-side geometry primitives.

    Each returns a row-like value carrying ``lat`` and ``lon`` (or ``lng``),
    a list of such rows, or None.
    """

    def interpolate_point(self, geom1: Any, geom2: Any, km1: float, km2: float, km_target: float) -> Any: ...

    def get_point_coords(self, geom: Any) -> Any: ...

    def interpolate_line_point(self, line_geom: Any, fraction: float) -> Any: ...


@runtime_checkable
class GeometryStore(SpatialStore, GeometryService, Protocol):
    """A spatial store that also evaluates the geometry primitives on its own data."""
