"""Pydantic data models for the power-line survey service."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Position = tuple[float, float]
"""A ``(longitude, latitude)`` pair."""

LocationMethod = Literal["interpolation", "single_structure", "line_geometry"]


class MarkupElement(BaseModel):
    """A namespace-stripped markup node.

    Same-name siblings stay in document order inside ``children``.
    """

    name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    children: list[MarkupElement] = Field(default_factory=list)
    text: str | None = None

    def find(self, name: str) -> MarkupElement | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_all(self, name: str) -> list[MarkupElement]:
        return [child for child in self.children if child.name == name]

    def child_text(self, *path: str) -> str | None:
        """Trimmed text of the descendant reached by ``path``, or None if absent or empty."""
        node: MarkupElement | None = self
        for name in path:
            node = node.find(name)
            if node is None:
                return None
        return node.text or None


class Line(BaseModel):
    """A surveyed power line, keyed by its human-assigned ``numero``."""

    id: str
    numero: str
    nombre: str | None = None
    km_inicio: float | None = None
    km_fin: float | None = None
    geom: Any = None


class Segment(BaseModel):
    """An ordered piece (tramo) of a line's path."""

    id: str
    linea_id: str
    orden: int
    geom: Any = None


class Structure(BaseModel):
    """A point structure (tower, pole) along a line."""

    id: str
    linea_id: str
    numero_estructura: str
    km: float | None = None
    geom: Any = None


class StructureCandidate(BaseModel):
    """A named point marker with its raw coordinate text."""

    name: str
    coordinates: str


class LineCandidates(BaseModel):
    """Raw per-line markers collected from either document layout."""

    numero: str
    tramos: list[str] = Field(default_factory=list)
    estructuras: list[StructureCandidate] = Field(default_factory=list)


class LineTopology(BaseModel):
    """Per-line geometry ready for insertion, after coordinate parsing."""

    numero: str
    segments: list[list[Position]] = Field(default_factory=list)
    structures: list[tuple[str, Position]] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Aggregated outcome of one import call."""

    lineas_created: int = 0
    tramos_inserted: int = 0
    estructuras_inserted: int = 0
    lineas_finalized: int = 0
    errores: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def merge(self, other: ImportResult) -> ImportResult:
        return ImportResult(
            lineas_created=self.lineas_created + other.lineas_created,
            tramos_inserted=self.tramos_inserted + other.tramos_inserted,
            estructuras_inserted=self.estructuras_inserted + other.estructuras_inserted,
            lineas_finalized=self.lineas_finalized + other.lineas_finalized,
            errores=[*self.errores, *other.errores],
            warnings=[*self.warnings, *other.warnings],
        )


class LocateRequest(BaseModel):
    """Body of a fault location request."""

    lineaId: str = Field(min_length=1)
    km: float = Field(allow_inf_nan=False)


class LocationResult(BaseModel):
    """A resolved fault position and the strategy that produced it."""

    lat: float
    lon: float
    geom: str
    method: LocationMethod
