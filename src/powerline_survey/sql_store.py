"""PostGIS-backed spatial store (SQLAlchemy Core + GeoAlchemy2).

Geometry primitives and the per-line finalize step are SQL functions owned by
the database: ``interpolate_point``, ``get_point_coords``,
``interpolate_line_point`` and ``finalize_kmz_import_for_linea``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from geoalchemy2 import Geometry, WKBElement, WKTElement
from sqlalchemy import Column, Float, ForeignKey, Integer, MetaData, String, Table, Uuid, create_engine, text
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import SQLAlchemyError

from .coordinates import linestring_wkt, point_wkt
from .errors import StoreError
from .models import Line, Position, Structure

logger = logging.getLogger(__name__)

SRID = 4326

metadata = MetaData()

lineas = Table(
    "lineas",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column("numero", String, nullable=False, unique=True),
    Column("nombre", String),
    Column("km_inicio", Float),
    Column("km_fin", Float),
    Column("geom", Geometry("GEOMETRY", srid=SRID)),
)

linea_tramos = Table(
    "linea_tramos",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column("linea_id", Uuid, ForeignKey("lineas.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("orden", Integer, nullable=False),
    Column("geom", Geometry("LINESTRING", srid=SRID), nullable=False),
)

estructuras = Table(
    "estructuras",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column("linea_id", Uuid, ForeignKey("lineas.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("numero_estructura", String, nullable=False),
    Column("km", Float),
    Column("geom", Geometry("POINT", srid=SRID), nullable=False),
)


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _ewkb_hex(geom: Any) -> Any:
    return geom.desc if isinstance(geom, WKBElement) else geom


def _line(row: RowMapping) -> Line:
    return Line(
        id=str(row["id"]),
        numero=row["numero"],
        nombre=row["nombre"],
        km_inicio=row["km_inicio"],
        km_fin=row["km_fin"],
        geom=row["geom"],
    )


class SqlSession:
    """Store session bound to one open transaction."""

    def __init__(self, conn: Connection):
        self.conn = conn

    def find_line_by_numero(self, numero: str) -> Line | None:
        with _wrapped():
            query = lineas.select().where(lineas.c.numero == numero).with_for_update()
            row = self.conn.execute(query).mappings().first()
        return _line(row) if row else None

    def create_line(self, numero: str, nombre: str | None = None) -> Line:
        with _wrapped():
            row = (
                self.conn.execute(lineas.insert().values(numero=numero, nombre=nombre).returning(*lineas.c))
                .mappings()
                .one()
            )
        return _line(row)

    def delete_line_children(self, line_id: str) -> None:
        key = uuid.UUID(line_id)
        with _wrapped():
            self.conn.execute(linea_tramos.delete().where(linea_tramos.c.linea_id == key))
            self.conn.execute(estructuras.delete().where(estructuras.c.linea_id == key))

    def insert_segment(self, line_id: str, orden: int, positions: Sequence[Position]) -> None:
        with _wrapped(), self.conn.begin_nested():
            self.conn.execute(
                linea_tramos.insert().values(
                    linea_id=uuid.UUID(line_id),
                    orden=orden,
                    geom=WKTElement(linestring_wkt(positions), srid=SRID),
                )
            )

    def insert_structure(self, line_id: str, numero_estructura: str, km: float, position: Position) -> None:
        with _wrapped(), self.conn.begin_nested():
            self.conn.execute(
                estructuras.insert().values(
                    linea_id=uuid.UUID(line_id),
                    numero_estructura=numero_estructura,
                    km=km,
                    geom=WKTElement(point_wkt(position), srid=SRID),
                )
            )

    def finalize_import_for_line(self, line_id: str) -> None:
        with _wrapped(), self.conn.begin_nested():
            self.conn.execute(text("SELECT finalize_kmz_import_for_linea(CAST(:p_linea_id AS uuid))"), {"p_linea_id": line_id})


@contextmanager
def _wrapped() -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreError(str(getattr(exc, "orig", None) or exc)) from exc


class SqlStore:
    """Spatial store backed by PostgreSQL/PostGIS."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> SqlStore:
        return cls(create_engine(url, pool_pre_ping=True, pool_recycle=1800))

    def create_schema(self) -> None:
        """Create the tables if missing (the SQL functions are provisioned separately)."""
        with _wrapped(), self.engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            metadata.create_all(conn)

    @contextmanager
    def transaction(self) -> Iterator[SqlSession]:
        with _wrapped(), self.engine.begin() as conn:
            yield SqlSession(conn)

    def get_line(self, line_id: str) -> Line | None:
        key = _as_uuid(line_id)
        if key is None:
            return None
        with _wrapped(), self.engine.connect() as conn:
            row = conn.execute(lineas.select().where(lineas.c.id == key)).mappings().first()
        return _line(row) if row else None

    def list_structures(self, line_id: str) -> list[Structure]:
        key = _as_uuid(line_id)
        if key is None:
            return []
        query = estructuras.select().where(estructuras.c.linea_id == key).order_by(estructuras.c.km.asc())
        with _wrapped(), self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            Structure(
                id=str(row["id"]),
                linea_id=str(row["linea_id"]),
                numero_estructura=row["numero_estructura"],
                km=row["km"],
                geom=row["geom"],
            )
            for row in rows
        ]

    def _call(self, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        with _wrapped(), self.engine.connect() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        return dict(row) if row else None

    def interpolate_point(self, geom1: Any, geom2: Any, km1: float, km2: float, km_target: float) -> Any:
        return self._call(
            "SELECT * FROM interpolate_point("
            "CAST(:p_geom1 AS geometry), CAST(:p_geom2 AS geometry), :p_km1, :p_km2, :p_km_target)",
            {
                "p_geom1": _ewkb_hex(geom1),
                "p_geom2": _ewkb_hex(geom2),
                "p_km1": km1,
                "p_km2": km2,
                "p_km_target": km_target,
            },
        )

    def get_point_coords(self, geom: Any) -> Any:
        return self._call(
            "SELECT * FROM get_point_coords(CAST(:p_geom AS geometry))",
            {"p_geom": _ewkb_hex(geom)},
        )

    def interpolate_line_point(self, line_geom: Any, fraction: float) -> Any:
        return self._call(
            "SELECT * FROM interpolate_line_point(CAST(:p_line_geom AS geometry), :p_fraction)",
            {"p_line_geom": _ewkb_hex(line_geom), "p_fraction": fraction},
        )
