"""Idempotent replace-and-insert of line topology into the spatial store.

Each line runs in its own store transaction. Item failures (one segment, one
structure, the finalize call) are reported in ``errores`` and do not stop the
line; a failure while looking up, creating or clearing the line rolls the line
back and moves on to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import StoreError
from .models import ImportResult, LineTopology, MarkupElement
from .store import SpatialStore, StoreSession
from .topology import extract_topology

logger = logging.getLogger(__name__)


def import_document(root: MarkupElement, store: SpatialStore) -> ImportResult:
    """Extract the topology of a parsed KML tree and import it."""
    return import_topology(extract_topology(root), store)


def import_topology(lines: Iterable[LineTopology], store: SpatialStore) -> ImportResult:
    result = ImportResult()
    for line in lines:
        result = result.merge(_import_line(line, store))
    logger.info(
        "action=import lineas_created=%d tramos=%d estructuras=%d finalized=%d errores=%d warnings=%d",
        result.lineas_created,
        result.tramos_inserted,
        result.estructuras_inserted,
        result.lineas_finalized,
        len(result.errores),
        len(result.warnings),
    )
    return result


class _LineRollback(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _import_line(line: LineTopology, store: SpatialStore) -> ImportResult:
    try:
        with store.transaction() as session:
            return _replace_line(line, session)
    except _LineRollback as exc:
        logger.warning("action=import_line linea=%s rolled_back=true error=%s", line.numero, exc.message)
        return ImportResult(errores=[exc.message])
    except StoreError as exc:
        # Raised on commit or rollback of the line's transaction.
        message = f"Failed to import linea {line.numero}: {exc}"
        logger.warning("action=import_line linea=%s error=%s", line.numero, exc)
        return ImportResult(errores=[message])


def _replace_line(line: LineTopology, session: StoreSession) -> ImportResult:
    result = ImportResult()
    numero = line.numero

    try:
        existing = session.find_line_by_numero(numero)
        if existing is None:
            target = session.create_line(numero, nombre=numero)
            result.lineas_created += 1
        else:
            target = existing
    except StoreError as exc:
        raise _LineRollback(f"Failed to create linea {numero}: {exc}") from exc

    if existing is not None:
        try:
            session.delete_line_children(target.id)
        except StoreError as exc:
            raise _LineRollback(f"Failed to replace linea {numero}: {exc}") from exc

    for orden, positions in enumerate(line.segments):
        try:
            session.insert_segment(target.id, orden, positions)
        except StoreError as exc:
            result.errores.append(f"Failed to insert tramo {orden} for linea {numero}: {exc}")
            logger.warning("action=insert_tramo linea=%s orden=%d error=%s", numero, orden, exc)
        else:
            result.tramos_inserted += 1

    for name, position in line.structures:
        try:
            session.insert_structure(target.id, name, 0.0, position)
        except StoreError as exc:
            result.errores.append(f"Failed to insert estructura {name} for linea {numero}: {exc}")
            logger.warning("action=insert_estructura linea=%s estructura=%s error=%s", numero, name, exc)
        else:
            result.estructuras_inserted += 1

    if result.tramos_inserted == 0:
        result.warnings.append(f"No line segments found for linea {numero}, skipping finalization")
        return result

    try:
        session.finalize_import_for_line(target.id)
    except StoreError as exc:
        result.errores.append(f"Failed to finalize linea {numero}: {exc}")
        logger.warning("action=finalize linea=%s error=%s", numero, exc)
    else:
        result.lineas_finalized += 1

    return result
