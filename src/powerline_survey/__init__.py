"""Power-line survey ingestion (KMZ/KML) and fault location library."""

from .coordinates import parse_coordinates, parse_geometry
from .errors import (
    DocumentError,
    LineNotFound,
    MalformedMarkup,
    NoPayloadFound,
    OutOfRange,
    StoreError,
    UnreadableArchive,
    UnrecognizedLayout,
    Unresolvable,
    UnsupportedFileType,
)
from .importer import import_document, import_topology
from .kml_reader import read_document
from .locator import resolve_fault_location
from .memory_store import InMemoryStore
from .models import ImportResult, Line, LineTopology, LocationResult, MarkupElement, Segment, Structure
from .topology import extract_topology

__all__ = [
    "DocumentError",
    "ImportResult",
    "InMemoryStore",
    "Line",
    "LineNotFound",
    "LineTopology",
    "LocationResult",
    "MalformedMarkup",
    "MarkupElement",
    "NoPayloadFound",
    "OutOfRange",
    "Segment",
    "StoreError",
    "Structure",
    "UnreadableArchive",
    "UnrecognizedLayout",
    "Unresolvable",
    "UnsupportedFileType",
    "extract_topology",
    "import_document",
    "import_topology",
    "parse_coordinates",
    "parse_geometry",
    "read_document",
    "resolve_fault_location",
]
