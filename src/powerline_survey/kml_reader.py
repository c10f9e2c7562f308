"""KMZ/KML reader: unwraps the upload and parses the markup into a typed tree.

KMZ is a ZIP archive containing one or more KML files. When an archive carries
several, the largest one is taken as the survey payload; the others are
usually styles or overlays.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
import xml.etree.ElementTree as ET

from .errors import MalformedMarkup, NoPayloadFound, UnreadableArchive, UnrecognizedLayout, UnsupportedFileType
from .models import MarkupElement

logger = logging.getLogger(__name__)

ARCHIVE_EXT = ".kmz"
MARKUP_EXT = ".kml"

# ZipFile reports a damaged archive or member through several exception types.
_ARCHIVE_READ_ERRORS = (zipfile.BadZipFile, zlib.error, OSError, RuntimeError, NotImplementedError, EOFError)


def read_document(data: bytes, filename: str) -> MarkupElement:
    """Decode an uploaded KMZ or KML file and return its root element.

    Args:
        data: Raw upload body.
        filename: Declared filename; its extension selects archive or plain markup.
    """
    name = (filename or "").lower()

    if name.endswith(ARCHIVE_EXT):
        kml_text = _extract_kml_from_kmz(data)
    elif name.endswith(MARKUP_EXT):
        kml_text = _decode(data)
    else:
        raise UnsupportedFileType(f"File must be .kmz or .kml, got {filename!r}")

    return parse_markup(kml_text)


def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _extract_kml_from_kmz(data: bytes) -> str:
    """Return the largest .kml member of a KMZ (ZIP) archive."""
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except _ARCHIVE_READ_ERRORS as exc:
        raise UnreadableArchive(f"Cannot open KMZ archive: {exc}") from exc

    with zf:
        candidates: list[tuple[str, str]] = []
        for info in zf.infolist():
            if info.is_dir() or not info.filename.lower().endswith(MARKUP_EXT):
                continue
            try:
                candidates.append((info.filename, _decode(zf.read(info))))
            except _ARCHIVE_READ_ERRORS as exc:
                raise UnreadableArchive(f"Cannot read {info.filename} from KMZ: {exc}") from exc

    if not candidates:
        raise NoPayloadFound("No KML file found in KMZ")

    kml_name, kml_text = max(candidates, key=lambda item: len(item[1]))
    logger.debug("action=read_kmz members=%d selected=%s chars=%d", len(candidates), kml_name, len(kml_text))
    return kml_text


def parse_markup(text: str) -> MarkupElement:
    """Parse markup text into a :class:`MarkupElement` tree."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise MalformedMarkup(f"Invalid KML: {exc}") from exc
    try:
        return _to_element(root)
    except RecursionError as exc:
        raise MalformedMarkup("Invalid KML: markup nested too deeply") from exc


def _local_name(tag: str) -> str:
    # "{http://www.opengis.net/kml/2.2}Placemark" -> "Placemark"
    return tag.rsplit("}", 1)[-1]


def _to_element(elem: ET.Element) -> MarkupElement:
    text = elem.text.strip() if elem.text else None
    return MarkupElement(
        name=_local_name(elem.tag),
        attributes={_local_name(k): v for k, v in elem.attrib.items()},
        children=[_to_element(child) for child in elem if isinstance(child.tag, str)],
        text=text or None,
    )


def find_document(root: MarkupElement) -> MarkupElement:
    """Return the ``Document`` node of a parsed KML tree."""
    if root.name == "Document":
        return root
    document = root.find("Document") if root.name == "kml" else None
    if document is None:
        raise UnrecognizedLayout("Invalid KML structure: no Document element found")
    return document
