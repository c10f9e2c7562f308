"""Exception hierarchy for document, store and location failures."""

from __future__ import annotations


class PowerlineSurveyError(Exception):
    """Base class for all errors raised by this package."""


class DocumentError(PowerlineSurveyError, ValueError):
    """An uploaded document cannot be turned into a topology. Fatal to an import."""


class UnsupportedFileType(DocumentError):
    pass


class UnreadableArchive(DocumentError):
    pass


class NoPayloadFound(DocumentError):
    pass


class MalformedMarkup(DocumentError):
    pass


class UnrecognizedLayout(DocumentError):
    pass


class StoreError(PowerlineSurveyError):
    """The spatial store rejected or failed an operation."""


class LocationError(PowerlineSurveyError):
    pass


class LineNotFound(LocationError):
    def __init__(self, linea_id: str):
        super().__init__("Line not found")
        self.linea_id = linea_id


class OutOfRange(LocationError):
    def __init__(self, km: float, km_inicio: float, km_fin: float):
        super().__init__(f"km {km:g} is out of range [{km_inicio:g}, {km_fin:g}]")
        self.km = km
        self.km_inicio = km_inicio
        self.km_fin = km_fin


class Unresolvable(LocationError):
    def __init__(self):
        super().__init__("Cannot compute location: no valid coords from structures or line geometry")
