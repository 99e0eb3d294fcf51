"""HTTP clients for the recognition and registration storage services."""

from .openalpr import Plate, PlateCandidate, Recognizer
from .opencars import Storage, Transport

__all__ = [
    "Plate",
    "PlateCandidate",
    "Recognizer",
    "Storage",
    "Transport",
]
