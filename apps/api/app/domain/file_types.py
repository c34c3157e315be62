"""Declared file type classification."""

from enum import Enum

from app.errors import UnsupportedType


class ContentFamily(str, Enum):
    DOCUMENT = "DOCUMENT"
    IMAGE = "IMAGE"
    MEDIA = "MEDIA"


PDF_TYPE = "application/pdf"
DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
LEGACY_WORD_TYPE = "application/msword"
LEGACY_EXCEL_TYPE = "application/vnd.ms-excel"
CSV_TYPE = "text/csv"

_DOCUMENT_TYPES = frozenset({PDF_TYPE, DOCX_TYPE, XLSX_TYPE, LEGACY_WORD_TYPE, LEGACY_EXCEL_TYPE, CSV_TYPE})

# Explicit media types that do not carry an audio/ or video/ prefix.
_EXTRA_MEDIA_TYPES = frozenset({"application/ogg", "application/x-matroska"})


def normalize_declared_type(declared_type: str) -> str:
    """Lowercase and drop MIME parameters (``text/plain; charset=utf-8``)."""
    return (declared_type or "").split(";", 1)[0].strip().lower()


def classify(declared_type: str) -> ContentFamily:
    """Map a declared type onto its extraction family.

    Raises ``UnsupportedType`` for types no strategy handles.
    """
    normalized = normalize_declared_type(declared_type)
    if normalized in _DOCUMENT_TYPES or normalized.startswith("text/"):
        return ContentFamily.DOCUMENT
    if normalized.startswith("image/"):
        return ContentFamily.IMAGE
    if normalized.startswith(("audio/", "video/")) or normalized in _EXTRA_MEDIA_TYPES:
        return ContentFamily.MEDIA
    raise UnsupportedType(f"No extraction strategy for declared type '{declared_type or 'unknown'}'")
