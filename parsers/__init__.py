"""Document text extraction (PDF / EPUB / TXT) and the extension registry."""

from parsers.extractors import DocumentType, strip_markup
from parsers.registry import lookup, lookup_filename, supported_extensions

__all__ = [
    "DocumentType",
    "lookup",
    "lookup_filename",
    "strip_markup",
    "supported_extensions",
]
