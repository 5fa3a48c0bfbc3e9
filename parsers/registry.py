"""Extension → extractor lookup.

The single place that decides which upload formats are accepted.  Unknown
extensions yield ``None``; rejecting them is the caller's call.
"""

from __future__ import annotations

from parsers.extractors import DocumentType

_BY_EXTENSION: dict[str, DocumentType] = {
    ext: doc_type for doc_type in DocumentType for ext in doc_type.extensions
}


def lookup(extension: str) -> DocumentType | None:
    """Return the extractor for *extension* (case-insensitive, leading dot optional)."""
    return _BY_EXTENSION.get(extension.strip().lstrip(".").lower())


def lookup_filename(filename: str) -> DocumentType | None:
    """Return the extractor for the extension of *filename*, if any."""
    _, dot, ext = filename.rpartition(".")
    if not dot:
        return None
    return lookup(ext)


def supported_extensions() -> frozenset[str]:
    return frozenset(_BY_EXTENSION)
