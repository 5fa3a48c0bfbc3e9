"""Document text extraction for the three supported upload formats.

``DocumentType`` is both the persisted format tag and the extractor handle:
``await DocumentType.PDF.extract(path)`` dispatches to the PDF routine.
Adding a format means one new member here, one extraction function, and
one entry in ``_EXTRACTORS``.

- ``txt``  - bytes decoded as UTF-8, returned verbatim (lossy on bad bytes)
- ``pdf``  - PyMuPDF text pass over every page, in a worker thread
- ``epub`` - spine walk over the OPF package, markup stripped, in a worker thread
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import zipfile
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urldefrag
from xml.etree import ElementTree

import fitz  # PyMuPDF

from errors.exceptions import (
    ExtractionError,
    ExtractionIOError,
    ExtractionTaskError,
    FormatFailure,
)

logger = logging.getLogger(__name__)

# A PDF header must appear within the first KiB of the file.
PDF_MAGIC = b"%PDF"
PDF_HEADER_WINDOW = 1024

_CONTAINER_PATH = "META-INF/container.xml"
_CONTAINER_NS = {"c": "urn:oasis:names:tc:opendocument:xmlns:container"}
_OPF_NS = {"opf": "http://www.idpf.org/2007/opf"}

# Block-level markup that becomes a line break before tags are stripped.
_BREAK_TAGS = ("<br>", "<br/>", "<p>", "</p>")


class DocumentType(str, Enum):
    """Supported document formats (value == lowercase file extension)."""

    PDF = "pdf"
    EPUB = "epub"
    TXT = "txt"

    async def extract(self, path: str | Path) -> str:
        """Extract plain text from *path*, treating it as this format.

        Raises:
            ExtractionIOError: *path* is missing or unreadable.
            FormatFailure: the content does not parse as this format.
            ExtractionTaskError: the worker thread failed outside the parser.
        """
        return await _EXTRACTORS[self](Path(path))

    @property
    def extensions(self) -> tuple[str, ...]:
        return (self.value,)


# ── Plain text ───────────────────────────────────────────────


async def _extract_txt(path: Path) -> str:
    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise ExtractionIOError(str(path), str(exc)) from exc
    return data.decode("utf-8", errors="replace")


# ── PDF ──────────────────────────────────────────────────────


def _read_pdf(path: Path) -> str:
    data = _read_bytes(path)
    if PDF_MAGIC not in data[:PDF_HEADER_WINDOW]:
        raise FormatFailure("pdf", "missing %PDF header")
    try:
        with fitz.open(stream=data, filetype="pdf") as pdf:
            return "\n".join(page.get_text() for page in pdf)
    except Exception as exc:
        raise FormatFailure("pdf", str(exc)) from exc


async def _extract_pdf(path: Path) -> str:
    return await _run_offloaded(DocumentType.PDF, _read_pdf, path)


# ── EPUB ─────────────────────────────────────────────────────


def strip_markup(html: str) -> str:
    """Drop every ``<...>`` tag, turning ``<br>``/``<p>`` boundaries into newlines."""
    for tag in _BREAK_TAGS:
        html = html.replace(tag, "\n")

    out: list[str] = []
    in_tag = False
    for ch in html:
        if ch == "<":
            in_tag = True
        elif ch == ">":
            in_tag = False
        elif not in_tag:
            out.append(ch)
    return "".join(out)


def _spine_hrefs(book: zipfile.ZipFile) -> list[str]:
    """Archive paths of the spine items, in reading order."""
    container = ElementTree.fromstring(book.read(_CONTAINER_PATH))
    rootfile = container.find(".//c:rootfile", _CONTAINER_NS)
    if rootfile is None or not rootfile.get("full-path"):
        raise FormatFailure("epub", "container.xml declares no rootfile")
    opf_path = rootfile.get("full-path")
    opf_dir = posixpath.dirname(opf_path)

    package = ElementTree.fromstring(book.read(opf_path))
    manifest = {
        item.get("id"): item.get("href")
        for item in package.iterfind("opf:manifest/opf:item", _OPF_NS)
    }
    hrefs: list[str] = []
    for itemref in package.iterfind("opf:spine/opf:itemref", _OPF_NS):
        href = manifest.get(itemref.get("idref"))
        if href is None:
            logger.debug("Spine idref %s has no manifest entry", itemref.get("idref"))
            continue
        # Manifest hrefs are URLs: percent-encoded, possibly with a fragment.
        member = unquote(urldefrag(href).url)
        hrefs.append(posixpath.normpath(posixpath.join(opf_dir, member)))
    return hrefs


def _read_epub(path: Path) -> str:
    try:
        handle = path.open("rb")
    except OSError as exc:
        raise ExtractionIOError(str(path), str(exc)) from exc

    with handle:
        try:
            with zipfile.ZipFile(handle) as book:
                parts = []
                for href in _spine_hrefs(book):
                    try:
                        raw = book.read(href)
                    except KeyError:
                        logger.debug("Spine item %s missing from archive, skipped", href)
                        continue
                    parts.append(strip_markup(raw.decode("utf-8", errors="replace")))
                    parts.append("\n")
                return "".join(parts)
        except FormatFailure:
            raise
        except (zipfile.BadZipFile, KeyError, ElementTree.ParseError, OSError) as exc:
            raise FormatFailure("epub", str(exc)) from exc


async def _extract_epub(path: Path) -> str:
    return await _run_offloaded(DocumentType.EPUB, _read_epub, path)


# ── Helpers ──────────────────────────────────────────────────


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ExtractionIOError(str(path), str(exc)) from exc


async def _run_offloaded(
    doc_type: DocumentType, parse: Callable[[Path], str], path: Path
) -> str:
    """Run a CPU-bound parser in a worker thread.

    Parser errors pass through unchanged; anything else escaping the worker
    becomes an :class:`ExtractionTaskError`.
    """
    try:
        return await asyncio.to_thread(parse, path)
    except ExtractionError:
        raise
    except Exception as exc:
        logger.exception("Extraction worker crashed for %s (%s)", path, doc_type.value)
        raise ExtractionTaskError(doc_type.value, str(exc)) from exc


_EXTRACTORS: dict[DocumentType, Callable[[Path], Awaitable[str]]] = {
    DocumentType.PDF: _extract_pdf,
    DocumentType.EPUB: _extract_epub,
    DocumentType.TXT: _extract_txt,
}
