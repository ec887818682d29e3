"""Format-specific text extraction for uploaded knowledge files.

Converts a raw upload buffer plus its declared media type into a
:class:`~src.models.knowledge.ParsedDocument`.  Parsing is a pure function
of the input bytes; nothing is written anywhere.

Supported formats:

    application/pdf   -> PyMuPDF (``fitz``), all pages, page count reported
    DOCX              -> python-docx, paragraph and table text in body order
    text/csv          -> one ``Row N: col: value, ...`` line per record
    application/json  -> re-serialized with two-space indentation
    text/plain        -> decoded as UTF-8, unchanged
    text/markdown     -> decoded as UTF-8, unchanged
"""

from __future__ import annotations

import csv
import io
import json
import warnings
from pathlib import PurePath
from typing import Any

import docx
import fitz  # PyMuPDF
import structlog
from docx.table import Table

from src.models.knowledge import ParsedDocument
from src.utils.errors import ParseError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PLAIN_TEXT = "text/plain"
MARKDOWN = "text/markdown"
CSV = "text/csv"
JSON = "application/json"

SUPPORTED_MEDIA_TYPES: frozenset[str] = frozenset({PDF, DOCX, PLAIN_TEXT, MARKDOWN, CSV, JSON})

# Declared types that carry no format information; the extension decides.
_GENERIC_MEDIA_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

_EXTENSION_MEDIA_TYPES: dict[str, str] = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".txt": PLAIN_TEXT,
    ".md": MARKDOWN,
    ".markdown": MARKDOWN,
    ".csv": CSV,
    ".json": JSON,
}


def normalize_media_type(media_type: str | None, filename: str = "") -> str:
    """Return the canonical media type for an upload.

    Parameters such as ``; charset=utf-8`` are dropped and the type is
    lower-cased.  Only a generic declared type (empty or
    ``application/octet-stream``) is resolved from the file extension; a
    specific but unsupported type is returned as-is so it gets rejected.
    """
    base = (media_type or "").split(";", 1)[0].strip().lower()
    if base == "text/x-markdown":
        return MARKDOWN
    if base in _GENERIC_MEDIA_TYPES:
        return _EXTENSION_MEDIA_TYPES.get(PurePath(filename).suffix.lower(), base)
    return base


def is_supported_media_type(media_type: str | None, filename: str = "") -> bool:
    """Return ``True`` if :class:`DocumentParser` can handle the upload."""
    return normalize_media_type(media_type, filename) in SUPPORTED_MEDIA_TYPES


class DocumentParser:
    """Turns upload bytes into plain text for the chunker.

    Raises :class:`UnsupportedFormatError` for media types outside
    :data:`SUPPORTED_MEDIA_TYPES` and :class:`ParseError` when a supported
    file cannot be read.
    """

    def parse(self, data: bytes, media_type: str, filename: str = "") -> ParsedDocument:
        """Extract text from *data* according to *media_type*.

        Parameters
        ----------
        data:
            Raw file content.
        media_type:
            Declared media type of the upload.
        filename:
            Original file name; used only to resolve generic media types.

        Returns
        -------
        ParsedDocument
            The extracted text with optional page count and metadata.

        Raises
        ------
        UnsupportedFormatError
            If the media type is not supported.
        ParseError
            If the content is corrupt, encrypted or malformed.
        """
        resolved = normalize_media_type(media_type, filename)

        if resolved == PDF:
            parsed = self._parse_pdf(data)
        elif resolved == DOCX:
            parsed = self._parse_docx(data)
        elif resolved in (PLAIN_TEXT, MARKDOWN):
            parsed = ParsedDocument(text=data.decode("utf-8", errors="replace"))
        elif resolved == CSV:
            parsed = self._parse_csv(data)
        elif resolved == JSON:
            parsed = self._parse_json(data)
        else:
            raise UnsupportedFormatError(
                message=(
                    f"Unsupported file type: {media_type or 'unknown'}. "
                    "Accepted: PDF, DOCX, TXT, MD, CSV, JSON."
                ),
            )

        logger.debug(
            "document_parsed",
            filename=filename,
            media_type=resolved,
            chars=len(parsed.text),
            pages=parsed.page_count,
        )
        return parsed

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_pdf(data: bytes) -> ParsedDocument:
        try:
            pdf = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ParseError(message=f"Failed to parse PDF: {exc}", provider_name="pymupdf") from exc

        try:
            if pdf.needs_pass:
                raise ParseError(
                    message="Failed to parse PDF: document is encrypted",
                    provider_name="pymupdf",
                )
            try:
                pages = [page.get_text("text") for page in pdf]
            except Exception as exc:
                raise ParseError(
                    message=f"Failed to parse PDF: {exc}", provider_name="pymupdf"
                ) from exc
            info = {k: v for k, v in (pdf.metadata or {}).items() if v}
            return ParsedDocument(
                text="\n\n".join(pages),
                page_count=pdf.page_count,
                metadata={"info": info} if info else {},
            )
        finally:
            pdf.close()

    @staticmethod
    def _parse_docx(data: bytes) -> ParsedDocument:
        # python-docx reports oddities through the warnings module; they are
        # kept as metadata rather than failing the upload.
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                document = docx.Document(io.BytesIO(data))
            except Exception as exc:
                raise ParseError(
                    message=f"Failed to parse DOCX: {exc}", provider_name="python-docx"
                ) from exc

            # Paragraphs and tables in body order.
            blocks: list[str] = []
            for item in document.iter_inner_content():
                if isinstance(item, Table):
                    for row in item.rows:
                        cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                        if cells:
                            blocks.append(" | ".join(cells))
                elif item.text.strip():
                    blocks.append(item.text)

        metadata: dict[str, Any] = {"warnings": [str(w.message) for w in caught]}
        return ParsedDocument(text="\n\n".join(blocks), metadata=metadata)

    @staticmethod
    def _parse_csv(data: bytes) -> ParsedDocument:
        try:
            text = data.decode("utf-8-sig")
            reader = csv.reader(io.StringIO(text), strict=True)
            rows = [row for row in reader if row]
        except (UnicodeDecodeError, csv.Error) as exc:
            raise ParseError(message=f"Malformed CSV: {exc}") from exc

        if not rows:
            return ParsedDocument(text="", metadata={"columns": []})

        header, records = rows[0], rows[1:]
        lines: list[str] = []
        for number, record in enumerate(records, start=1):
            if len(record) != len(header):
                raise ParseError(
                    message=(
                        f"Malformed CSV: row {number} has {len(record)} fields, "
                        f"expected {len(header)}"
                    ),
                )
            pairs = ", ".join(f"{col}: {value}" for col, value in zip(header, record))
            lines.append(f"Row {number}: {pairs}")

        return ParsedDocument(text="\n".join(lines), metadata={"columns": header})

    @staticmethod
    def _parse_json(data: bytes) -> ParsedDocument:
        try:
            payload = json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(message=f"Malformed JSON: {exc}") from exc
        return ParsedDocument(text=json.dumps(payload, indent=2, ensure_ascii=False))
