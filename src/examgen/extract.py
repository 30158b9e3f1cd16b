"""Utilities for extracting text from uploaded exam source documents."""
from __future__ import annotations

import asyncio
import codecs
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Iterator, Union

from docx import Document
from docx.table import Table
from pdfminer.high_level import extract_text as pdf_extract_text

from .chunker import PARAGRAPH_SEPARATOR
from .errors import ExtractionFailure, UnsupportedFormat
from .telemetry import emit_extraction_event

LOGGER = logging.getLogger(__name__)

DEFAULT_DOC_COMMAND = "antiword"


class DocumentFormat(str, Enum):
    """Supported document formats, keyed by file extension."""

    TXT = ".txt"
    PDF = ".pdf"
    DOCX = ".docx"
    DOC = ".doc"

    @classmethod
    def from_extension(cls, extension: str) -> "DocumentFormat":
        normalized = (extension or "").strip().lower()
        if normalized and not normalized.startswith("."):
            normalized = f".{normalized}"
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnsupportedFormat(normalized) from exc


async def extract(
    path: Union[str, Path],
    extension: str,
    *,
    doc_command: str = DEFAULT_DOC_COMMAND,
) -> str:
    """Extract plain text from the document at ``path``.

    ``extension`` selects the backend. Unknown extensions raise
    :class:`UnsupportedFormat` before the file is touched; any backend error is
    re-raised as :class:`ExtractionFailure` with the backend message kept.
    """

    document_format = DocumentFormat.from_extension(extension)
    path = Path(path)
    started = time.perf_counter()
    size_bytes = path.stat().st_size if path.exists() else None

    try:
        if document_format is DocumentFormat.TXT:
            text = await asyncio.to_thread(_read_text_file, path)
        elif document_format is DocumentFormat.PDF:
            text = await asyncio.to_thread(_extract_pdf, path)
        elif document_format is DocumentFormat.DOCX:
            text = await asyncio.to_thread(_extract_docx, path)
        else:
            text = await _extract_doc(path, doc_command)
    except Exception as error:
        emit_extraction_event(
            extension=document_format.value,
            size_bytes=size_bytes,
            chars=None,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            error=error,
        )
        raise ExtractionFailure(document_format.value, error) from error

    # Paragraph boundaries are "\n\n" whatever line endings the source used.
    text = _normalize_newlines(text)
    emit_extraction_event(
        extension=document_format.value,
        size_bytes=size_bytes,
        chars=len(text),
        duration_ms=(time.perf_counter() - started) * 1000.0,
    )
    return text


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _read_text_file(path: Path) -> str:
    data = path.read_bytes()
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        LOGGER.warning("%s is not valid UTF-8; decoding as latin-1", path.name)
        return data.decode("latin-1")


def _extract_pdf(path: Path) -> str:
    return pdf_extract_text(str(path)) or ""


def _extract_docx(path: Path) -> str:
    document = Document(str(path))
    paragraphs = [text for text in _docx_block_texts(document) if text.strip()]
    return PARAGRAPH_SEPARATOR.join(paragraphs)


def _docx_block_texts(container) -> Iterator[str]:
    """Paragraph texts of a document or table cell in reading order, tables included."""

    for block in container.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                seen: set = set()
                for cell in row.cells:
                    # Merged cells repeat the same underlying element across the span.
                    if cell._tc in seen:
                        continue
                    seen.add(cell._tc)
                    yield from _docx_block_texts(cell)
        else:
            yield block.text


async def _extract_doc(path: Path, command: str) -> str:
    LOGGER.debug("Running DOC extraction command: %s %s", command, path)
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(f"{command} is not installed") from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        message = stderr.decode(errors="ignore").strip() or f"exit code {process.returncode}"
        raise RuntimeError(f"{command} failed: {message}")
    return stdout.decode("utf-8", errors="replace")


__all__ = ["DocumentFormat", "extract"]
