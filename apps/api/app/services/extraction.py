"""Content extraction dispatch by declared file type."""

from __future__ import annotations

from dataclasses import dataclass
import io
import logging
import re
from typing import TYPE_CHECKING
from zipfile import BadZipFile

import docx
from docx.opc.exceptions import PackageNotFoundError
import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from app.adapters.ai import AnalysisClient
from app.adapters.storage import ObjectStorage
from app.domain.file_types import (
    CSV_TYPE,
    DOCX_TYPE,
    LEGACY_EXCEL_TYPE,
    LEGACY_WORD_TYPE,
    PDF_TYPE,
    XLSX_TYPE,
    ContentFamily,
    classify,
    normalize_declared_type,
)
from app.errors import ExtractionFailure
from app.services.colors import dominant_color

if TYPE_CHECKING:
    from app.services.transcription import TranscriptionJobManager

logger = logging.getLogger(__name__)

_PDF_EMPTY_MESSAGE = "Could not extract text from PDF. The file may be image-based (scanned) or encrypted."
_NON_TEXT_RUN = re.compile(r"[^\x20-\x7e\u00a0-\uffff\n\t]+")


@dataclass(frozen=True, slots=True)
class ExtractedContent:
    family: ContentFamily
    text: str
    dominant_color: str | None = None

    @property
    def stored_text(self) -> str | None:
        """Text persisted on the asset; image descriptions only feed the analysis."""
        if self.family is ContentFamily.IMAGE:
            return None
        return self.text


@dataclass(frozen=True, slots=True)
class PendingTranscription:
    """Marker returned for media; the text arrives through the transcription job."""

    job_id: str


def _read_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as exc:
        raise ExtractionFailure(_PDF_EMPTY_MESSAGE) from exc
    text = "\n\n".join(page for page in pages if page)
    if not text.strip():
        raise ExtractionFailure(_PDF_EMPTY_MESSAGE)
    logger.info("extraction.pdf_parsed pages=%s chars=%s", len(pages), len(text))
    return text


def _read_docx(data: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, BadZipFile, KeyError, ValueError) as exc:
        raise ExtractionFailure("Could not read Word document") from exc

    lines = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append("\t".join(cells))
    return "\n".join(lines)


def _read_xlsx(data: bytes) -> str:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError) as exc:
        raise ExtractionFailure("Could not read spreadsheet") from exc

    blocks: list[str] = []
    try:
        for sheet in workbook.worksheets:
            rows = []
            for row in sheet.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None and str(value).strip()]
                if cells:
                    rows.append("\t".join(cells))
            if rows:
                blocks.append(f"Sheet: {sheet.title}\n" + "\n".join(rows))
    finally:
        workbook.close()
    return "\n\n".join(blocks)


def _read_text(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _read_legacy_binary(data: bytes) -> str:
    # Old Office formats are not parsed; keep whatever readable text survives decoding.
    decoded = data.decode("utf-8", errors="ignore")
    return _NON_TEXT_RUN.sub(" ", decoded)


def extract_document_text(data: bytes, declared_type: str) -> str:
    normalized = normalize_declared_type(declared_type)
    if normalized == PDF_TYPE:
        text = _read_pdf(data)
    elif normalized == DOCX_TYPE:
        text = _read_docx(data)
    elif normalized == XLSX_TYPE:
        text = _read_xlsx(data)
    elif normalized in (LEGACY_WORD_TYPE, LEGACY_EXCEL_TYPE):
        text = _read_legacy_binary(data)
    elif normalized == CSV_TYPE or normalized.startswith("text/"):
        text = _read_text(data)
    else:
        raise ExtractionFailure(f"No document reader for '{declared_type}'")

    if not text.strip():
        raise ExtractionFailure("No text content found in file")
    return text


class ContentExtractor:
    def __init__(
        self,
        *,
        storage: ObjectStorage,
        ai_client: AnalysisClient,
        transcriptions: TranscriptionJobManager,
    ) -> None:
        self._storage = storage
        self._ai_client = ai_client
        self._transcriptions = transcriptions

    def extract(
        self,
        asset_id: str,
        storage_key: str,
        declared_type: str,
    ) -> ExtractedContent | PendingTranscription:
        family = classify(declared_type)

        if family is ContentFamily.MEDIA:
            job_id = self._transcriptions.begin(asset_id, storage_key, declared_type)
            return PendingTranscription(job_id=job_id)

        data = self._storage.read(storage_key)
        if family is ContentFamily.IMAGE:
            description = self._ai_client.describe_image(
                image=data,
                media_type=normalize_declared_type(declared_type),
            )
            if not description.strip():
                raise ExtractionFailure("Image analysis returned no content")
            return ExtractedContent(family=family, text=description, dominant_color=dominant_color(data))

        return ExtractedContent(family=family, text=extract_document_text(data, declared_type))


__all__ = ["ContentExtractor", "ExtractedContent", "PendingTranscription", "extract_document_text"]
