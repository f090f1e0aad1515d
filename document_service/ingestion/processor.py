from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Sequence

from document_service.ingestion.extractors.base import Extractor, select_extractor
from document_service.ingestion.extractors.docx import OpenXmlTextExtractor
from document_service.ingestion.extractors.pdf import PdfTextExtractor
from document_service.ingestion.extractors.text import PlainTextExtractor
from document_service.ingestion.planner import resolve_mime_type
from document_service.ingestion.types import InboxItem, ProcessingResult

logger = logging.getLogger(__name__)


def default_extractors() -> list[Extractor]:
    return [PlainTextExtractor(), PdfTextExtractor(), OpenXmlTextExtractor()]


def compute_content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class DocumentProcessor:
    """Extracts text and fingerprints one inbox item. Never persists anything."""

    def __init__(self, extractors: Sequence[Extractor] | None = None) -> None:
        self._extractors = list(extractors) if extractors is not None else default_extractors()

    @property
    def extractors(self) -> list[Extractor]:
        return list(self._extractors)

    def process(self, item: InboxItem) -> ProcessingResult:
        started = time.monotonic()
        mime_type = resolve_mime_type(item.content_type, item.name)

        extractor = select_extractor(self._extractors, mime_type)
        if extractor is None:
            logger.info("No extractor for %s (%s); storing without text", item.name, mime_type)
            text = ""
        else:
            try:
                text = extractor.extract_text(item.data, mime_type)
            except Exception as e:
                # Extractors parse untrusted input; any failure is an item failure
                logger.warning(
                    "Extraction failed for %s (%s) via %s: %s",
                    item.name,
                    mime_type,
                    type(extractor).__name__,
                    e,
                )
                return ProcessingResult.failure_result(
                    blob_name=item.name,
                    error_message=f"Text extraction failed: {e}",
                    exception_details=f"{type(e).__name__}: {e}",
                    processing_time_ms=_elapsed_ms(started),
                )

        return ProcessingResult.success_result(
            blob_name=item.name,
            extracted_text=text,
            content_hash=compute_content_hash(item.data),
            file_size_bytes=len(item.data),
            mime_type=mime_type,
            processing_time_ms=_elapsed_ms(started),
        )
