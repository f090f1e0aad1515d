from __future__ import annotations

import io
import logging

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from document_service.errors import ExtractionError
from document_service.ingestion.extractors.base import Extractor, normalize_mime_type, normalize_text

logger = logging.getLogger(__name__)


class PdfTextExtractor(Extractor):
    supported_mime_types = frozenset({"application/pdf"})

    def extract_text(self, data: bytes, mime_type: str) -> str:
        if not self.supports(mime_type):
            raise ExtractionError(
                f"MIME type '{normalize_mime_type(mime_type)}' is not supported by PdfTextExtractor"
            )
        try:
            r = PdfReader(io.BytesIO(data), strict=False)
            parts: list[str] = []
            for p in r.pages:
                t = p.extract_text() or ""
                if t.strip():
                    parts.append(t)
        except (PyPdfError, ValueError, KeyError, TypeError, OSError) as e:
            raise ExtractionError(f"Unreadable PDF: {e}") from e

        logger.debug("Extracted text from %d PDF pages", len(parts))
        return normalize_text("\n".join(parts))
