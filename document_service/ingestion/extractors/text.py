from __future__ import annotations

import codecs

from document_service.errors import ExtractionError
from document_service.ingestion.extractors.base import Extractor, normalize_mime_type, normalize_text


class PlainTextExtractor(Extractor):
    supported_mime_types = frozenset(
        {
            "text/plain",
            "text/csv",
            "text/html",
            "text/xml",
            "text/markdown",
            "application/json",
            "application/xml",
        }
    )

    def extract_text(self, data: bytes, mime_type: str) -> str:
        if not self.supports(mime_type):
            raise ExtractionError(
                f"MIME type '{normalize_mime_type(mime_type)}' is not supported by PlainTextExtractor"
            )
        # utf-8-sig drops a leading BOM; bad bytes are replaced, not fatal
        if data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
            text = data.decode("utf-16", errors="replace")
        else:
            text = data.decode("utf-8-sig", errors="replace")
        return normalize_text(text)
