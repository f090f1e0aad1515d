from __future__ import annotations

import io
import zipfile

import docx  # python-docx
from docx.opc.exceptions import PackageNotFoundError

from document_service.errors import ExtractionError
from document_service.ingestion.extractors.base import Extractor, normalize_mime_type, normalize_text

WORDPROCESSINGML = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class OpenXmlTextExtractor(Extractor):
    """Word (OOXML) documents: paragraphs first, then table cells."""

    supported_mime_types = frozenset({WORDPROCESSINGML})

    def extract_text(self, data: bytes, mime_type: str) -> str:
        if not self.supports(mime_type):
            raise ExtractionError(
                f"MIME type '{normalize_mime_type(mime_type)}' is not supported by OpenXmlTextExtractor"
            )
        try:
            d = docx.Document(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ExtractionError(f"Unreadable Office Open XML document: {e}") from e

        parts: list[str] = []
        for p in d.paragraphs:
            if p.text and p.text.strip():
                parts.append(p.text)
        for table in d.tables:
            for row in table.rows:
                cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
                if cells:
                    parts.append("\t".join(cells))
        return normalize_text("\n".join(parts))
