from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable


class Extractor(ABC):
    """Turns raw bytes of one family of MIME types into plain text."""

    supported_mime_types: frozenset[str] = frozenset()

    def supports(self, mime_type: str | None) -> bool:
        return normalize_mime_type(mime_type) in self.supported_mime_types

    @abstractmethod
    def extract_text(self, data: bytes, mime_type: str) -> str:
        """Return plain text. Raises ExtractionError on corrupt/unsupported content."""


def normalize_mime_type(mime_type: str | None) -> str:
    # "Text/Plain; charset=utf-8" -> "text/plain"
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def select_extractor(extractors: Iterable[Extractor], mime_type: str | None) -> Extractor | None:
    return next((ex for ex in extractors if ex.supports(mime_type)), None)


def normalize_text(text: str) -> str:
    if not text:
        return ""
    # Remove null bytes, normalize whitespace a bit
    text = text.replace("\x00", "")
    # Collapse very long runs of blank lines
    while "\n\n\n\n" in text:
        text = text.replace("\n\n\n\n", "\n\n\n")
    return text.strip()
