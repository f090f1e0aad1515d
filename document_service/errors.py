"""Error taxonomy shared by the ingestion pipeline and the search indexer.

Per-item errors are caught at the narrowest scope and recorded; only
ConfigurationError is meant to stop the process (at startup).
"""

from __future__ import annotations


class DocumentServiceError(Exception):
    """Base class for all service errors."""


class ExtractionError(DocumentServiceError):
    """Content could not be turned into text (corrupt or unsupported input)."""


class StorageError(DocumentServiceError):
    """Blob storage list/download/upload/move failure. Retryable."""


class PersistenceError(DocumentServiceError):
    """Document repository read/write failure."""


class SearchIndexError(DocumentServiceError):
    """Search index backend failure."""


class ConfigurationError(DocumentServiceError, ValueError):
    """Missing or invalid settings. Fatal at startup."""
