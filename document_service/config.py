"""Environment-variable-driven configuration.

Settings are read once at startup into frozen dataclasses and passed
explicitly into each component's constructor.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from document_service.errors import ConfigurationError


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "t", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}") from e


def _get_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {v!r}") from e


@dataclass(frozen=True)
class InboxConfig:
    # Storage areas (one bucket per area)
    inbox_container: str = "inbox"
    processed_container: str = "processed"
    failed_container: str = "failed"
    documents_container: str = "documents"

    # Scheduling
    enabled: bool = True
    poll_interval_seconds: float = 30.0
    batch_size: int = 10
    error_backoff_seconds: float = 30.0

    # Defaults for items without tenant/type metadata
    default_tenant_id: int = 1
    default_document_type_id: int = 1

    # Audit label written into created_by and blob metadata
    system_user: str = "InboxProcessor"

    dedup_by_hash: bool = True

    @classmethod
    def from_env(cls) -> InboxConfig:
        return cls(
            inbox_container=os.getenv("DOC_INBOX_CONTAINER", "inbox"),
            processed_container=os.getenv("DOC_PROCESSED_CONTAINER", "processed"),
            failed_container=os.getenv("DOC_FAILED_CONTAINER", "failed"),
            documents_container=os.getenv("DOC_DOCUMENTS_CONTAINER", "documents"),
            enabled=_get_bool("DOC_INBOX_ENABLED", True),
            poll_interval_seconds=_get_float("DOC_INBOX_POLL_INTERVAL_SECONDS", 30.0),
            batch_size=_get_int("DOC_INBOX_BATCH_SIZE", 10),
            error_backoff_seconds=_get_float("DOC_INBOX_ERROR_BACKOFF_SECONDS", 30.0),
            default_tenant_id=_get_int("DOC_DEFAULT_TENANT_ID", 1),
            default_document_type_id=_get_int("DOC_DEFAULT_DOCUMENT_TYPE_ID", 1),
            system_user=os.getenv("DOC_SYSTEM_USER", "InboxProcessor"),
            dedup_by_hash=_get_bool("DOC_INBOX_DEDUP_BY_HASH", True),
        )

    def area_buckets(self) -> dict[str, str]:
        """Map logical area names to bucket names."""
        return {
            "inbox": self.inbox_container,
            "processed": self.processed_container,
            "failed": self.failed_container,
            "documents": self.documents_container,
        }

    def validate(self) -> None:
        buckets = self.area_buckets()
        missing = [area for area, name in buckets.items() if not (name or "").strip()]
        if missing:
            raise ConfigurationError(f"Container name missing for area(s): {', '.join(missing)}")
        if len(set(buckets.values())) != len(buckets):
            raise ConfigurationError("Inbox, processed, failed and documents containers must be distinct")

        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("DOC_INBOX_POLL_INTERVAL_SECONDS must be > 0")
        if self.batch_size < 1:
            raise ConfigurationError("DOC_INBOX_BATCH_SIZE must be >= 1")
        if self.error_backoff_seconds < 0:
            raise ConfigurationError("DOC_INBOX_ERROR_BACKOFF_SECONDS must be >= 0")
        if not self.system_user.strip():
            raise ConfigurationError("DOC_SYSTEM_USER must not be empty")


@dataclass(frozen=True)
class IndexingConfig:
    enabled: bool = True
    interval_minutes: float = 5.0
    batch_size: int = 100
    startup_delay_seconds: float = 30.0
    error_backoff_seconds: float = 60.0
    max_documents_per_cycle: int = 1000
    fts_language: str = "english"

    @classmethod
    def from_env(cls) -> IndexingConfig:
        return cls(
            enabled=_get_bool("DOC_INDEXING_ENABLED", True),
            interval_minutes=_get_float("DOC_INDEXING_INTERVAL_MINUTES", 5.0),
            batch_size=_get_int("DOC_INDEXING_BATCH_SIZE", 100),
            startup_delay_seconds=_get_float("DOC_INDEXING_STARTUP_DELAY_SECONDS", 30.0),
            error_backoff_seconds=_get_float("DOC_INDEXING_ERROR_BACKOFF_SECONDS", 60.0),
            max_documents_per_cycle=_get_int("DOC_INDEXING_MAX_DOCUMENTS_PER_CYCLE", 1000),
            fts_language=os.getenv("DOC_FTS_LANGUAGE", "english"),
        )

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    def validate(self) -> None:
        if self.interval_minutes <= 0:
            raise ConfigurationError("DOC_INDEXING_INTERVAL_MINUTES must be > 0")
        if self.batch_size < 1:
            raise ConfigurationError("DOC_INDEXING_BATCH_SIZE must be >= 1")
        if self.startup_delay_seconds < 0:
            raise ConfigurationError("DOC_INDEXING_STARTUP_DELAY_SECONDS must be >= 0")
        if self.error_backoff_seconds < 0:
            raise ConfigurationError("DOC_INDEXING_ERROR_BACKOFF_SECONDS must be >= 0")
        if self.max_documents_per_cycle < self.batch_size:
            raise ConfigurationError(
                "DOC_INDEXING_MAX_DOCUMENTS_PER_CYCLE must be >= DOC_INDEXING_BATCH_SIZE"
            )
        if not self.fts_language.strip():
            raise ConfigurationError("DOC_FTS_LANGUAGE must not be empty")


@dataclass(frozen=True)
class ServiceConfig:
    inbox: InboxConfig
    indexing: IndexingConfig
    gcp_project: str | None = None

    @classmethod
    def from_env(cls) -> ServiceConfig:
        return cls(
            inbox=InboxConfig.from_env(),
            indexing=IndexingConfig.from_env(),
            gcp_project=os.getenv("GOOGLE_CLOUD_PROJECT") or None,
        )

    def validate(self) -> None:
        self.inbox.validate()
        self.indexing.validate()

