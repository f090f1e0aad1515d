"""Document records shared by the inbox pipeline and the search indexer.

The Document dataclass mirrors the columns of the ``documents`` table that
the pipeline reads and writes. ``needs_indexing`` and ``needs_index_removal``
are the pure forms of the reconciliation queries in
``stores.document_store``; both must stay in sync with that SQL.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Document:
    tenant_id: int
    document_type_id: int
    title: str
    storage_path: str
    id: int | None = None
    description: str | None = None
    content_hash: str | None = None
    file_size_bytes: int | None = None
    mime_type: str | None = None
    original_file_name: str | None = None
    metadata: str | None = None
    tags: str | None = None
    extracted_text: str | None = None

    # Version chain
    version: int = 1
    is_current_version: bool = True
    parent_document_id: int | None = None

    # Search index state (written by the reconciliation loop only)
    search_index_id: str | None = None
    last_indexed_at: datetime | None = None

    # Audit
    created_at: datetime = field(default_factory=utcnow)
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    # Soft delete / archive
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    deleted_reason: str | None = None
    is_archived: bool = False
    archived_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.version < 1:
            raise ValueError(f"version must be >= 1, got {self.version}")
        if self.last_indexed_at is not None and self.search_index_id is None:
            raise ValueError("last_indexed_at requires a search_index_id")

    @property
    def last_modified(self) -> datetime:
        return self.updated_at or self.created_at

    @classmethod
    def from_record(cls, row: Any) -> Document:
        """Build from an asyncpg Record (or any mapping with the column names)."""
        r = dict(row)
        return cls(
            id=r["id"],
            tenant_id=r["tenant_id"],
            document_type_id=r["document_type_id"],
            title=r["title"],
            description=r.get("description"),
            storage_path=r["storage_path"],
            content_hash=r.get("content_hash"),
            file_size_bytes=r.get("file_size_bytes"),
            mime_type=r.get("mime_type"),
            original_file_name=r.get("original_file_name"),
            metadata=r.get("metadata"),
            tags=r.get("tags"),
            extracted_text=r.get("extracted_text"),
            version=r.get("version") or 1,
            is_current_version=bool(r.get("is_current_version", True)),
            parent_document_id=r.get("parent_document_id"),
            search_index_id=r.get("search_index_id"),
            last_indexed_at=r.get("last_indexed_at"),
            created_at=r["created_at"],
            created_by=r.get("created_by"),
            updated_at=r.get("updated_at"),
            updated_by=r.get("updated_by"),
            is_deleted=bool(r.get("is_deleted", False)),
            deleted_at=r.get("deleted_at"),
            deleted_by=r.get("deleted_by"),
            deleted_reason=r.get("deleted_reason"),
            is_archived=bool(r.get("is_archived", False)),
            archived_at=r.get("archived_at"),
        )


def needs_indexing(doc: Document) -> bool:
    """Reconciliation eligibility: live document with a missing or stale index entry."""
    if doc.is_deleted:
        return False
    if doc.search_index_id is None or doc.last_indexed_at is None:
        return True
    return doc.last_indexed_at < doc.last_modified


def needs_index_removal(doc: Document) -> bool:
    return doc.is_deleted and doc.search_index_id is not None


@dataclass
class BatchOutcome:
    """Counts and timestamps for one bulk operation (inbox cycle, index batch)."""

    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    def record_success(self) -> None:
        self.processed += 1
        self.succeeded += 1

    def record_failure(self) -> None:
        self.processed += 1
        self.failed += 1

    def record_skipped(self) -> None:
        self.processed += 1

    def complete(self) -> BatchOutcome:
        self.completed_at = utcnow()
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
