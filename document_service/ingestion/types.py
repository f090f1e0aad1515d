from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime


@dataclass(frozen=True)
class BlobDescriptor:
    area: str
    name: str  # object name inside the area's bucket
    content_type: str | None
    size: int | None
    created_at: datetime | None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InboxItem:
    name: str
    data: bytes
    content_type: str | None
    size: int
    created_at: datetime | None
    tenant_id: int
    document_type_id: int
    title: str
    description: str | None = None
    metadata: str | None = None  # JSON string from blob metadata
    tags: str | None = None
    parent_document_id: int | None = None
    blob_metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of processing one inbox item.

    Either the success fields (content_hash, file_size_bytes, mime_type and
    optionally document_id / extracted_text) or the failure fields
    (error_message and optionally exception_details) are populated, never
    both. Use ``success_result`` / ``failure_result`` to build one.
    """

    success: bool
    blob_name: str
    processing_time_ms: int
    document_id: int | None = None
    extracted_text: str | None = None
    content_hash: str | None = None
    file_size_bytes: int | None = None
    mime_type: str | None = None
    error_message: str | None = None
    exception_details: str | None = None

    def __post_init__(self) -> None:
        success_fields = (
            self.document_id,
            self.extracted_text,
            self.content_hash,
            self.file_size_bytes,
            self.mime_type,
        )
        failure_fields = (self.error_message, self.exception_details)
        if self.success:
            if any(f is not None for f in failure_fields):
                raise ValueError("successful result must not carry error fields")
            if self.content_hash is None or self.file_size_bytes is None or self.mime_type is None:
                raise ValueError("successful result requires content_hash, file_size_bytes and mime_type")
        else:
            if any(f is not None for f in success_fields):
                raise ValueError("failed result must not carry success fields")
            if not self.error_message:
                raise ValueError("failed result requires an error_message")

    @classmethod
    def success_result(
        cls,
        *,
        blob_name: str,
        extracted_text: str,
        content_hash: str,
        file_size_bytes: int,
        mime_type: str,
        processing_time_ms: int,
        document_id: int | None = None,
    ) -> ProcessingResult:
        return cls(
            success=True,
            blob_name=blob_name,
            processing_time_ms=processing_time_ms,
            document_id=document_id,
            extracted_text=extracted_text,
            content_hash=content_hash,
            file_size_bytes=file_size_bytes,
            mime_type=mime_type,
        )

    @classmethod
    def failure_result(
        cls,
        *,
        blob_name: str,
        error_message: str,
        processing_time_ms: int,
        exception_details: str | None = None,
    ) -> ProcessingResult:
        return cls(
            success=False,
            blob_name=blob_name,
            processing_time_ms=processing_time_ms,
            error_message=error_message,
            exception_details=exception_details,
        )

    def with_document_id(self, document_id: int) -> ProcessingResult:
        if not self.success:
            raise ValueError("cannot attach a document id to a failed result")
        return replace(self, document_id=document_id)

