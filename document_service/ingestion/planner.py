"""Pure helpers that turn inbox blob descriptors into work items.

Tenant and document-type ids come from blob metadata first, then from the
``tenant-{id}/`` naming convention, then from configured defaults.
"""

from __future__ import annotations

import logging
import posixpath
import uuid
from collections.abc import Iterable
from datetime import datetime

from document_service.config import InboxConfig
from document_service.ingestion.extractors.base import normalize_mime_type
from document_service.ingestion.types import BlobDescriptor, InboxItem

logger = logging.getLogger(__name__)

GENERIC_MIME_TYPE = "application/octet-stream"

_EXT_MIME_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".xml": "application/xml",
    ".json": "application/json",
}

_TENANT_FOLDER_PREFIX = "tenant-"


def derive_mime_type(name: str) -> str | None:
    base = name.lower()
    for ext, mime in _EXT_MIME_TYPES.items():
        if base.endswith(ext):
            return mime
    return None


def resolve_mime_type(content_type: str | None, name: str) -> str:
    """Blob content type unless missing or generic, then guess from the extension."""
    ct = normalize_mime_type(content_type)
    if ct and ct != GENERIC_MIME_TYPE:
        return ct
    return derive_mime_type(name) or ct or GENERIC_MIME_TYPE


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _meta(metadata: dict[str, str], key: str) -> str | None:
    # case-insensitive fallback
    if key in metadata:
        return metadata[key]
    lowered = key.lower()
    for k, v in metadata.items():
        if k.lower() == lowered:
            return v
    return None


def tenant_from_name(name: str) -> int | None:
    parts = [p for p in name.split("/") if p]
    if len(parts) > 1 and parts[0].lower().startswith(_TENANT_FOLDER_PREFIX):
        return _parse_int(parts[0][len(_TENANT_FOLDER_PREFIX):])
    return None


def file_name(name: str) -> str:
    return posixpath.basename(name) or name


def title_from_name(name: str) -> str:
    base = file_name(name)
    stem, _ = posixpath.splitext(base)
    return stem or base


def order_for_processing(descriptors: Iterable[BlobDescriptor], limit: int) -> list[BlobDescriptor]:
    """Oldest first (creation time, then name); directory placeholders dropped."""
    items = [d for d in descriptors if not d.name.endswith("/")]
    items.sort(key=lambda d: (d.created_at is None, d.created_at or datetime.min, d.name))
    if limit > 0:
        items = items[:limit]
    return items


def build_inbox_item(descriptor: BlobDescriptor, data: bytes, cfg: InboxConfig) -> InboxItem:
    md = descriptor.metadata or {}

    tenant_id = _parse_int(_meta(md, "TenantId"))
    if tenant_id is None:
        tenant_id = cfg.default_tenant_id
    # tenant-{id}/ folder overrides metadata
    folder_tenant = tenant_from_name(descriptor.name)
    if folder_tenant is not None:
        tenant_id = folder_tenant

    document_type_id = _parse_int(_meta(md, "DocumentTypeId"))
    if document_type_id is None:
        document_type_id = cfg.default_document_type_id

    item = InboxItem(
        name=descriptor.name,
        data=data,
        content_type=resolve_mime_type(descriptor.content_type, descriptor.name),
        size=len(data),
        created_at=descriptor.created_at,
        tenant_id=tenant_id,
        document_type_id=document_type_id,
        title=_meta(md, "Title") or title_from_name(descriptor.name),
        description=_meta(md, "Description"),
        metadata=_meta(md, "Metadata"),
        tags=_meta(md, "Tags"),
        parent_document_id=_parse_int(_meta(md, "ParentDocumentId")),
        blob_metadata=dict(md),
    )
    logger.debug(
        "Resolved %s: tenant=%s type=%s mime=%s",
        item.name,
        item.tenant_id,
        item.document_type_id,
        item.content_type,
    )
    return item


def documents_storage_path(item: InboxItem, now: datetime, unique: uuid.UUID | None = None) -> str:
    """Long-term path in the documents area: tenant/yyyy/mm/dd/uuid/file name."""
    u = unique or uuid.uuid4()
    return f"{item.tenant_id}/{now:%Y/%m/%d}/{u}/{file_name(item.name)}"


def moved_blob_name(name: str, now: datetime) -> str:
    """Timestamped flat name for processed/failed areas, avoiding collisions."""
    return f"{now:%Y%m%d%H%M%S}_{name.replace('/', '_')}"
