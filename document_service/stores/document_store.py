"""Persistence boundary for the ``documents`` table.

``DocumentRepository`` is what the inbox pipeline and the reconciliation loop
depend on; ``PostgresDocumentRepository`` implements it over asyncpg. Every
database failure surfaces as ``PersistenceError``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime

import asyncpg

from document_service.db import get_pool
from document_service.documents import Document
from document_service.errors import PersistenceError

logger = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = """
    id, tenant_id, document_type_id, title, description, storage_path,
    content_hash, file_size_bytes, mime_type, original_file_name,
    metadata, tags, extracted_text,
    version, is_current_version, parent_document_id,
    search_index_id, last_indexed_at,
    created_at, created_by, updated_at, updated_by,
    is_deleted, deleted_at, deleted_by, deleted_reason,
    is_archived, archived_at
"""

# Same predicate as documents.needs_indexing
_NEEDS_INDEXING_WHERE = """
    is_deleted = FALSE
    AND (
        search_index_id IS NULL
        OR last_indexed_at IS NULL
        OR last_indexed_at < COALESCE(updated_at, created_at)
    )
"""

_INSERT_SQL = f"""
    INSERT INTO documents
        (tenant_id, document_type_id, title, description, storage_path,
         content_hash, file_size_bytes, mime_type, original_file_name,
         metadata, tags, extracted_text,
         version, is_current_version, parent_document_id,
         created_at, created_by)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12,
            $13, $14, $15, $16, $17)
    RETURNING {_DOCUMENT_COLUMNS}
"""


class DocumentRepository(ABC):
    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert a new document; returns it with ``id`` populated."""

    @abstractmethod
    async def create_version(self, parent_id: int, document: Document) -> Document:
        """Insert ``document`` as the new current version of ``parent_id``'s chain."""

    @abstractmethod
    async def get(self, document_id: int) -> Document | None: ...

    @abstractmethod
    async def find_by_content_hash(
        self, tenant_id: int, content_hash: str, original_file_name: str | None
    ) -> Document | None:
        """Live current document with the same content and file name, if any."""

    @abstractmethod
    async def find_needing_indexing(self, limit: int) -> list[Document]: ...

    @abstractmethod
    async def find_pending_removal(self, limit: int) -> list[Document]: ...

    @abstractmethod
    async def mark_indexed(self, document_id: int, index_id: str, indexed_at: datetime) -> bool:
        """Record the index entry unless the document changed after ``indexed_at``."""

    @abstractmethod
    async def clear_index_state(self, document_id: int) -> None: ...

    @abstractmethod
    async def soft_delete(self, document_id: int, deleted_by: str, reason: str | None = None) -> bool: ...


class PostgresDocumentRepository(DocumentRepository):
    """asyncpg-backed repository. One short transaction per call."""

    def __init__(self, pool_factory: Callable[[], Awaitable[asyncpg.Pool]] = get_pool) -> None:
        self._pool_factory = pool_factory

    @asynccontextmanager
    async def _connection(self, what: str) -> AsyncIterator[asyncpg.Connection]:
        try:
            pool = await self._pool_factory()
            async with pool.acquire() as conn, conn.transaction():
                yield conn
        except PersistenceError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PersistenceError(f"{what} failed: {e}") from e

    @staticmethod
    def _insert_args(document: Document, *, version: int, is_current: bool, parent_id: int | None) -> tuple:
        return (
            document.tenant_id,
            document.document_type_id,
            document.title,
            document.description,
            document.storage_path,
            document.content_hash,
            document.file_size_bytes,
            document.mime_type,
            document.original_file_name,
            document.metadata,
            document.tags,
            document.extracted_text,
            version,
            is_current,
            parent_id,
            document.created_at,
            document.created_by,
        )

    async def create(self, document: Document) -> Document:
        async with self._connection("Create document") as conn:
            row = await conn.fetchrow(
                _INSERT_SQL,
                *self._insert_args(
                    document,
                    version=document.version,
                    is_current=document.is_current_version,
                    parent_id=document.parent_document_id,
                ),
            )
        created = Document.from_record(row)
        logger.info("Created document %s (tenant=%s)", created.id, created.tenant_id)
        return created

    async def create_version(self, parent_id: int, document: Document) -> Document:
        async with self._connection("Create document version") as conn:
            parent = await conn.fetchrow(
                "SELECT id, parent_document_id FROM documents WHERE id = $1 FOR UPDATE",
                parent_id,
            )
            if parent is None:
                raise PersistenceError(f"Parent document {parent_id} not found")
            root_id = parent["parent_document_id"] or parent["id"]

            # Lock the whole chain so concurrent versions serialize
            rows = await conn.fetch(
                """
                SELECT id, version, is_current_version
                FROM documents
                WHERE id = $1 OR parent_document_id = $1
                FOR UPDATE
                """,
                root_id,
            )
            next_version = max((r["version"] for r in rows), default=0) + 1

            await conn.execute(
                """
                UPDATE documents
                SET is_current_version = FALSE,
                    updated_at = NOW(),
                    updated_by = $2
                WHERE (id = $1 OR parent_document_id = $1)
                  AND is_current_version = TRUE
                """,
                root_id,
                document.created_by,
            )
            row = await conn.fetchrow(
                _INSERT_SQL,
                *self._insert_args(document, version=next_version, is_current=True, parent_id=root_id),
            )

        created = Document.from_record(row)
        logger.info(
            "Created document %s as version %d of chain %s",
            created.id,
            created.version,
            root_id,
        )
        return created

    async def get(self, document_id: int) -> Document | None:
        async with self._connection("Get document") as conn:
            row = await conn.fetchrow(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = $1",
                document_id,
            )
        return Document.from_record(row) if row else None

    async def find_by_content_hash(
        self, tenant_id: int, content_hash: str, original_file_name: str | None
    ) -> Document | None:
        async with self._connection("Find document by content hash") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_DOCUMENT_COLUMNS}
                FROM documents
                WHERE tenant_id = $1
                  AND content_hash = $2
                  AND original_file_name IS NOT DISTINCT FROM $3
                  AND is_deleted = FALSE
                  AND is_current_version = TRUE
                ORDER BY id DESC
                LIMIT 1
                """,
                tenant_id,
                content_hash,
                original_file_name,
            )
        return Document.from_record(row) if row else None

    async def find_needing_indexing(self, limit: int) -> list[Document]:
        async with self._connection("Find documents needing indexing") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_DOCUMENT_COLUMNS}
                FROM documents
                WHERE {_NEEDS_INDEXING_WHERE}
                ORDER BY COALESCE(updated_at, created_at), id
                LIMIT $1
                """,
                limit,
            )
        return [Document.from_record(r) for r in rows]

    async def find_pending_removal(self, limit: int) -> list[Document]:
        async with self._connection("Find documents pending index removal") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_DOCUMENT_COLUMNS}
                FROM documents
                WHERE is_deleted = TRUE AND search_index_id IS NOT NULL
                ORDER BY deleted_at NULLS FIRST, id
                LIMIT $1
                """,
                limit,
            )
        return [Document.from_record(r) for r in rows]

    async def mark_indexed(self, document_id: int, index_id: str, indexed_at: datetime) -> bool:
        # must not touch updated_at
        async with self._connection("Mark document indexed") as conn:
            tag = await conn.execute(
                """
                UPDATE documents
                SET search_index_id = $2, last_indexed_at = $3
                WHERE id = $1
                  AND COALESCE(updated_at, created_at) <= $3
                """,
                document_id,
                index_id,
                indexed_at,
            )
        return tag == "UPDATE 1"

    async def clear_index_state(self, document_id: int) -> None:
        async with self._connection("Clear document index state") as conn:
            await conn.execute(
                """
                UPDATE documents
                SET search_index_id = NULL, last_indexed_at = NULL
                WHERE id = $1
                """,
                document_id,
            )

    async def soft_delete(self, document_id: int, deleted_by: str, reason: str | None = None) -> bool:
        async with self._connection("Soft-delete document") as conn:
            tag = await conn.execute(
                """
                UPDATE documents
                SET is_deleted = TRUE,
                    deleted_at = NOW(),
                    deleted_by = $2,
                    deleted_reason = $3
                WHERE id = $1 AND is_deleted = FALSE
                """,
                document_id,
                deleted_by,
                reason,
            )
        return tag == "UPDATE 1"

