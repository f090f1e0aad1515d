"""Full-text search index over PostgreSQL (``document_search_index``).

Each entry is a searchable projection of one document plus a generated
tsvector. Batch indexing writes every document under its own savepoint so one
bad row never blocks the rest; the returned map holds only confirmed writes.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import asyncpg

from document_service.db import get_search_pool
from document_service.documents import Document
from document_service.errors import SearchIndexError

logger = logging.getLogger(__name__)

_UPSERT_SQL = """
    INSERT INTO document_search_index
        (index_id, document_id, tenant_id, document_type_id,
         title, description, content, original_file_name, tags, metadata,
         mime_type, file_size_bytes, version, is_current_version,
         fts_language, created_at, updated_at, indexed_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
            $15::text::regconfig, $16, $17, NOW())
    ON CONFLICT (document_id) DO UPDATE SET
        tenant_id = EXCLUDED.tenant_id,
        document_type_id = EXCLUDED.document_type_id,
        title = EXCLUDED.title,
        description = EXCLUDED.description,
        content = EXCLUDED.content,
        original_file_name = EXCLUDED.original_file_name,
        tags = EXCLUDED.tags,
        metadata = EXCLUDED.metadata,
        mime_type = EXCLUDED.mime_type,
        file_size_bytes = EXCLUDED.file_size_bytes,
        version = EXCLUDED.version,
        is_current_version = EXCLUDED.is_current_version,
        fts_language = EXCLUDED.fts_language,
        created_at = EXCLUDED.created_at,
        updated_at = EXCLUDED.updated_at,
        indexed_at = NOW()
    RETURNING index_id
"""


def new_index_id(document_id: int) -> str:
    return f"doc_{document_id}_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class SearchHit:
    index_id: str
    document_id: int
    tenant_id: int
    document_type_id: int
    title: str
    version: int
    is_current_version: bool
    rank: float
    snippet: str | None = None


class SearchIndexer:
    """Stateless index writer/reader; connections come from the search pool."""

    def __init__(
        self,
        pool_factory: Callable[[], Awaitable[asyncpg.Pool]] = get_search_pool,
        *,
        fts_language: str = "english",
    ) -> None:
        self._pool_factory = pool_factory
        self._fts_language = fts_language

    async def _pool(self) -> asyncpg.Pool:
        try:
            return await self._pool_factory()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Search index unavailable: {e}") from e

    async def _upsert(self, conn: asyncpg.Connection, doc: Document) -> str:
        if doc.id is None:
            raise SearchIndexError("Cannot index a document without an id")
        index_id = await conn.fetchval(
            _UPSERT_SQL,
            doc.search_index_id or new_index_id(doc.id),
            doc.id,
            doc.tenant_id,
            doc.document_type_id,
            doc.title,
            doc.description,
            doc.extracted_text,
            doc.original_file_name,
            doc.tags,
            doc.metadata,
            doc.mime_type,
            doc.file_size_bytes,
            doc.version,
            doc.is_current_version,
            self._fts_language,
            doc.created_at,
            doc.updated_at,
        )
        return str(index_id)

    async def index_one(self, document: Document) -> str:
        pool = await self._pool()
        try:
            async with pool.acquire() as conn, conn.transaction():
                return await self._upsert(conn, document)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Indexing document {document.id} failed: {e}") from e

    async def index_batch(self, documents: Sequence[Document]) -> dict[int, str]:
        """Index documents; returns {document_id: index_id} for confirmed writes only."""
        confirmed: dict[int, str] = {}
        if not documents:
            return confirmed

        pool = await self._pool()
        try:
            async with pool.acquire() as conn, conn.transaction():
                for doc in documents:
                    if doc.id is None:
                        logger.warning("Skipping unsaved document '%s' in index batch", doc.title)
                        continue
                    try:
                        async with conn.transaction():
                            confirmed[doc.id] = await self._upsert(conn, doc)
                    except asyncpg.PostgresError as e:
                        logger.warning("Indexing document %s failed: %s", doc.id, e)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Index batch of {len(documents)} failed: {e}") from e

        logger.info("Indexed %d/%d documents", len(confirmed), len(documents))
        return confirmed

    async def update(self, document: Document) -> None:
        if not document.search_index_id:
            raise SearchIndexError(f"Document {document.id} has no index entry to update")
        await self.index_one(document)

    async def remove(self, index_id: str) -> bool:
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                tag = await conn.execute(
                    "DELETE FROM document_search_index WHERE index_id = $1",
                    index_id,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Removing index entry {index_id} failed: {e}") from e
        return tag == "DELETE 1"

    async def remove_batch(self, index_ids: Iterable[str]) -> int:
        ids = [i for i in index_ids if i]
        if not ids:
            return 0
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                tag = await conn.execute(
                    "DELETE FROM document_search_index WHERE index_id = ANY($1::text[])",
                    ids,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Removing {len(ids)} index entries failed: {e}") from e
        removed = int(tag.split()[-1]) if tag else 0
        logger.info("Removed %d/%d index entries", removed, len(ids))
        return removed

    async def is_healthy(self) -> bool:
        try:
            pool = await self._pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            logger.exception("Search index health check failed")
            return False

    async def search(
        self,
        query: str,
        *,
        tenant_id: int,
        document_type_id: int | None = None,
        only_current_version: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SearchHit]:
        """Ranked full-text search scoped to one tenant."""
        if not query or not query.strip():
            return []

        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    WITH q AS (
                        SELECT websearch_to_tsquery($1::text::regconfig, $2) AS tsq
                    )
                    SELECT s.index_id, s.document_id, s.tenant_id, s.document_type_id,
                           s.title, s.version, s.is_current_version,
                           ts_rank(s.search_vector, q.tsq) AS rank,
                           ts_headline(s.fts_language, COALESCE(s.content, ''), q.tsq,
                                       'MaxFragments=2, MaxWords=30, MinWords=10') AS snippet
                    FROM document_search_index s, q
                    WHERE s.search_vector @@ q.tsq
                      AND s.tenant_id = $3
                      AND ($4::int IS NULL OR s.document_type_id = $4)
                      AND (NOT $5 OR s.is_current_version)
                    ORDER BY rank DESC, s.document_id DESC
                    LIMIT $6 OFFSET $7
                    """,
                    self._fts_language,
                    query,
                    tenant_id,
                    document_type_id,
                    only_current_version,
                    limit,
                    offset,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise SearchIndexError(f"Search failed: {e}") from e

        return [_hit(r) for r in rows]


def _hit(row: Any) -> SearchHit:
    return SearchHit(
        index_id=row["index_id"],
        document_id=row["document_id"],
        tenant_id=row["tenant_id"],
        document_type_id=row["document_type_id"],
        title=row["title"],
        version=row["version"],
        is_current_version=row["is_current_version"],
        rank=float(row["rank"]),
        snippet=row["snippet"],
    )
