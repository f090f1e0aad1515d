"""Unit test conftest: no database, no GCS.

In-memory stand-ins for the blob areas, the document repository and the
search index, plus real PDF/DOCX bytes built in memory.
"""

from __future__ import annotations

import io
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from document_service.config import IndexingConfig, InboxConfig
from document_service.documents import Document, needs_index_removal, needs_indexing, utcnow
from document_service.errors import PersistenceError, SearchIndexError, StorageError
from document_service.ingestion.blob_areas import BlobAreas, DownloadedBlob
from document_service.ingestion.planner import moved_blob_name, order_for_processing
from document_service.ingestion.types import BlobDescriptor
from document_service.search.indexer import new_index_id
from document_service.stores.document_store import DocumentRepository

# ---------------------------------------------------------------------------
# Fixture files
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_docx_bytes() -> bytes:
    """Two paragraphs and a 2x2 table."""
    docx = pytest.importorskip("docx")
    doc = docx.Document()
    doc.add_paragraph("Quarterly report for the northern region.")
    doc.add_paragraph("Revenue grew steadily.")
    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Region"
    table.cell(0, 1).text = "Revenue"
    table.cell(1, 0).text = "North"
    table.cell(1, 1).text = "1200"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def empty_docx_bytes() -> bytes:
    docx = pytest.importorskip("docx")
    doc = docx.Document()
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Generate a 2-page PDF via fpdf2."""
    fpdf = pytest.importorskip("fpdf")
    pdf = fpdf.FPDF()
    pdf.set_font("Helvetica", size=12)
    pdf.add_page()
    pdf.cell(text="Invoice number 4711 for consulting services.")
    pdf.add_page()
    pdf.cell(text="Payment due within thirty days.")
    return bytes(pdf.output())


@pytest.fixture
def corrupt_pdf_bytes() -> bytes:
    return b"%PDF-1.7\nthis is not really a pdf \x00\x01\x02 at all"


# ---------------------------------------------------------------------------
# Blob areas
# ---------------------------------------------------------------------------


class FakeBlobAreas(BlobAreas):
    """Dict-backed areas. Records every call for assertions."""

    def __init__(self, system_user: str = "InboxProcessor") -> None:
        self.objects: dict[str, dict[str, dict[str, Any]]] = {
            "inbox": {},
            "processed": {},
            "failed": {},
            "documents": {},
        }
        self.calls: list[tuple[str, str, str | None]] = []
        self.system_user = system_user
        self.fail_download: set[str] = set()
        self.fail_upload = False
        self.fail_delete = False
        self.fail_move_to: set[str] = set()
        self.vanish_on_download: set[str] = set()

    def put(
        self,
        area: str,
        name: str,
        data: bytes,
        *,
        content_type: str | None = "text/plain",
        metadata: Mapping[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> None:
        self.objects[area][name] = {
            "data": data,
            "content_type": content_type,
            "metadata": dict(metadata or {}),
            "created_at": created_at or utcnow(),
        }

    def names(self, area: str) -> list[str]:
        return sorted(self.objects[area])

    def _describe(self, area: str, name: str) -> BlobDescriptor:
        o = self.objects[area][name]
        return BlobDescriptor(
            area=area,
            name=name,
            content_type=o["content_type"],
            size=len(o["data"]),
            created_at=o["created_at"],
            metadata=dict(o["metadata"]),
        )

    def list(self, area: str, limit: int | None = None) -> list[BlobDescriptor]:
        self.calls.append(("list", area, None))
        return order_for_processing([self._describe(area, n) for n in self.objects[area]], limit or 0)

    def download(self, area: str, name: str) -> DownloadedBlob | None:
        self.calls.append(("download", area, name))
        if name in self.fail_download:
            raise StorageError(f"download of {name} failed")
        if name in self.vanish_on_download:
            self.objects[area].pop(name, None)
        if name not in self.objects[area]:
            return None
        return DownloadedBlob(descriptor=self._describe(area, name), data=self.objects[area][name]["data"])

    def upload(
        self,
        area: str,
        name: str,
        data: bytes,
        content_type: str | None,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        self.calls.append(("upload", area, name))
        if self.fail_upload:
            raise StorageError(f"upload of {name} failed")
        self.put(area, name, data, content_type=content_type, metadata=metadata)

    def delete(self, area: str, name: str) -> None:
        self.calls.append(("delete", area, name))
        if self.fail_delete:
            raise StorageError(f"delete of {name} failed")
        self.objects[area].pop(name, None)

    def move(
        self,
        from_area: str,
        to_area: str,
        name: str,
        extra_metadata: Mapping[str, str] | None = None,
    ) -> str:
        self.calls.append(("move", to_area, name))
        if to_area in self.fail_move_to:
            raise StorageError(f"move of {name} to {to_area} failed")
        if name not in self.objects[from_area]:
            raise StorageError(f"{name} not found in {from_area}")
        now = datetime.now(UTC)
        src = self.objects[from_area][name]
        metadata = dict(src["metadata"])
        metadata.update(
            {"ProcessedTime": now.isoformat(), "ProcessedBy": self.system_user, "SourceContainer": from_area}
        )
        metadata.update(extra_metadata or {})
        dest = moved_blob_name(name, now)
        self.put(to_area, dest, src["data"], content_type=src["content_type"], metadata=metadata)
        del self.objects[from_area][name]
        return dest


# ---------------------------------------------------------------------------
# Document repository
# ---------------------------------------------------------------------------


class InMemoryDocumentRepository(DocumentRepository):
    """Mirrors PostgresDocumentRepository semantics over a dict."""

    def __init__(self) -> None:
        self.docs: dict[int, Document] = {}
        self._next_id = 1
        self.fail_create = False
        self.create_calls = 0

    def _insert(self, document: Document) -> Document:
        if self.fail_create:
            raise PersistenceError("database unavailable")
        self.create_calls += 1
        created = replace(document, id=self._next_id)
        self.docs[created.id] = created
        self._next_id += 1
        return created

    def add(self, **fields: Any) -> Document:
        """Insert a ready-made document directly (test setup)."""
        fields.setdefault("tenant_id", 1)
        fields.setdefault("document_type_id", 1)
        fields.setdefault("title", "doc")
        fields.setdefault("storage_path", "1/2026/01/01/x/doc.txt")
        doc = replace(Document(**fields), id=self._next_id)
        self.docs[doc.id] = doc
        self._next_id += 1
        return doc

    async def create(self, document: Document) -> Document:
        return self._insert(document)

    async def create_version(self, parent_id: int, document: Document) -> Document:
        parent = self.docs.get(parent_id)
        if parent is None:
            raise PersistenceError(f"Parent document {parent_id} not found")
        root_id = parent.parent_document_id or parent.id
        chain = [d for d in self.docs.values() if d.id == root_id or d.parent_document_id == root_id]
        next_version = max(d.version for d in chain) + 1
        for d in chain:
            if d.is_current_version:
                self.docs[d.id] = replace(d, is_current_version=False, updated_at=utcnow())
        return self._insert(
            replace(document, version=next_version, is_current_version=True, parent_document_id=root_id)
        )

    async def get(self, document_id: int) -> Document | None:
        return self.docs.get(document_id)

    async def find_by_content_hash(
        self, tenant_id: int, content_hash: str, original_file_name: str | None
    ) -> Document | None:
        matches = [
            d
            for d in self.docs.values()
            if d.tenant_id == tenant_id
            and d.content_hash == content_hash
            and d.original_file_name == original_file_name
            and not d.is_deleted
            and d.is_current_version
        ]
        return max(matches, key=lambda d: d.id) if matches else None

    async def find_needing_indexing(self, limit: int) -> list[Document]:
        docs = sorted((d for d in self.docs.values() if needs_indexing(d)), key=lambda d: (d.last_modified, d.id))
        return docs[:limit]

    async def find_pending_removal(self, limit: int) -> list[Document]:
        return [d for d in self.docs.values() if needs_index_removal(d)][:limit]

    async def mark_indexed(self, document_id: int, index_id: str, indexed_at: datetime) -> bool:
        doc = self.docs[document_id]
        if doc.last_modified > indexed_at:
            return False
        self.docs[document_id] = replace(doc, search_index_id=index_id, last_indexed_at=indexed_at)
        return True

    async def clear_index_state(self, document_id: int) -> None:
        self.docs[document_id] = replace(self.docs[document_id], search_index_id=None, last_indexed_at=None)

    async def soft_delete(self, document_id: int, deleted_by: str, reason: str | None = None) -> bool:
        doc = self.docs.get(document_id)
        if doc is None or doc.is_deleted:
            return False
        self.docs[document_id] = replace(
            doc, is_deleted=True, deleted_at=utcnow(), deleted_by=deleted_by, deleted_reason=reason
        )
        return True

    def edit(self, document_id: int, **changes: Any) -> Document:
        """Simulate a user edit: apply changes and bump updated_at."""
        doc = self.docs[document_id]
        floor = doc.last_modified + timedelta(microseconds=1)
        self.docs[document_id] = replace(doc, **changes, updated_at=max(utcnow(), floor))
        return self.docs[document_id]


# ---------------------------------------------------------------------------
# Search index
# ---------------------------------------------------------------------------


class FakeSearchIndexer:
    """Dict-backed index with switchable health and per-document failures."""

    def __init__(self) -> None:
        self.entries: dict[str, int] = {}
        self.healthy = True
        self.fail_document_ids: set[int] = set()
        self.raise_on_batch: set[int] = set()  # batch numbers (1-based) that raise
        self.batch_calls: list[list[int]] = []
        self.texts: dict[int, str | None] = {}
        self.before_batch: Callable[[int], None] | None = None
        self.removed: list[str] = []

    async def is_healthy(self) -> bool:
        return self.healthy

    async def index_one(self, document: Document) -> str:
        if document.id in self.fail_document_ids:
            raise SearchIndexError(f"cannot index {document.id}")
        # one entry per document, like ON CONFLICT (document_id)
        existing = next((k for k, v in self.entries.items() if v == document.id), None)
        index_id = existing or document.search_index_id or new_index_id(document.id)
        self.entries[index_id] = document.id
        self.texts[document.id] = document.extracted_text
        return index_id

    async def index_batch(self, documents: Iterable[Document]) -> dict[int, str]:
        docs = list(documents)
        self.batch_calls.append([d.id for d in docs])
        if self.before_batch is not None:
            self.before_batch(len(self.batch_calls))
        if len(self.batch_calls) in self.raise_on_batch:
            raise SearchIndexError("index backend timed out")
        confirmed: dict[int, str] = {}
        for d in docs:
            if d.id in self.fail_document_ids:
                continue
            confirmed[d.id] = await self.index_one(d)
        return confirmed

    async def update(self, document: Document) -> None:
        await self.index_one(document)

    async def remove(self, index_id: str) -> bool:
        self.removed.append(index_id)
        return self.entries.pop(index_id, None) is not None

    async def remove_batch(self, index_ids: Iterable[str]) -> int:
        return sum([await self.remove(i) for i in index_ids])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def areas() -> FakeBlobAreas:
    return FakeBlobAreas()


@pytest.fixture
def repository() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def search_index() -> FakeSearchIndexer:
    return FakeSearchIndexer()


@pytest.fixture
def inbox_config() -> InboxConfig:
    return InboxConfig(poll_interval_seconds=0.01, error_backoff_seconds=0.01)


@pytest.fixture
def indexing_config() -> IndexingConfig:
    return IndexingConfig(
        batch_size=2,
        max_documents_per_cycle=10,
        startup_delay_seconds=0,
        interval_minutes=0.001,
        error_backoff_seconds=0.01,
    )


# ---------------------------------------------------------------------------
# asyncpg pool / connection mocks
# ---------------------------------------------------------------------------


class _Transaction:
    """Stand-in for ``conn.transaction()``; records entries and exits."""

    def __init__(self, log: list[str]) -> None:
        self._log = log

    async def __aenter__(self) -> None:
        self._log.append("begin")

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._log.append("rollback" if exc_type else "commit")
        return False


@pytest.fixture
def pg_conn() -> AsyncMock:
    conn = AsyncMock()
    conn.tx_log = []
    conn.transaction = MagicMock(side_effect=lambda: _Transaction(conn.tx_log))
    return conn


@pytest.fixture
def pg_pool(pg_conn: AsyncMock) -> MagicMock:
    pool = MagicMock()
    acquired = MagicMock()
    acquired.__aenter__ = AsyncMock(return_value=pg_conn)
    acquired.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = acquired
    return pool


@pytest.fixture
def pool_factory(pg_pool: MagicMock):
    async def _factory() -> MagicMock:
        return pg_pool

    return _factory
