"""PostgresDocumentRepository against a mocked asyncpg pool."""

from __future__ import annotations

from datetime import UTC, datetime

import asyncpg
import pytest

from document_service.documents import Document
from document_service.errors import PersistenceError
from document_service.stores.document_store import PostgresDocumentRepository

T0 = datetime(2026, 4, 2, 8, 30, tzinfo=UTC)


def _row(**kw) -> dict:
    row = {
        "id": 1,
        "tenant_id": 1,
        "document_type_id": 1,
        "title": "report",
        "description": None,
        "storage_path": "1/2026/04/02/u/report.txt",
        "content_hash": "abc",
        "file_size_bytes": 5,
        "mime_type": "text/plain",
        "original_file_name": "report.txt",
        "metadata": None,
        "tags": None,
        "extracted_text": "hello",
        "version": 1,
        "is_current_version": True,
        "parent_document_id": None,
        "search_index_id": None,
        "last_indexed_at": None,
        "created_at": T0,
        "created_by": "InboxProcessor",
        "updated_at": None,
        "updated_by": None,
        "is_deleted": False,
        "deleted_at": None,
        "deleted_by": None,
        "deleted_reason": None,
        "is_archived": False,
        "archived_at": None,
    }
    row.update(kw)
    return row


def _new_doc() -> Document:
    return Document(
        tenant_id=1,
        document_type_id=1,
        title="report",
        storage_path="1/2026/04/02/u/report.txt",
        content_hash="abc",
        extracted_text="hello",
        created_at=T0,
        created_by="InboxProcessor",
    )


@pytest.fixture
def repo(pool_factory) -> PostgresDocumentRepository:
    return PostgresDocumentRepository(pool_factory)


class TestCreate:
    async def test_returns_stored_row(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.return_value = _row(id=42)

        created = await repo.create(_new_doc())

        assert created.id == 42
        assert created.extracted_text == "hello"
        args = pg_conn.fetchrow.call_args.args
        assert args[0].lstrip().startswith("INSERT INTO documents")
        assert len(args) == 18
        assert args[13:16] == (1, True, None)
        assert pg_conn.tx_log == ["begin", "commit"]

    async def test_database_error_becomes_persistence_error(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.side_effect = asyncpg.exceptions.NotNullViolationError("title")
        with pytest.raises(PersistenceError, match="Create document failed"):
            await repo.create(_new_doc())
        assert pg_conn.tx_log == ["begin", "rollback"]

    async def test_pool_failure(self) -> None:
        async def broken():
            raise OSError("no route to host")

        with pytest.raises(PersistenceError):
            await PostgresDocumentRepository(broken).create(_new_doc())


class TestCreateVersion:
    async def test_appends_to_chain_root(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.side_effect = [
            {"id": 3, "parent_document_id": 1},
            _row(id=4, version=3, parent_document_id=1),
        ]
        pg_conn.fetch.return_value = [
            {"id": 1, "version": 1, "is_current_version": False},
            {"id": 3, "version": 2, "is_current_version": True},
        ]

        created = await repo.create_version(3, _new_doc())

        assert created.version == 3
        assert created.parent_document_id == 1
        assert pg_conn.fetch.call_args.args[1] == 1
        flip_sql, root, user = pg_conn.execute.call_args.args
        assert "is_current_version = FALSE" in flip_sql
        assert "updated_at = NOW()" in flip_sql
        assert (root, user) == (1, "InboxProcessor")
        insert_args = pg_conn.fetchrow.call_args.args
        assert insert_args[13:16] == (3, True, 1)

    async def test_missing_parent(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.return_value = None
        with pytest.raises(PersistenceError, match="Parent document 99 not found"):
            await repo.create_version(99, _new_doc())
        pg_conn.execute.assert_not_called()
        assert pg_conn.tx_log == ["begin", "rollback"]


class TestQueries:
    async def test_get(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.return_value = _row(id=5)
        assert (await repo.get(5)).id == 5
        pg_conn.fetchrow.return_value = None
        assert await repo.get(6) is None

    async def test_find_by_content_hash(self, repo, pg_conn) -> None:
        pg_conn.fetchrow.return_value = _row(id=8)

        found = await repo.find_by_content_hash(1, "abc", "report.txt")

        assert found.id == 8
        sql, *params = pg_conn.fetchrow.call_args.args
        assert "is_deleted = FALSE" in sql
        assert params == [1, "abc", "report.txt"]

    async def test_find_needing_indexing(self, repo, pg_conn) -> None:
        pg_conn.fetch.return_value = [_row(id=1), _row(id=2)]

        docs = await repo.find_needing_indexing(50)

        assert [d.id for d in docs] == [1, 2]
        sql, limit = pg_conn.fetch.call_args.args
        assert "last_indexed_at < COALESCE(updated_at, created_at)" in sql
        assert limit == 50

    async def test_find_pending_removal(self, repo, pg_conn) -> None:
        pg_conn.fetch.return_value = [_row(id=3, is_deleted=True, search_index_id="doc_3_x")]
        [doc] = await repo.find_pending_removal(10)
        assert doc.is_deleted and doc.search_index_id == "doc_3_x"


class TestIndexState:
    async def test_mark_indexed_leaves_updated_at_alone(self, repo, pg_conn) -> None:
        pg_conn.execute.return_value = "UPDATE 1"
        assert await repo.mark_indexed(1, "doc_1_x", T0) is True
        sql, *params = pg_conn.execute.call_args.args
        assert "updated_at =" not in sql
        assert params == [1, "doc_1_x", T0]

    async def test_mark_indexed_refused_when_changed_since(self, repo, pg_conn) -> None:
        pg_conn.execute.return_value = "UPDATE 0"
        assert await repo.mark_indexed(1, "doc_1_x", T0) is False
        sql = pg_conn.execute.call_args.args[0]
        assert "COALESCE(updated_at, created_at) <= $3" in sql

    async def test_clear_index_state(self, repo, pg_conn) -> None:
        await repo.clear_index_state(1)
        sql, doc_id = pg_conn.execute.call_args.args
        assert "search_index_id = NULL" in sql
        assert doc_id == 1

    async def test_soft_delete(self, repo, pg_conn) -> None:
        pg_conn.execute.return_value = "UPDATE 1"
        assert await repo.soft_delete(1, "admin", "duplicate") is True
        pg_conn.execute.return_value = "UPDATE 0"
        assert await repo.soft_delete(1, "admin") is False
