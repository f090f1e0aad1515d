"""Create documents and document_search_index.

Revision ID: 001
Create Date: 2026-10-19

documents is the primary store written by the inbox pipeline.
document_search_index holds one searchable projection per document and is
written only by the reconciliation loop.
"""

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # -- documents ------------------------------------------------------------
    op.execute(
        """
        CREATE TABLE documents (
            id BIGSERIAL PRIMARY KEY,
            tenant_id INT NOT NULL,
            document_type_id INT NOT NULL,

            title TEXT NOT NULL,
            description TEXT,
            storage_path TEXT NOT NULL,
            content_hash TEXT,
            file_size_bytes BIGINT,
            mime_type TEXT,
            original_file_name TEXT,
            metadata TEXT,
            tags TEXT,
            extracted_text TEXT,

            version INT NOT NULL DEFAULT 1 CHECK (version >= 1),
            is_current_version BOOLEAN NOT NULL DEFAULT TRUE,
            parent_document_id BIGINT REFERENCES documents(id),

            search_index_id TEXT,
            last_indexed_at TIMESTAMPTZ,

            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            created_by TEXT,
            updated_at TIMESTAMPTZ,
            updated_by TEXT,

            is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
            deleted_at TIMESTAMPTZ,
            deleted_by TEXT,
            deleted_reason TEXT,
            is_archived BOOLEAN NOT NULL DEFAULT FALSE,
            archived_at TIMESTAMPTZ,

            CHECK (last_indexed_at IS NULL OR search_index_id IS NOT NULL)
        )
    """
    )

    # Reconciliation scan: live documents ordered by last change
    op.execute(
        """
        CREATE INDEX ix_documents_reconcile
        ON documents ((COALESCE(updated_at, created_at)), id)
        WHERE is_deleted = FALSE
    """
    )

    # Index removal scan
    op.execute(
        """
        CREATE INDEX ix_documents_pending_removal
        ON documents (id)
        WHERE is_deleted = TRUE AND search_index_id IS NOT NULL
    """
    )

    # Duplicate guard lookup
    op.execute(
        """
        CREATE INDEX ix_documents_dedup
        ON documents (tenant_id, content_hash, original_file_name)
        WHERE is_deleted = FALSE AND is_current_version = TRUE
    """
    )

    # Version chains: one current version per chain root
    op.execute(
        """
        CREATE INDEX ix_documents_parent
        ON documents (parent_document_id)
        WHERE parent_document_id IS NOT NULL
    """
    )

    # -- document_search_index ------------------------------------------------
    op.execute(
        """
        CREATE TABLE document_search_index (
            index_id TEXT PRIMARY KEY,
            document_id BIGINT NOT NULL UNIQUE,
            tenant_id INT NOT NULL,
            document_type_id INT NOT NULL,

            title TEXT NOT NULL,
            description TEXT,
            content TEXT,
            original_file_name TEXT,
            tags TEXT,
            metadata TEXT,
            mime_type TEXT,
            file_size_bytes BIGINT,
            version INT NOT NULL DEFAULT 1,
            is_current_version BOOLEAN NOT NULL DEFAULT TRUE,

            fts_language REGCONFIG NOT NULL DEFAULT 'english',
            search_vector TSVECTOR GENERATED ALWAYS AS (
                setweight(to_tsvector(fts_language, COALESCE(title, '')), 'A')
                || setweight(to_tsvector(fts_language, COALESCE(original_file_name, '')), 'A')
                || setweight(to_tsvector(fts_language, COALESCE(description, '')), 'B')
                || setweight(to_tsvector(fts_language, COALESCE(tags, '')), 'B')
                || setweight(to_tsvector(fts_language, COALESCE(content, '')), 'C')
            ) STORED,

            created_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ,
            indexed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """
    )

    op.execute(
        """
        CREATE INDEX ix_search_index_fts
        ON document_search_index USING GIN (search_vector)
    """
    )

    op.execute(
        """
        CREATE INDEX ix_search_index_filter
        ON document_search_index (tenant_id, document_type_id, is_current_version)
    """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS document_search_index")
    op.execute("DROP TABLE IF EXISTS documents")
