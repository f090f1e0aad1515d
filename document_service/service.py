"""Wires configuration, GCS, Postgres and the two loops into a BackgroundHost."""

from __future__ import annotations

import logging

from google.cloud.storage import Client

from document_service.background import BackgroundHost
from document_service.config import ServiceConfig
from document_service.ingestion.blob_areas import GcsBlobAreas
from document_service.ingestion.inbox import InboxProcessor
from document_service.ingestion.processor import DocumentProcessor, default_extractors
from document_service.search.indexer import SearchIndexer
from document_service.search.reconciler import ReconciliationService
from document_service.stores.document_store import PostgresDocumentRepository

logger = logging.getLogger(__name__)


def build_host(
    cfg: ServiceConfig,
    *,
    storage_client: Client | None = None,
    with_inbox: bool = True,
    with_indexing: bool = True,
) -> BackgroundHost:
    repository = PostgresDocumentRepository()

    inbox = None
    if with_inbox:
        client = storage_client or Client(project=cfg.gcp_project)
        areas = GcsBlobAreas(client, cfg.inbox.area_buckets(), system_user=cfg.inbox.system_user)
        inbox = InboxProcessor(
            cfg=cfg.inbox,
            areas=areas,
            repository=repository,
            processor=DocumentProcessor(default_extractors()),
        )

    reconciler = None
    if with_indexing:
        reconciler = ReconciliationService(
            cfg=cfg.indexing,
            repository=repository,
            indexer=SearchIndexer(fts_language=cfg.indexing.fts_language),
        )

    logger.info(
        "Built host (inbox=%s, indexing=%s)",
        "on" if inbox and cfg.inbox.enabled else "off",
        "on" if reconciler and cfg.indexing.enabled else "off",
    )
    return BackgroundHost(inbox=inbox, reconciler=reconciler)
