"""Background loop that keeps the search index consistent with ``documents``.

Each cycle:
  1. skips entirely if the index backend is unhealthy;
  2. removes index entries of soft-deleted documents and clears their index state;
  3. indexes documents whose entry is missing or older than their last change,
     in batches, writing back index ids only for confirmed documents.

Anything left unconfirmed stays eligible and is retried on the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from document_service.background import sleep_or_stop
from document_service.config import IndexingConfig
from document_service.documents import BatchOutcome, Document, utcnow
from document_service.logging_config import generate_cycle_id
from document_service.search.indexer import SearchIndexer
from document_service.stores.document_store import DocumentRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    cycle_id: str
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    healthy: bool = True
    removed: int = 0
    indexed: int = 0
    batches: list[BatchOutcome] = field(default_factory=list)

    @property
    def aggregate(self) -> BatchOutcome:
        total = BatchOutcome(batch_id=self.cycle_id, started_at=self.started_at, completed_at=self.completed_at)
        for b in self.batches:
            total.processed += b.processed
            total.succeeded += b.succeeded
            total.failed += b.failed
        return total

    def as_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "healthy": self.healthy,
            "removed": self.removed,
            "indexed": self.indexed,
            "batches": [b.as_dict() for b in self.batches],
        }


def partition(documents: list[Document], size: int) -> list[list[Document]]:
    return [documents[i : i + size] for i in range(0, len(documents), size)]


class ReconciliationService:
    def __init__(
        self,
        *,
        cfg: IndexingConfig,
        repository: DocumentRepository,
        indexer: SearchIndexer,
    ) -> None:
        self._cfg = cfg
        self._repo = repository
        self._indexer = indexer
        self.last_report: ReconciliationReport | None = None

    @property
    def config(self) -> IndexingConfig:
        return self._cfg

    @property
    def indexer(self) -> SearchIndexer:
        return self._indexer

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        if not self._cfg.enabled:
            logger.info("Search reconciliation disabled; not starting")
            return

        logger.info(
            "Search reconciliation starting in %.0fs (interval=%.1fmin, batch=%d)",
            self._cfg.startup_delay_seconds,
            self._cfg.interval_minutes,
            self._cfg.batch_size,
        )
        if await sleep_or_stop(stop_event, self._cfg.startup_delay_seconds):
            return

        while not stop_event.is_set():
            delay = self._cfg.interval_seconds
            try:
                await self.run_cycle(stop_event)
            except Exception:
                logger.exception("Search reconciliation cycle failed")
                delay = self._cfg.error_backoff_seconds
            if await sleep_or_stop(stop_event, delay):
                break
        logger.info("Search reconciliation stopped")

    async def run_cycle(self, stop_event: asyncio.Event | None = None) -> ReconciliationReport:
        report = ReconciliationReport(cycle_id=generate_cycle_id())
        self.last_report = report

        if not await self._indexer.is_healthy():
            logger.warning("[%s] Search index unhealthy; skipping cycle", report.cycle_id)
            report.healthy = False
            report.completed_at = utcnow()
            return report

        report.removed = await self._remove_deleted(report.cycle_id)

        # taken before the read; later edits keep documents eligible
        indexed_at = utcnow()
        pending = await self._repo.find_needing_indexing(self._cfg.max_documents_per_cycle)
        if pending:
            logger.info("[%s] %d document(s) need indexing", report.cycle_id, len(pending))

        for batch in partition(pending, self._cfg.batch_size):
            if stop_event is not None and stop_event.is_set():
                logger.info("[%s] Stop requested; remaining batches deferred", report.cycle_id)
                break
            outcome = await self._index_batch(report.cycle_id, batch, indexed_at)
            report.batches.append(outcome)
            report.indexed += outcome.succeeded

        report.completed_at = utcnow()
        if pending or report.removed:
            logger.info(
                "[%s] Reconciliation done: indexed=%d/%d removed=%d",
                report.cycle_id,
                report.indexed,
                len(pending),
                report.removed,
            )
        return report

    async def _remove_deleted(self, cycle_id: str) -> int:
        deleted = await self._repo.find_pending_removal(self._cfg.max_documents_per_cycle)
        if not deleted:
            return 0
        try:
            await self._indexer.remove_batch([d.search_index_id for d in deleted if d.search_index_id])
        except Exception:
            logger.exception("[%s] Removing %d deleted document(s) from index failed", cycle_id, len(deleted))
            return 0

        cleared = 0
        for doc in deleted:
            try:
                await self._repo.clear_index_state(doc.id)
                cleared += 1
            except Exception:
                logger.exception("[%s] Clearing index state of document %s failed", cycle_id, doc.id)
        return cleared

    async def _index_batch(self, cycle_id: str, batch: list[Document], indexed_at: datetime) -> BatchOutcome:
        outcome = BatchOutcome()
        try:
            confirmed = await self._indexer.index_batch(batch)
        except Exception:
            logger.exception("[%s] Index batch %s failed", cycle_id, outcome.batch_id)
            for _ in batch:
                outcome.record_failure()
            return outcome.complete()

        for doc in batch:
            index_id = confirmed.get(doc.id) if doc.id is not None else None
            if index_id is None:
                outcome.record_failure()
                continue
            try:
                marked = await self._repo.mark_indexed(doc.id, index_id, indexed_at)
            except Exception:
                logger.exception("[%s] Recording index state of document %s failed", cycle_id, doc.id)
                outcome.record_failure()
                continue
            if marked:
                outcome.record_success()
            else:
                logger.info("[%s] Document %s changed while indexing; retrying next cycle", cycle_id, doc.id)
                outcome.record_skipped()

        logger.info(
            "[%s] Batch %s: %d/%d indexed",
            cycle_id,
            outcome.batch_id,
            outcome.succeeded,
            outcome.processed,
        )
        return outcome.complete()
