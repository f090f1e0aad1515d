"""Inbox polling service.

One cycle lists up to ``batch_size`` inbox blobs (oldest first) and, for each,
downloads, extracts, persists and finally moves it to the processed or failed
area. A blob only leaves the inbox through a successful move, so anything
interrupted mid-way is picked up again by a later cycle; the content-hash
guard keeps such retries from creating a second document.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum

from document_service.background import sleep_or_stop
from document_service.config import InboxConfig
from document_service.documents import BatchOutcome, Document, utcnow
from document_service.errors import PersistenceError, StorageError
from document_service.ingestion.blob_areas import BlobAreas
from document_service.ingestion.planner import build_inbox_item, documents_storage_path, file_name
from document_service.ingestion.processor import DocumentProcessor
from document_service.ingestion.types import BlobDescriptor, InboxItem, ProcessingResult
from document_service.logging_config import generate_cycle_id
from document_service.stores.document_store import DocumentRepository

logger = logging.getLogger(__name__)

INBOX = "inbox"
PROCESSED = "processed"
FAILED = "failed"
DOCUMENTS = "documents"

# GCS caps custom metadata at 8 KiB per object
_MAX_ERROR_METADATA_CHARS = 1024


class InboxState(str, Enum):
    IDLE = "idle"
    LISTING = "listing"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    MOVING = "moving"


class _ItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY = "retry"  # left in the inbox
    SKIPPED = "skipped"


class InboxProcessor:
    def __init__(
        self,
        *,
        cfg: InboxConfig,
        areas: BlobAreas,
        repository: DocumentRepository,
        processor: DocumentProcessor | None = None,
    ) -> None:
        self._cfg = cfg
        self._areas = areas
        self._repo = repository
        self._processor = processor or DocumentProcessor()
        self._lock = asyncio.Lock()
        self._state = InboxState.IDLE
        self.last_outcome: BatchOutcome | None = None

    @property
    def config(self) -> InboxConfig:
        return self._cfg

    @property
    def state(self) -> InboxState:
        return self._state

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        if not self._cfg.enabled:
            logger.info("Inbox processing disabled; not starting")
            return

        logger.info(
            "Inbox processor started (bucket=%s, interval=%.0fs, batch=%d)",
            self._cfg.inbox_container,
            self._cfg.poll_interval_seconds,
            self._cfg.batch_size,
        )
        while not stop_event.is_set():
            delay = self._cfg.poll_interval_seconds
            try:
                await self.run_cycle(stop_event)
            except Exception:
                logger.exception("Inbox cycle failed; backing off %.0fs", self._cfg.error_backoff_seconds)
                delay = self._cfg.error_backoff_seconds
            if await sleep_or_stop(stop_event, delay):
                break
        logger.info("Inbox processor stopped")

    async def run_cycle(self, stop_event: asyncio.Event | None = None) -> BatchOutcome:
        """Process one batch. Concurrent callers wait for the running cycle."""
        if not self._cfg.enabled:
            return BatchOutcome().complete()

        async with self._lock:
            outcome = BatchOutcome(batch_id=generate_cycle_id())
            self.last_outcome = outcome
            try:
                self._state = InboxState.LISTING
                descriptors = await asyncio.to_thread(self._areas.list, INBOX, self._cfg.batch_size)
                if descriptors:
                    logger.info("[%s] %d item(s) in inbox", outcome.batch_id, len(descriptors))

                for d in descriptors:
                    if stop_event is not None and stop_event.is_set():
                        logger.info("[%s] Stop requested; leaving remaining items", outcome.batch_id)
                        break
                    status = await self._handle(outcome.batch_id, d)
                    if status is _ItemStatus.SUCCEEDED:
                        outcome.record_success()
                    elif status is _ItemStatus.SKIPPED:
                        outcome.record_skipped()
                    else:
                        outcome.record_failure()
            finally:
                self._state = InboxState.IDLE

            outcome.complete()
            if outcome.processed:
                logger.info(
                    "[%s] Inbox cycle done: processed=%d succeeded=%d failed=%d",
                    outcome.batch_id,
                    outcome.processed,
                    outcome.succeeded,
                    outcome.failed,
                )
            return outcome

    async def _handle(self, cycle_id: str, descriptor: BlobDescriptor) -> _ItemStatus:
        try:
            return await self._process_item(cycle_id, descriptor)
        except Exception as e:
            logger.exception("[%s] Unexpected error processing %s", cycle_id, descriptor.name)
            await self._move(cycle_id, descriptor.name, FAILED, self._failure_metadata(f"{type(e).__name__}: {e}"))
            return _ItemStatus.FAILED

    async def _process_item(self, cycle_id: str, descriptor: BlobDescriptor) -> _ItemStatus:
        self._state = InboxState.DOWNLOADING
        try:
            blob = await asyncio.to_thread(self._areas.download, INBOX, descriptor.name)
        except StorageError as e:
            logger.warning("[%s] Download of %s failed, will retry: %s", cycle_id, descriptor.name, e)
            return _ItemStatus.RETRY
        if blob is None:
            logger.info("[%s] %s disappeared before download; skipping", cycle_id, descriptor.name)
            return _ItemStatus.SKIPPED

        item = build_inbox_item(blob.descriptor, blob.data, self._cfg)

        self._state = InboxState.PROCESSING
        result = await asyncio.to_thread(self._processor.process, item)
        if not result.success:
            logger.warning(
                "[%s] Processing %s (tenant=%s) failed: %s",
                cycle_id,
                item.name,
                item.tenant_id,
                result.error_message,
            )
            await self._move(cycle_id, item.name, FAILED, self._failure_metadata(result.error_message or ""))
            return _ItemStatus.FAILED

        self._state = InboxState.PERSISTING
        try:
            result = await self._persist(cycle_id, item, result)
        except StorageError as e:
            logger.warning(
                "[%s] Storing %s (tenant=%s) failed, will retry: %s", cycle_id, item.name, item.tenant_id, e
            )
            return _ItemStatus.RETRY
        except PersistenceError as e:
            logger.error("[%s] Persisting %s (tenant=%s) failed: %s", cycle_id, item.name, item.tenant_id, e)
            await self._move(cycle_id, item.name, FAILED, self._failure_metadata(str(e)))
            return _ItemStatus.FAILED

        moved = await self._move(cycle_id, item.name, PROCESSED, {"DocumentId": str(result.document_id)})
        if not moved:
            return _ItemStatus.RETRY

        logger.info(
            "[%s] Ingested %s as document %s (tenant=%s, %d bytes, %dms)",
            cycle_id,
            item.name,
            result.document_id,
            item.tenant_id,
            result.file_size_bytes,
            result.processing_time_ms,
        )
        return _ItemStatus.SUCCEEDED

    async def _persist(self, cycle_id: str, item: InboxItem, result: ProcessingResult) -> ProcessingResult:
        original_name = file_name(item.name)

        if self._cfg.dedup_by_hash:
            existing = await self._repo.find_by_content_hash(item.tenant_id, result.content_hash, original_name)
            if existing is not None and existing.id is not None:
                logger.info(
                    "[%s] %s matches existing document %s; not creating a duplicate",
                    cycle_id,
                    item.name,
                    existing.id,
                )
                return result.with_document_id(existing.id)

        now = utcnow()
        storage_path = documents_storage_path(item, now)
        await asyncio.to_thread(
            self._areas.upload,
            DOCUMENTS,
            storage_path,
            item.data,
            result.mime_type,
            {
                "TenantId": str(item.tenant_id),
                "DocumentTypeId": str(item.document_type_id),
                "ContentHash": result.content_hash or "",
                "OriginalFileName": original_name,
                "UploadedBy": self._cfg.system_user,
            },
        )

        doc = Document(
            tenant_id=item.tenant_id,
            document_type_id=item.document_type_id,
            title=item.title,
            description=item.description,
            storage_path=storage_path,
            content_hash=result.content_hash,
            file_size_bytes=result.file_size_bytes,
            mime_type=result.mime_type,
            original_file_name=original_name,
            metadata=item.metadata,
            tags=item.tags,
            extracted_text=result.extracted_text,
            created_at=now,
            created_by=self._cfg.system_user,
        )
        try:
            if item.parent_document_id is not None:
                created = await self._repo.create_version(item.parent_document_id, doc)
            else:
                created = await self._repo.create(doc)
            if created.id is None:
                raise PersistenceError(f"Repository returned no id for {item.name}")
        except PersistenceError:
            await self._discard_upload(cycle_id, storage_path)
            raise
        return result.with_document_id(created.id)

    async def _discard_upload(self, cycle_id: str, storage_path: str) -> None:
        """Remove a documents object no row points at."""
        try:
            await asyncio.to_thread(self._areas.delete, DOCUMENTS, storage_path)
        except StorageError as e:
            logger.warning("[%s] Could not remove orphaned %s/%s: %s", cycle_id, DOCUMENTS, storage_path, e)

    def _failure_metadata(self, error: str) -> dict[str, str]:
        return {
            "ErrorMessage": error[:_MAX_ERROR_METADATA_CHARS],
            "FailedAt": utcnow().isoformat(),
            "ProcessedBy": self._cfg.system_user,
        }

    async def _move(self, cycle_id: str, name: str, to_area: str, metadata: Mapping[str, str]) -> bool:
        """Move out of the inbox; on failure the blob stays where it is."""
        self._state = InboxState.MOVING
        try:
            dest = await asyncio.to_thread(self._areas.move, INBOX, to_area, name, metadata)
        except StorageError as e:
            logger.error("[%s] Moving %s to %s failed; left in inbox: %s", cycle_id, name, to_area, e)
            return False
        logger.debug("[%s] %s -> %s/%s", cycle_id, name, to_area, dest)
        return True
