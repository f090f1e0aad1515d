"""Pydantic response models for the host app."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from document_service.documents import BatchOutcome
from document_service.search.reconciler import ReconciliationReport

# -- Health -------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    error: str | None = None


# -- Status -------------------------------------------------------------------


class BatchOutcomeModel(BaseModel):
    batch_id: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    started_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_outcome(cls, o: BatchOutcome) -> BatchOutcomeModel:
        return cls(
            batch_id=o.batch_id,
            processed=o.processed,
            succeeded=o.succeeded,
            failed=o.failed,
            started_at=o.started_at,
            completed_at=o.completed_at,
        )


class InboxStatus(BaseModel):
    enabled: bool
    state: str
    inbox_container: str
    last_cycle: BatchOutcomeModel | None = None


class ReconciliationStatus(BaseModel):
    enabled: bool
    healthy: bool | None = None
    removed: int = 0
    indexed: int = 0
    batches: list[BatchOutcomeModel] = Field(default_factory=list)
    last_cycle: BatchOutcomeModel | None = None

    @classmethod
    def from_report(cls, enabled: bool, report: ReconciliationReport | None) -> ReconciliationStatus:
        if report is None:
            return cls(enabled=enabled)
        return cls(
            enabled=enabled,
            healthy=report.healthy,
            removed=report.removed,
            indexed=report.indexed,
            batches=[BatchOutcomeModel.from_outcome(b) for b in report.batches],
            last_cycle=BatchOutcomeModel.from_outcome(report.aggregate),
        )


class StatusResponse(BaseModel):
    running: bool
    inbox: InboxStatus | None = None
    reconciliation: ReconciliationStatus | None = None
