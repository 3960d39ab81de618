# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Sequential, rate-limited extraction batches.

Documents run one at a time with a fixed pause between model calls. The
run can be cancelled between documents; every document gets a checkpoint,
and a failure on one document never rolls back earlier commits.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from provenance_core.schema.entities import Entity, RawDocument
from provenance_core.schema.serialization import utcnow
from provenance_core.storage.base import KnowledgeStore
from provenance_core.utils.trace import Trace
from provenance_core.verification.errors import ExtractionFailure
from provenance_core.verification.extractor import ClaimExtractor

logger = logging.getLogger(__name__)


class CheckpointStatus(str, Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class ExtractionJob:
    document: RawDocument
    entity: Entity


@dataclass(frozen=True, slots=True)
class BatchCheckpoint:
    document_id: str
    entity_id: str
    status: CheckpointStatus
    claims_committed: int = 0
    detail: str | None = None


@dataclass
class BatchSummary:
    checkpoints: list[BatchCheckpoint] = field(default_factory=list)
    cancelled: bool = False
    started_at: str = field(default_factory=lambda: utcnow().isoformat())

    @property
    def processed(self) -> int:
        return sum(1 for c in self.checkpoints if c.status == CheckpointStatus.COMMITTED)

    @property
    def failed(self) -> int:
        return sum(1 for c in self.checkpoints if c.status == CheckpointStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for c in self.checkpoints if c.status == CheckpointStatus.SKIPPED)

    @property
    def claims_committed(self) -> int:
        return sum(c.claims_committed for c in self.checkpoints)

    def completed_document_ids(self) -> set[str]:
        return {c.document_id for c in self.checkpoints if c.status != CheckpointStatus.CANCELLED}

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "cancelled": self.cancelled,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "claims_committed": self.claims_committed,
            "checkpoints": [
                {
                    "document_id": c.document_id,
                    "entity_id": c.entity_id,
                    "status": c.status.value,
                    "claims_committed": c.claims_committed,
                    "detail": c.detail,
                }
                for c in self.checkpoints
            ],
        }


class ExtractionBatchRunner:
    def __init__(
        self,
        extractor: ClaimExtractor,
        *,
        delay_sec: float | None = None,
        max_documents: int | None = None,
        on_checkpoint: Callable[[BatchCheckpoint], None] | None = None,
    ):
        cfg = extractor.runtime.extraction
        self.extractor = extractor
        self.delay_sec = cfg.delay_sec if delay_sec is None else max(0.0, delay_sec)
        self.max_documents = max_documents or cfg.max_documents_per_batch
        self.on_checkpoint = on_checkpoint

    @property
    def store(self) -> KnowledgeStore:
        return self.extractor.store

    def jobs_for_entity(self, entity: Entity, *, force: bool = False) -> list[ExtractionJob]:
        """Pending documents for an entity, oldest first, capped at max_documents."""
        jobs: list[ExtractionJob] = []
        for document in self.store.documents_for_entity(entity.entity_id):
            if self.extractor.skip_reason(document, entity, force=force) is not None:
                continue
            jobs.append(ExtractionJob(document=document, entity=entity))
            if len(jobs) >= self.max_documents:
                break
        return jobs

    def _checkpoint(self, summary: BatchSummary, checkpoint: BatchCheckpoint) -> None:
        summary.checkpoints.append(checkpoint)
        Trace.event("extraction_batch.checkpoint", {
            "document_id": checkpoint.document_id,
            "entity_id": checkpoint.entity_id,
            "status": checkpoint.status.value,
            "claims": checkpoint.claims_committed,
        })
        if self.on_checkpoint is not None:
            self.on_checkpoint(checkpoint)

    async def _pause(self, cancel_event: asyncio.Event | None) -> bool:
        """Wait out the rate-limit delay. Returns True if cancelled meanwhile."""
        if self.delay_sec <= 0:
            return bool(cancel_event and cancel_event.is_set())
        if cancel_event is None:
            await asyncio.sleep(self.delay_sec)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.delay_sec)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(
        self,
        jobs: list[ExtractionJob],
        *,
        cancel_event: asyncio.Event | None = None,
        force: bool = False,
    ) -> BatchSummary:
        summary = BatchSummary()
        called_model = False

        for job in jobs:
            doc_id = job.document.document_id
            ent_id = job.entity.entity_id

            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                break

            skip = self.extractor.skip_reason(job.document, job.entity, force=force)
            if skip is not None:
                self._checkpoint(summary, BatchCheckpoint(doc_id, ent_id, CheckpointStatus.SKIPPED, detail=skip))
                continue

            if called_model and await self._pause(cancel_event):
                summary.cancelled = True
                break

            called_model = True
            try:
                report = await self.extractor.extract_with_report(job.document, job.entity, force=force)
            except ExtractionFailure as e:
                self._checkpoint(
                    summary,
                    BatchCheckpoint(doc_id, ent_id, CheckpointStatus.FAILED, detail=e.kind.value),
                )
                continue
            except asyncio.CancelledError:
                self._checkpoint(summary, BatchCheckpoint(doc_id, ent_id, CheckpointStatus.CANCELLED))
                summary.cancelled = True
                raise

            status = CheckpointStatus.SKIPPED if report.skipped_reason else CheckpointStatus.COMMITTED
            self._checkpoint(
                summary,
                BatchCheckpoint(
                    doc_id,
                    ent_id,
                    status,
                    claims_committed=0 if report.shadow else len(report.claims),
                    detail=report.skipped_reason or ("shadow" if report.shadow else None),
                ),
            )

        logger.info(
            "[ExtractionBatch] done: processed=%d skipped=%d failed=%d claims=%d cancelled=%s",
            summary.processed, summary.skipped, summary.failed, summary.claims_committed, summary.cancelled,
        )
        return summary
