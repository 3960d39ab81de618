"""
Tests: sequential extraction batches (rate limit, checkpoints, cancellation).
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from provenance_core.agents.skills.claim_extraction import ClaimExtractionSkill
from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import LLMFailureKind
from provenance_core.verification.batch import CheckpointStatus, ExtractionBatchRunner
from provenance_core.verification.extractor import ClaimExtractor

FETCHED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

GROUNDED = {
    "claim_type": "founded_year",
    "claim_text": "Jeff Mills co-founded Underground Resistance in 1989.",
    "value": "1989",
    "evidence_snippet": "co-founded Underground Resistance in 1989",
    "confidence": 0.9,
}


@pytest.fixture
def extractor(store, mock_config, mock_llm_client):
    skill = ClaimExtractionSkill(config=mock_config, llm_client=mock_llm_client)
    return ClaimExtractor(store, skill, runtime=mock_config.runtime)


@pytest.fixture
def three_docs(make_document):
    return [
        make_document(f"doc-{i}", url=f"https://ra.co/features/{i}", fetched_at=FETCHED_AT + timedelta(hours=i))
        for i in range(3)
    ]


@pytest.mark.unit
class TestJobs:

    def test_pending_documents_oldest_first(self, extractor, entity, three_docs, make_document):
        make_document("doc-short", content="Too short.")
        runner = ExtractionBatchRunner(extractor, max_documents=2)

        jobs = runner.jobs_for_entity(entity)

        assert [j.document.document_id for j in jobs] == ["doc-0", "doc-1"]

    @pytest.mark.asyncio
    async def test_processed_documents_are_not_pending(self, extractor, entity, three_docs, mock_llm_client):
        mock_llm_client.call_json.return_value = {"claims": [GROUNDED]}
        await extractor.extract(three_docs[0], entity)

        jobs = ExtractionBatchRunner(extractor).jobs_for_entity(entity)

        assert [j.document.document_id for j in jobs] == ["doc-1", "doc-2"]
        forced = ExtractionBatchRunner(extractor).jobs_for_entity(entity, force=True)
        assert len(forced) == 3


@pytest.mark.unit
class TestRun:

    @pytest.mark.asyncio
    async def test_commits_each_document(self, extractor, store, entity, three_docs, mock_llm_client):
        mock_llm_client.call_json.return_value = {"claims": [GROUNDED]}
        runner = ExtractionBatchRunner(extractor)

        summary = await runner.run(runner.jobs_for_entity(entity))

        assert summary.processed == 3
        assert summary.claims_committed == 3
        assert summary.cancelled is False
        assert len(store.claims_for(entity.entity_id)) == 3
        assert summary.to_dict()["checkpoints"][0]["status"] == "committed"

    @pytest.mark.asyncio
    async def test_pauses_between_model_calls(self, extractor, entity, three_docs, mock_llm_client, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr(asyncio, "sleep", sleep)
        runner = ExtractionBatchRunner(extractor, delay_sec=2.0)

        await runner.run(runner.jobs_for_entity(entity))

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)
        assert mock_llm_client.call_json.await_count == 3

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_batch(self, extractor, store, entity, three_docs, mock_llm_client):
        mock_llm_client.call_json.side_effect = [
            {"claims": [GROUNDED]},
            LLMCallError("timed out", kind=LLMFailureKind.TIMEOUT),
            {"claims": [GROUNDED]},
        ]
        runner = ExtractionBatchRunner(extractor)

        summary = await runner.run(runner.jobs_for_entity(entity))

        assert [c.status for c in summary.checkpoints] == [
            CheckpointStatus.COMMITTED,
            CheckpointStatus.FAILED,
            CheckpointStatus.COMMITTED,
        ]
        assert summary.checkpoints[1].detail == "timeout"
        assert summary.failed == 1
        assert {c.document_id for c in store.claims_for(entity.entity_id)} == {"doc-0", "doc-2"}

    @pytest.mark.asyncio
    async def test_cancel_between_documents(self, extractor, entity, three_docs, mock_llm_client):
        cancel = asyncio.Event()
        seen = []

        def on_checkpoint(cp):
            seen.append(cp.document_id)
            cancel.set()

        runner = ExtractionBatchRunner(extractor, on_checkpoint=on_checkpoint)

        summary = await runner.run(runner.jobs_for_entity(entity), cancel_event=cancel)

        assert summary.cancelled is True
        assert seen == ["doc-0"]
        assert summary.completed_document_ids() == {"doc-0"}
        assert mock_llm_client.call_json.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_during_pause(self, extractor, entity, three_docs, mock_llm_client):
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        runner = ExtractionBatchRunner(
            extractor, delay_sec=30.0, on_checkpoint=lambda cp: loop.call_later(0.05, cancel.set)
        )

        summary = await asyncio.wait_for(runner.run(runner.jobs_for_entity(entity), cancel_event=cancel), timeout=5)

        assert summary.cancelled is True
        assert mock_llm_client.call_json.await_count == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, extractor, entity, three_docs, mock_llm_client):
        mock_llm_client.call_json.side_effect = [{"claims": [GROUNDED]}, asyncio.CancelledError()]
        checkpoints = []
        runner = ExtractionBatchRunner(extractor, on_checkpoint=checkpoints.append)

        with pytest.raises(asyncio.CancelledError):
            await runner.run(runner.jobs_for_entity(entity))

        assert [c.status for c in checkpoints] == [CheckpointStatus.COMMITTED, CheckpointStatus.CANCELLED]

    @pytest.mark.asyncio
    async def test_skipped_document_checkpoint(self, extractor, entity, three_docs, mock_llm_client):
        mock_llm_client.call_json.return_value = {"claims": [GROUNDED]}
        runner = ExtractionBatchRunner(extractor)
        jobs = runner.jobs_for_entity(entity)
        await extractor.extract(three_docs[1], entity)

        summary = await runner.run(jobs)

        assert [c.status for c in summary.checkpoints] == [
            CheckpointStatus.COMMITTED,
            CheckpointStatus.SKIPPED,
            CheckpointStatus.COMMITTED,
        ]
        assert summary.checkpoints[1].detail == "already_processed"
