# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""ProvenanceEngine wiring over the in-memory store."""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from provenance_core.config import ProvenanceConfig
from provenance_core.engine import ProvenanceEngine
from provenance_core.media.mirror import AssetMirror
from provenance_core.media.selection import SelectionOutcome
from provenance_core.presentation import Badge, EvidenceViewState
from provenance_core.schema.claims import ClaimType, VerificationStatus
from provenance_core.schema.entities import EntityType
from provenance_core.schema.facts import ConflictingFact, ValidFact
from provenance_core.verification.errors import InvariantViolation, RecordNotFound

ENTITY = "artist-jeff-mills"

GROUNDED = {
    "claim_type": "founded_year",
    "claim_text": "Jeff Mills co-founded Underground Resistance in 1989.",
    "value": "1989",
    "evidence_snippet": "co-founded Underground Resistance in 1989",
    "confidence": 0.9,
}


@pytest.fixture
def engine(mock_config, store, mock_llm_client):
    return ProvenanceEngine(mock_config, store=store, llm_client=mock_llm_client, mirror=MagicMock(spec=AssetMirror))


@pytest.mark.unit
class TestWiring:

    def test_mirror_disabled_by_flag(self, mock_config, store, runtime):
        runtime = replace(runtime, features=replace(runtime.features, storage_mirror=False))
        engine = ProvenanceEngine(mock_config.model_copy(update={"runtime": runtime}), store=store)
        assert engine.mirror is None
        assert engine.selection.on_promoted is None

    def test_promotion_schedules_mirror(self, engine, make_asset):
        make_asset("img-a", match=85, quality=85)
        engine.select_best_asset(EntityType.ARTIST, ENTITY)
        engine.mirror.schedule.assert_called_once()

    def test_defaults_to_memory_store(self, mock_config):
        assert ProvenanceEngine(mock_config).store is not None


@pytest.mark.unit
class TestFacts:

    def test_get_facts(self, engine, add_claim):
        add_claim(ClaimType.FOUNDED_YEAR, "1995", quality=0.9)
        add_claim(ClaimType.FOUNDED_YEAR, "1997", quality=0.7)
        add_claim(ClaimType.LABEL, "Axis Records")

        facts = engine.get_facts(ENTITY)

        assert isinstance(facts[0], ConflictingFact)
        assert isinstance(facts[1], ValidFact)

    def test_present_facts_empty_state(self, engine):
        display = engine.present_facts(ENTITY, ["real_name"])
        assert display.empty_state is True

    def test_evidence_ui_flag_overrides_view_state(self, mock_config, store, runtime, add_claim):
        runtime = replace(runtime, features=replace(runtime.features, evidence_ui=False, storage_mirror=False))
        engine = ProvenanceEngine(mock_config.model_copy(update={"runtime": runtime}), store=store)
        add_claim(ClaimType.LABEL, "Axis Records")

        display = engine.present_facts(ENTITY, view_state=EvidenceViewState())

        assert display.visible[0].badge == Badge.VERIFIED
        assert display.visible[0].show_evidence is False

    def test_reject_claim_and_stats(self, engine, add_claim):
        add_claim(ClaimType.FOUNDED_YEAR, "1995")
        wrong, _ = add_claim(ClaimType.FOUNDED_YEAR, "1997")

        engine.reject_claim(wrong.claim_id, "misread", actor="editor")
        engine.reconcile_entity(ENTITY)

        stats = engine.claim_stats(ENTITY)
        assert stats["total"] == 2
        assert stats["by_status"] == {"rejected": 1, "verified": 1}
        assert stats["by_type"] == {"founded_year": 2}


@pytest.mark.unit
class TestMedia:

    def test_select_reject_and_override(self, engine, store, make_asset):
        make_asset("img-a", match=85, quality=85)
        make_asset("img-low", match=30, quality=30)

        assert engine.select_best_asset("artist", ENTITY).selected.asset_id == "img-a"
        assert engine.get_selected_asset("artist", ENTITY).asset_id == "img-a"

        assert engine.select_asset("img-low", "editor").asset_id == "img-low"
        assert engine.get_selected_asset("artist", ENTITY).asset_id == "img-low"

        engine.reject_asset("img-low", "blurry", "editor")
        assert engine.get_selected_asset("artist", ENTITY) is None
        assert [a.asset_id for a in engine.list_candidates("artist", ENTITY)] == ["img-a", "img-low"]

    def test_override_that_selects_nothing_raises(self, engine, make_asset, monkeypatch):
        make_asset("img-a")
        monkeypatch.setattr(engine.selection, "force_select", MagicMock(return_value=SelectionOutcome(selected=None)))
        with pytest.raises(InvariantViolation):
            engine.select_asset("img-a", "editor")

    @pytest.mark.asyncio
    async def test_verify_media(self, engine, make_asset, mock_llm_client):
        make_asset("img-a", scored=False)
        mock_llm_client.call_json.return_value = {
            "matchScore": 88, "qualityScore": 80, "copyrightRisk": "low", "licenseStatus": "safe",
        }

        report = await engine.verify_media(EntityType.ARTIST, ENTITY)

        assert report.selected_asset_id == "img-a"


@pytest.mark.unit
class TestExtraction:

    @pytest.mark.asyncio
    async def test_batch_commits_and_reconciles(self, engine, store, entity, make_document, mock_llm_client):
        make_document("doc-1")
        make_document("doc-2", url="https://en.wikipedia.org/wiki/Jeff_Mills")
        mock_llm_client.call_json.return_value = {"claims": [GROUNDED]}

        summary = await engine.run_extraction_batch(ENTITY)

        assert summary.processed == 2
        claims = store.claims_for(ENTITY)
        assert len(claims) == 2
        assert {c.verification_status for c in claims} == {VerificationStatus.VERIFIED}
        fact = engine.get_facts(ENTITY, ["founded_year"])[0]
        assert fact.value == "1989"
        assert fact.supporting_sources == 2

    @pytest.mark.asyncio
    async def test_extract_document(self, engine, entity, make_document, mock_llm_client):
        make_document("doc-1")
        mock_llm_client.call_json.return_value = {"claims": [GROUNDED]}
        claims = await engine.extract_document("doc-1", ENTITY)
        assert [c.claim_type for c in claims] == [ClaimType.FOUNDED_YEAR]

    @pytest.mark.asyncio
    async def test_missing_records(self, engine, entity):
        with pytest.raises(RecordNotFound):
            await engine.extract_document("nope", ENTITY)
        with pytest.raises(RecordNotFound):
            await engine.run_extraction_batch("artist-nobody")


@pytest.mark.unit
def test_config_is_pydantic():
    cfg = ProvenanceConfig(openai_api_key="k")
    assert cfg.extraction_model == "gpt-5-mini"
    assert cfg.collection_prefix == "knowledge"
