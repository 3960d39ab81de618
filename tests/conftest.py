# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from provenance_core.agents.llm_client import LLMClient
from provenance_core.config import ProvenanceConfig
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.claims import Claim, ClaimType, Source, VerificationStatus
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.media import CopyrightRisk, LicenseStatus, MediaAsset
from provenance_core.storage.memory import InMemoryKnowledgeStore

FETCHED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

DOC_TEXT = (
    "Jeff Mills is an American DJ and producer from Detroit. "
    "He co-founded Underground Resistance in 1989 with Mike Banks. "
    "In 1992 he launched the label Axis Records, which he still runs today. "
    "His live sets often use three turntables and a Roland TR-909 drum machine."
)


@pytest.fixture
def runtime():
    """Defaults with the rate-limit pauses switched off."""
    rt = EngineRuntimeConfig.defaults()
    return replace(
        rt,
        extraction=replace(rt.extraction, delay_sec=0.0),
        selection=replace(rt.selection, verify_delay_sec=0.0),
        features=replace(rt.features, trace_enabled=False),
    )


@pytest.fixture
def mock_config(runtime):
    return ProvenanceConfig(
        openai_api_key="test-openai-key",
        extraction_model="gpt-5-mini",
        vision_model="gpt-4o",
        runtime=runtime,
    )


@pytest.fixture
def mock_llm_client():
    """Matches the interface of LLMClient, returning AsyncMocks."""
    client = MagicMock(spec=LLMClient)
    client.call = AsyncMock(return_value={
        "content": "{}",
        "parsed": {},
        "model": "gpt-5-mini",
        "usage": {"total_tokens": 100},
    })
    client.call_json = AsyncMock(return_value={"claims": []})
    client.close = AsyncMock()
    return client


@pytest.fixture
def store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def entity(store):
    ent = Entity(entity_id="artist-jeff-mills", slug="jeff-mills", name="Jeff Mills", entity_type=EntityType.ARTIST)
    store.put_entity(ent)
    return ent


@pytest.fixture
def make_document(store):
    def _make(document_id="doc-1", *, url="https://www.residentadvisor.net/features/1", content=DOC_TEXT,
              entity_ids=("artist-jeff-mills",), fetched_at=FETCHED_AT, save=True, title=None):
        doc = RawDocument(
            document_id=document_id,
            url=url,
            content=content,
            title=title,
            fetched_at=fetched_at,
            entity_ids=tuple(entity_ids),
        )
        if save:
            store.put_document(doc)
        return doc

    return _make


@pytest.fixture
def add_claim(store):
    """
    Commit a claim together with one source. Returns (claim, source).
    """
    counter = {"n": 0}

    def _add(claim_type=ClaimType.FOUNDED_YEAR, value="1989", *, entity_id="artist-jeff-mills", confidence=0.9,
             quality=0.9, url="https://en.wikipedia.org/wiki/Jeff_Mills", snippet="founded in 1989",
             text=None, fetched_at=FETCHED_AT, status=VerificationStatus.UNVERIFIED, claim_id=None):
        counter["n"] += 1
        n = counter["n"]
        cid = claim_id or f"clm-{n}"
        claim = Claim(
            claim_id=cid,
            entity_id=entity_id,
            claim_type=claim_type,
            claim_text=text or f"{claim_type} is {value}",
            value_structured=value,
            confidence=confidence,
            verification_status=status,
            document_id=f"doc-{n}",
        )
        source = Source(
            source_id=f"src-{n}",
            claim_id=cid,
            document_id=f"doc-{n}",
            url=url,
            domain=url.split("/")[2].removeprefix("www."),
            source_name=url.split("/")[2],
            quote_snippet=snippet,
            quality_score=quality,
            fetched_at=fetched_at,
        )
        store.add_claim_with_source(claim, source)
        return claim, source

    return _add


@pytest.fixture
def make_asset(store):
    def _make(asset_id, *, entity_id="artist-jeff-mills", entity_type=EntityType.ARTIST, match=80.0, quality=70.0,
              risk=CopyrightRisk.LOW, license_status=LicenseStatus.SAFE, scored=True, save=True,
              source_url=None):
        asset = MediaAsset(
            asset_id=asset_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name="Jeff Mills",
            source_url=source_url or f"https://images.example.org/{asset_id}.jpg",
            match_score=match,
            quality_score=quality,
            copyright_risk=risk,
            license_status=license_status,
            scored=scored,
        )
        if save:
            return store.put_asset(asset)
        return asset

    return _make
