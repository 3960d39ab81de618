from dataclasses import replace
from datetime import datetime, timezone

import pytest

from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.claims import Claim, ClaimType, Source
from provenance_core.schema.entities import EntityType
from provenance_core.schema.media import MediaAsset
from provenance_core.storage.memory import InMemoryKnowledgeStore

FETCHED_AT = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _build_asset(asset_id: str, entity_id: str, **kw) -> MediaAsset:
    kw.setdefault("scored", True)
    return MediaAsset(
        asset_id=asset_id,
        entity_type=EntityType.ARTIST,
        entity_id=entity_id,
        source_url=f"https://images.example.org/{asset_id}.jpg",
        **kw,
    )


def _store_with_claims(rows, *, claim_type=ClaimType.FOUNDED_YEAR, entity_id="artist-x") -> InMemoryKnowledgeStore:
    """rows: (value, confidence, quality, domain, snippet) per claim."""
    store = InMemoryKnowledgeStore()
    for i, (value, confidence, quality, domain, snippet) in enumerate(rows):
        claim = Claim(
            claim_id=f"clm-{i:03d}",
            entity_id=entity_id,
            claim_type=claim_type,
            claim_text=f"{claim_type.value}: {value}",
            value_structured=value,
            confidence=confidence,
            document_id=f"doc-{i:03d}",
        )
        source = Source(
            source_id=f"src-{i:03d}",
            claim_id=claim.claim_id,
            document_id=claim.document_id,
            url=f"https://{domain}/page/{i}",
            domain=domain,
            source_name=domain,
            quote_snippet=snippet,
            quality_score=quality,
            fetched_at=FETCHED_AT,
        )
        store.add_claim_with_source(claim, source)
    return store


# Session scope: shared across Hypothesis examples.

@pytest.fixture(scope="session")
def runtime():
    rt = EngineRuntimeConfig.defaults()
    return replace(
        rt,
        extraction=replace(rt.extraction, delay_sec=0.0),
        selection=replace(rt.selection, verify_delay_sec=0.0),
        features=replace(rt.features, trace_enabled=False, storage_mirror=False),
    )


@pytest.fixture(scope="session")
def build_asset():
    return _build_asset


@pytest.fixture(scope="session")
def store_with_claims():
    return _store_with_claims
