# Provenance Engine - main entry point

import asyncio
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

import firebase_admin
from firebase_admin import firestore

from provenance_core.agents.llm_client import LLMClient
from provenance_core.agents.skills.claim_extraction import ClaimExtractionSkill
from provenance_core.agents.skills.image_verification import ImageVerificationSkill
from provenance_core.config import ProvenanceConfig
from provenance_core.media.mirror import AssetMirror
from provenance_core.media.selection import SelectionOutcome, SelectionPolicy
from provenance_core.media.verification import MediaVerificationReport, MediaVerifier
from provenance_core.presentation.adapter import (
    EntityFactsDisplay,
    EvidenceViewState,
    present_entity_facts,
    resolve_selected_asset,
)
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.claims import Claim
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.facts import ConflictingFact, UnverifiedFact, ValidFact
from provenance_core.schema.media import MediaAsset
from provenance_core.storage.base import KnowledgeStore
from provenance_core.storage.firestore import FirestoreCollections, FirestoreKnowledgeStore
from provenance_core.storage.memory import InMemoryKnowledgeStore
from provenance_core.utils.trace import Trace
from provenance_core.verification.batch import BatchSummary, ExtractionBatchRunner, ExtractionJob
from provenance_core.verification.errors import InvariantViolation, RecordNotFound
from provenance_core.verification.extractor import ClaimExtractor
from provenance_core.verification.ledger import SourceLedger
from provenance_core.verification.resolver import FactResolver, StatusTransition

logger = logging.getLogger(__name__)

FactResultT = ValidFact | ConflictingFact | UnverifiedFact


def build_firestore_store(config: ProvenanceConfig) -> KnowledgeStore:
    try:
        firebase_admin.get_app()
    except ValueError:
        options = {"projectId": config.firestore_project} if config.firestore_project else None
        firebase_admin.initialize_app(options=options)
    return FirestoreKnowledgeStore(
        firestore.client(),
        collections=FirestoreCollections.with_prefix(config.collection_prefix),
    )


class ProvenanceEngine:
    """The main entry point for the Provenance Engine."""

    def __init__(
        self,
        config: ProvenanceConfig,
        *,
        store: KnowledgeStore | None = None,
        llm_client: LLMClient | None = None,
        mirror: AssetMirror | None = None,
    ):
        self.config = config
        self.runtime = config.runtime or EngineRuntimeConfig.load_from_env()
        self.store = store if store is not None else InMemoryKnowledgeStore()
        self._llm_client = llm_client
        self._extractor: ClaimExtractor | None = None
        self._media_verifier: MediaVerifier | None = None

        self.resolver = FactResolver(self.store, runtime=self.runtime)
        self.ledger = SourceLedger(self.store)

        if mirror is None and self.runtime.features.storage_mirror:
            mirror = AssetMirror(self.store, bucket_name=config.media_bucket, runtime=self.runtime)
        self.mirror = mirror
        self.selection = SelectionPolicy(
            self.store,
            runtime=self.runtime,
            on_promoted=self.mirror.schedule if self.mirror is not None else None,
        )
        logger.debug("Effective config: %s", json.dumps(self.runtime.to_safe_log_dict(), ensure_ascii=False))

    @classmethod
    def from_config(cls, config: ProvenanceConfig) -> "ProvenanceEngine":
        """Firestore-backed engine when a project is configured, in-memory otherwise."""
        store = build_firestore_store(config) if config.firestore_project else None
        return cls(config, store=store)

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = LLMClient(
                openai_api_key=self.config.openai_api_key,
                default_timeout=self.runtime.llm.timeout_sec,
                concurrency=self.runtime.llm.concurrency,
            )
        return self._llm_client

    @property
    def extractor(self) -> ClaimExtractor:
        if self._extractor is None:
            skill = ClaimExtractionSkill(self.config, self.llm_client)
            self._extractor = ClaimExtractor(self.store, skill, runtime=self.runtime, scorer=self.ledger.scorer)
        return self._extractor

    @property
    def media_verifier(self) -> MediaVerifier:
        if self._media_verifier is None:
            skill = ImageVerificationSkill(self.config, self.llm_client)
            self._media_verifier = MediaVerifier(self.store, skill, self.selection, runtime=self.runtime)
        return self._media_verifier

    async def close(self) -> None:
        if self.mirror is not None:
            await self.mirror.drain()
        if self._llm_client is not None:
            await self._llm_client.close()

    # Query surface

    def get_facts(self, entity_id: str, predicates: Optional[Iterable[str]] = None) -> List[FactResultT]:
        return self.resolver.resolve_all(entity_id, predicates)

    def present_facts(
        self,
        entity_id: str,
        predicates: Optional[Iterable[str]] = None,
        *,
        view_state: EvidenceViewState | None = None,
        render_placeholders: bool = False,
    ) -> EntityFactsDisplay:
        if view_state is None:
            view_state = EvidenceViewState(evidence_ui_enabled=self.runtime.features.evidence_ui)
        elif not self.runtime.features.evidence_ui:
            view_state = EvidenceViewState(evidence_ui_enabled=False, hidden=set(view_state.hidden))
        return present_entity_facts(
            entity_id,
            self.get_facts(entity_id, predicates),
            view_state,
            render_placeholders=render_placeholders,
        )

    def list_candidates(self, entity_type: EntityType | str, entity_id: str) -> List[MediaAsset]:
        return self.store.list_assets(entity_type, entity_id)

    def get_selected_asset(self, entity_type: EntityType | str, entity_id: str) -> MediaAsset | None:
        return resolve_selected_asset(self.list_candidates(entity_type, entity_id), score=self.selection.combined_score)

    def select_best_asset(
        self, entity_type: EntityType | str, entity_id: str, *, actor: str = "system"
    ) -> SelectionOutcome:
        return self.selection.select(entity_type, entity_id, actor=actor)

    def select_asset(self, asset_id: str, actor: str) -> MediaAsset:
        """Human override selection of a specific candidate."""
        outcome = self.selection.force_select(asset_id, actor=actor)
        if outcome.selected is None:
            raise InvariantViolation("override_selected_nothing", [asset_id])
        return outcome.selected

    def reject_asset(self, asset_id: str, reason: str, actor: str) -> MediaAsset:
        return self.selection.reject(asset_id, reason, actor=actor)

    def reject_claim(self, claim_id: str, reason: str, actor: str) -> Claim:
        return self.resolver.reject_claim(claim_id, reason, actor=actor)

    def reconcile_entity(self, entity_id: str, *, actor: str = "system") -> List[StatusTransition]:
        return self.resolver.reconcile_entity(entity_id, actor=actor)

    def claim_stats(self, entity_id: str) -> Dict[str, Any]:
        claims = self.store.claims_for(entity_id)
        by_status = Counter(c.verification_status.value for c in claims)
        by_type = Counter(c.claim_type.value for c in claims)
        return {
            "entity_id": entity_id,
            "total": len(claims),
            "by_status": dict(sorted(by_status.items())),
            "by_type": dict(sorted(by_type.items())),
        }

    # Jobs

    def _require_entity(self, entity_id: str) -> Entity:
        entity = self.store.get_entity(entity_id)
        if entity is None:
            raise RecordNotFound(f"Entity {entity_id} not found")
        return entity

    async def extract_document(self, document_id: str, entity_id: str, *, force: bool = False) -> List[Claim]:
        document: RawDocument | None = self.store.get_document(document_id)
        if document is None:
            raise RecordNotFound(f"Document {document_id} not found")
        return await self.extractor.extract(document, self._require_entity(entity_id), force=force)

    async def run_extraction_batch(
        self,
        entity_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
        force: bool = False,
        reconcile: bool = True,
    ) -> BatchSummary:
        trace_id = f"{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}_{str(uuid4())[:6]}"
        Trace.start(trace_id, runtime=self.runtime)
        try:
            entity = self._require_entity(entity_id)
            runner = ExtractionBatchRunner(self.extractor)
            jobs: List[ExtractionJob] = runner.jobs_for_entity(entity, force=force)
            Trace.event("engine.extraction_batch.start", {"entity_id": entity_id, "jobs": len(jobs)})
            summary = await runner.run(jobs, cancel_event=cancel_event, force=force)
            if reconcile and summary.claims_committed:
                self.reconcile_entity(entity_id)
            return summary
        finally:
            Trace.stop()

    async def verify_media(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        *,
        rescore: bool = False,
        actor: str = "system",
    ) -> MediaVerificationReport:
        return await self.media_verifier.verify_entity(entity_type, entity_id, rescore=rescore, actor=actor)
