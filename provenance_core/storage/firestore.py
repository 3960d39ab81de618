# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from provenance_core.schema.changelog import ChangeLogEntry
from provenance_core.schema.claims import Claim, ClaimType, Source, VerificationStatus
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.media import ImageVerdict, LicenseStatus, MediaAsset
from provenance_core.schema.serialization import utcnow
from provenance_core.storage.base import KnowledgeStore, SelectGuard
from provenance_core.verification.errors import (
    IneligibleCandidate,
    LedgerImmutableError,
    RecordNotFound,
)


@dataclass(frozen=True, slots=True)
class FirestoreCollections:
    entities: str = "knowledge_entities"
    documents: str = "knowledge_documents"
    claims: str = "knowledge_claims"
    sources: str = "knowledge_sources"
    media_assets: str = "media_assets"
    change_log: str = "knowledge_change_log"

    @classmethod
    def with_prefix(cls, prefix: str) -> "FirestoreCollections":
        p = (prefix or "knowledge").strip("_")
        return cls(
            entities=f"{p}_entities",
            documents=f"{p}_documents",
            claims=f"{p}_claims",
            sources=f"{p}_sources",
            media_assets="media_assets",
            change_log=f"{p}_change_log",
        )


def _asset_to_doc(asset: MediaAsset) -> dict[str, Any]:
    data = asset.model_dump(mode="json")
    data["tags"] = list(asset.tags)
    return data


class FirestoreKnowledgeStore(KnowledgeStore):
    """
    Firestore adapter. Pair writes and selection run in transactions, so the
    at-most-one-selected invariant holds across processes.
    """

    def __init__(self, db: firestore.Client, *, collections: FirestoreCollections | None = None) -> None:
        self._db = db
        self._cols = collections or FirestoreCollections()
        self._entities = self._db.collection(self._cols.entities)
        self._documents = self._db.collection(self._cols.documents)
        self._claims = self._db.collection(self._cols.claims)
        self._sources = self._db.collection(self._cols.sources)
        self._assets = self._db.collection(self._cols.media_assets)
        self._changes = self._db.collection(self._cols.change_log)

    # Ingestion-owned records

    def put_entity(self, entity: Entity) -> None:
        self._entities.document(entity.entity_id).set(entity.to_dict())

    def get_entity(self, entity_id: str) -> Entity | None:
        snapshot = self._entities.document(entity_id).get()
        if not snapshot.exists:
            return None
        return Entity.from_dict(snapshot.to_dict() or {})

    def put_document(self, document: RawDocument) -> None:
        data = document.to_dict()
        data["entity_ids"] = list(document.entity_ids)
        try:
            self._documents.document(document.document_id).create(data)
        except gcp_exceptions.AlreadyExists as e:
            raise LedgerImmutableError(f"Document {document.document_id} already stored") from e

    def get_document(self, document_id: str) -> RawDocument | None:
        snapshot = self._documents.document(document_id).get()
        if not snapshot.exists:
            return None
        return RawDocument.from_dict(snapshot.to_dict() or {})

    def documents_for_entity(self, entity_id: str) -> list[RawDocument]:
        query = self._documents.where("entity_ids", "array_contains", entity_id)
        docs = [RawDocument.from_dict(s.to_dict() or {}) for s in query.stream()]
        return sorted(docs, key=lambda d: (d.fetched_at, d.document_id))

    # Claims and sources

    def add_claim_with_source(self, claim: Claim, source: Source) -> None:
        if source.claim_id != claim.claim_id:
            raise ValueError("Source does not belong to claim")
        claim_ref = self._claims.document(claim.claim_id)
        source_ref = self._sources.document(source.source_id)
        transaction = self._db.transaction()

        @firestore.transactional
        def _commit(transaction):  # type: ignore[no-untyped-def]
            if claim_ref.get(transaction=transaction).exists:
                raise LedgerImmutableError(f"Claim {claim.claim_id} already stored")
            if source_ref.get(transaction=transaction).exists:
                raise LedgerImmutableError(f"Source {source.source_id} already stored")
            transaction.create(claim_ref, claim.to_dict())
            transaction.create(source_ref, {**source.to_dict(), "entity_id": claim.entity_id})

        _commit(transaction)

    def add_source(self, source: Source) -> None:
        claim = self.get_claim(source.claim_id)
        if claim is None:
            raise RecordNotFound(f"Claim {source.claim_id} not found")
        try:
            self._sources.document(source.source_id).create({**source.to_dict(), "entity_id": claim.entity_id})
        except gcp_exceptions.AlreadyExists as e:
            raise LedgerImmutableError(f"Source {source.source_id} already stored") from e

    def has_sources_for(self, document_id: str, entity_id: str) -> bool:
        query = (
            self._sources.where("document_id", "==", document_id)
            .where("entity_id", "==", entity_id)
            .limit(1)
        )
        return any(True for _ in query.stream())

    def get_claim(self, claim_id: str) -> Claim | None:
        snapshot = self._claims.document(claim_id).get()
        if not snapshot.exists:
            return None
        return Claim.from_dict(snapshot.to_dict() or {})

    def claims_for(self, entity_id: str, claim_type: ClaimType | None = None) -> list[Claim]:
        query = self._claims.where("entity_id", "==", entity_id)
        if claim_type is not None:
            query = query.where("claim_type", "==", claim_type.value)
        claims = [Claim.from_dict(s.to_dict() or {}) for s in query.stream()]
        return sorted(claims, key=lambda c: c.claim_id)

    def update_claim_status(self, claim_id: str, status: VerificationStatus) -> Claim:
        ref = self._claims.document(claim_id)
        snapshot = ref.get()
        if not snapshot.exists:
            raise RecordNotFound(f"Claim {claim_id} not found")
        ref.update({"verification_status": status.value})
        existing = Claim.from_dict(snapshot.to_dict() or {})
        return existing.model_copy(update={"verification_status": status})

    def get_source(self, source_id: str) -> Source | None:
        snapshot = self._sources.document(source_id).get()
        if not snapshot.exists:
            return None
        return Source.from_dict(snapshot.to_dict() or {})

    def sources_for_claim(self, claim_id: str) -> list[Source]:
        query = self._sources.where("claim_id", "==", claim_id)
        sources = [Source.from_dict(s.to_dict() or {}) for s in query.stream()]
        return sorted(sources, key=lambda s: s.source_id)

    def update_source_quality(self, source_id: str, quality_score: float) -> Source:
        ref = self._sources.document(source_id)
        snapshot = ref.get()
        if not snapshot.exists:
            raise RecordNotFound(f"Source {source_id} not found")
        updated = Source.model_validate({**(snapshot.to_dict() or {}), "quality_score": quality_score})
        # Only the score field is written; url and snippet stay untouched.
        ref.update({"quality_score": updated.quality_score})
        return updated

    # Media

    def put_asset(self, asset: MediaAsset) -> MediaAsset:
        stored = asset.model_copy(update={"selected": False, "version": 1, "updated_at": utcnow()})
        try:
            self._assets.document(asset.asset_id).create(_asset_to_doc(stored))
        except gcp_exceptions.AlreadyExists as e:
            raise LedgerImmutableError(f"Asset {asset.asset_id} already stored") from e
        return stored

    def get_asset(self, asset_id: str) -> MediaAsset | None:
        snapshot = self._assets.document(asset_id).get()
        if not snapshot.exists:
            return None
        return MediaAsset.from_dict(snapshot.to_dict() or {})

    def list_assets(self, entity_type: EntityType | str, entity_id: str) -> list[MediaAsset]:
        query = (
            self._assets.where("entity_type", "==", EntityType(entity_type).value)
            .where("entity_id", "==", entity_id)
        )
        assets = [MediaAsset.from_dict(s.to_dict() or {}) for s in query.stream()]
        return sorted(assets, key=lambda a: a.asset_id)

    def _update_asset_tx(self, asset_id: str, build_changes) -> MediaAsset:  # type: ignore[no-untyped-def]
        ref = self._assets.document(asset_id)
        transaction = self._db.transaction()

        @firestore.transactional
        def _update(transaction):  # type: ignore[no-untyped-def]
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"Asset {asset_id} not found")
            current = MediaAsset.from_dict(snapshot.to_dict() or {})
            changes = build_changes(current)
            changes["version"] = current.version + 1
            changes["updated_at"] = utcnow()
            updated = MediaAsset.model_validate({**current.model_dump(), **changes})
            transaction.set(ref, _asset_to_doc(updated))
            return updated

        return _update(transaction)

    def update_asset_scores(self, asset_id: str, verdict: ImageVerdict) -> MediaAsset:
        def _changes(current: MediaAsset) -> dict[str, Any]:
            return {
                "match_score": verdict.match_score,
                "quality_score": verdict.quality_score,
                "copyright_risk": verdict.copyright_risk,
                "license_status": current.license_status if current.is_rejected else verdict.license_status,
                "tags": verdict.tags,
                "alt_text": verdict.alt_text,
                "reasoning": verdict.reasoning,
                "scored": True,
            }

        return self._update_asset_tx(asset_id, _changes)

    def select_asset(self, asset_id: str, *, guard: SelectGuard | None = None) -> tuple[MediaAsset, list[str]]:
        target_ref = self._assets.document(asset_id)
        transaction = self._db.transaction()

        @firestore.transactional
        def _select(transaction):  # type: ignore[no-untyped-def]
            snapshot = target_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"Asset {asset_id} not found")
            target = MediaAsset.from_dict(snapshot.to_dict() or {})
            if guard is not None:
                reason = guard(target)
                if reason:
                    raise IneligibleCandidate(asset_id, reason)

            siblings = (
                self._assets.where("entity_type", "==", target.entity_type.value)
                .where("entity_id", "==", target.entity_id)
                .where("selected", "==", True)
            )
            # All reads before any write.
            selected_now = [
                (s.reference, MediaAsset.from_dict(s.to_dict() or {}))
                for s in siblings.stream(transaction=transaction)
            ]
            now = utcnow()
            deselected: list[str] = []
            for ref, other in selected_now:
                if other.asset_id == asset_id:
                    continue
                transaction.update(ref, {"selected": False, "version": other.version + 1, "updated_at": now})
                deselected.append(other.asset_id)
            if not target.selected:
                target = target.model_copy(update={"selected": True, "version": target.version + 1, "updated_at": now})
                transaction.update(target_ref, {"selected": True, "version": target.version, "updated_at": now})
            return target, sorted(deselected)

        return _select(transaction)

    def reject_asset(self, asset_id: str, reason: str) -> MediaAsset:
        return self._update_asset_tx(
            asset_id,
            lambda current: {
                "selected": False,
                "license_status": LicenseStatus.REJECTED,
                "rejection_reason": reason,
            },
        )

    def set_storage_location(self, asset_id: str, storage_url: str, storage_path: str) -> MediaAsset:
        return self._update_asset_tx(
            asset_id,
            lambda current: {"storage_url": storage_url, "storage_path": storage_path},
        )

    # Audit

    def append_changes(self, entries: Iterable[ChangeLogEntry]) -> None:
        batch = self._db.batch()
        count = 0
        for entry in entries:
            batch.set(self._changes.document(entry.change_id), entry.to_dict())
            count += 1
        if count:
            batch.commit()

    def list_changes(self, record_id: str | None = None) -> list[ChangeLogEntry]:
        query = self._changes if record_id is None else self._changes.where("record_id", "==", record_id)
        entries = [ChangeLogEntry.from_dict(s.to_dict() or {}) for s in query.stream()]
        return sorted(entries, key=lambda e: (e.created_at, e.change_id))
