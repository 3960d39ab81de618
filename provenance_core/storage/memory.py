# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Dict, Iterable

from provenance_core.schema.changelog import ChangeLogEntry
from provenance_core.schema.claims import Claim, ClaimType, Source, VerificationStatus
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.media import ImageVerdict, LicenseStatus, MediaAsset
from provenance_core.schema.serialization import utcnow
from provenance_core.storage.base import KnowledgeStore, SelectGuard, entity_key
from provenance_core.verification.errors import (
    IneligibleCandidate,
    LedgerImmutableError,
    RecordNotFound,
)


class InMemoryKnowledgeStore(KnowledgeStore):
    """
    Dict-backed store for tests and the CLI.

    One lock per entity guards media selection; a store-wide lock guards
    everything else. Records are frozen models, so updates replace them.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entity_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._entities: Dict[str, Entity] = {}
        self._documents: Dict[str, RawDocument] = {}
        self._claims: Dict[str, Claim] = {}
        self._sources: Dict[str, Source] = {}
        # source_id -> entity_id for the dedup lookup
        self._source_entity: Dict[str, str] = {}
        self._assets: Dict[str, MediaAsset] = {}
        self._changes: list[ChangeLogEntry] = []

    def _entity_lock(self, key: str) -> threading.Lock:
        with self._lock:
            return self._entity_locks[key]

    # Ingestion-owned records

    def put_entity(self, entity: Entity) -> None:
        with self._lock:
            self._entities[entity.entity_id] = entity

    def get_entity(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def put_document(self, document: RawDocument) -> None:
        with self._lock:
            if document.document_id in self._documents and self._documents[document.document_id] != document:
                raise LedgerImmutableError(f"Document {document.document_id} already stored")
            self._documents[document.document_id] = document

    def get_document(self, document_id: str) -> RawDocument | None:
        return self._documents.get(document_id)

    def documents_for_entity(self, entity_id: str) -> list[RawDocument]:
        with self._lock:
            docs = [d for d in self._documents.values() if entity_id in d.entity_ids]
        return sorted(docs, key=lambda d: (d.fetched_at, d.document_id))

    # Claims and sources

    def add_claim_with_source(self, claim: Claim, source: Source) -> None:
        if source.claim_id != claim.claim_id:
            raise ValueError("Source does not belong to claim")
        with self._lock:
            if claim.claim_id in self._claims:
                raise LedgerImmutableError(f"Claim {claim.claim_id} already stored")
            if source.source_id in self._sources:
                raise LedgerImmutableError(f"Source {source.source_id} already stored")
            self._claims[claim.claim_id] = claim
            self._sources[source.source_id] = source
            self._source_entity[source.source_id] = claim.entity_id

    def add_source(self, source: Source) -> None:
        with self._lock:
            claim = self._claims.get(source.claim_id)
            if claim is None:
                raise RecordNotFound(f"Claim {source.claim_id} not found")
            if source.source_id in self._sources:
                raise LedgerImmutableError(f"Source {source.source_id} already stored")
            self._sources[source.source_id] = source
            self._source_entity[source.source_id] = claim.entity_id

    def has_sources_for(self, document_id: str, entity_id: str) -> bool:
        with self._lock:
            return any(
                s.document_id == document_id and self._source_entity.get(sid) == entity_id
                for sid, s in self._sources.items()
            )

    def get_claim(self, claim_id: str) -> Claim | None:
        return self._claims.get(claim_id)

    def claims_for(self, entity_id: str, claim_type: ClaimType | None = None) -> list[Claim]:
        with self._lock:
            out = [
                c for c in self._claims.values()
                if c.entity_id == entity_id and (claim_type is None or c.claim_type == claim_type)
            ]
        return sorted(out, key=lambda c: c.claim_id)

    def update_claim_status(self, claim_id: str, status: VerificationStatus) -> Claim:
        with self._lock:
            existing = self._claims.get(claim_id)
            if existing is None:
                raise RecordNotFound(f"Claim {claim_id} not found")
            updated = existing.model_copy(update={"verification_status": status})
            self._claims[claim_id] = updated
            return updated

    def get_source(self, source_id: str) -> Source | None:
        return self._sources.get(source_id)

    def sources_for_claim(self, claim_id: str) -> list[Source]:
        with self._lock:
            out = [s for s in self._sources.values() if s.claim_id == claim_id]
        return sorted(out, key=lambda s: s.source_id)

    def update_source_quality(self, source_id: str, quality_score: float) -> Source:
        with self._lock:
            existing = self._sources.get(source_id)
            if existing is None:
                raise RecordNotFound(f"Source {source_id} not found")
            # Re-validate so the [0, 1] clamp applies.
            updated = Source.model_validate({**existing.model_dump(), "quality_score": quality_score})
            self._sources[source_id] = updated
            return updated

    # Media

    def put_asset(self, asset: MediaAsset) -> MediaAsset:
        with self._lock:
            if asset.asset_id in self._assets:
                raise LedgerImmutableError(f"Asset {asset.asset_id} already stored")
            # Candidates always arrive unselected; selection goes through select_asset.
            stored = asset.model_copy(update={"selected": False, "version": 1, "updated_at": utcnow()})
            self._assets[asset.asset_id] = stored
            return stored

    def get_asset(self, asset_id: str) -> MediaAsset | None:
        return self._assets.get(asset_id)

    def list_assets(self, entity_type: EntityType | str, entity_id: str) -> list[MediaAsset]:
        et = EntityType(entity_type)
        with self._lock:
            out = [a for a in self._assets.values() if a.entity_type == et and a.entity_id == entity_id]
        return sorted(out, key=lambda a: a.asset_id)

    def _replace_asset(self, asset: MediaAsset, **changes: Any) -> MediaAsset:
        changes["version"] = asset.version + 1
        changes["updated_at"] = utcnow()
        updated = asset.model_copy(update=changes)
        self._assets[asset.asset_id] = updated
        return updated

    def _require_asset(self, asset_id: str) -> MediaAsset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise RecordNotFound(f"Asset {asset_id} not found")
        return asset

    def update_asset_scores(self, asset_id: str, verdict: ImageVerdict) -> MediaAsset:
        with self._lock:
            asset = self._require_asset(asset_id)
            return self._replace_asset(
                asset,
                match_score=verdict.match_score,
                quality_score=verdict.quality_score,
                copyright_risk=verdict.copyright_risk,
                # A human rejection is never overwritten by a model verdict.
                license_status=asset.license_status if asset.is_rejected else verdict.license_status,
                tags=verdict.tags,
                alt_text=verdict.alt_text,
                reasoning=verdict.reasoning,
                scored=True,
            )

    def select_asset(self, asset_id: str, *, guard: SelectGuard | None = None) -> tuple[MediaAsset, list[str]]:
        with self._lock:
            target = self._require_asset(asset_id)
        key = entity_key(target.entity_type, target.entity_id)
        with self._entity_lock(key):
            with self._lock:
                target = self._require_asset(asset_id)
                if guard is not None:
                    reason = guard(target)
                    if reason:
                        raise IneligibleCandidate(asset_id, reason)
                deselected: list[str] = []
                for other in list(self._assets.values()):
                    if (
                        other.asset_id != asset_id
                        and other.selected
                        and other.entity_type == target.entity_type
                        and other.entity_id == target.entity_id
                    ):
                        self._replace_asset(other, selected=False)
                        deselected.append(other.asset_id)
                if not target.selected:
                    target = self._replace_asset(target, selected=True)
                return target, sorted(deselected)

    def reject_asset(self, asset_id: str, reason: str) -> MediaAsset:
        with self._lock:
            target = self._require_asset(asset_id)
        with self._entity_lock(entity_key(target.entity_type, target.entity_id)):
            with self._lock:
                target = self._require_asset(asset_id)
                return self._replace_asset(
                    target,
                    selected=False,
                    license_status=LicenseStatus.REJECTED,
                    rejection_reason=reason,
                )

    def set_storage_location(self, asset_id: str, storage_url: str, storage_path: str) -> MediaAsset:
        with self._lock:
            asset = self._require_asset(asset_id)
            return self._replace_asset(asset, storage_url=storage_url, storage_path=storage_path)

    # Audit

    def append_changes(self, entries: Iterable[ChangeLogEntry]) -> None:
        with self._lock:
            self._changes.extend(entries)

    def list_changes(self, record_id: str | None = None) -> list[ChangeLogEntry]:
        with self._lock:
            return [c for c in self._changes if record_id is None or c.record_id == record_id]

    # Snapshots (CLI)

    def to_snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "entities": [e.to_dict() for e in self._entities.values()],
                "documents": [d.to_dict() for d in self._documents.values()],
                "claims": [c.to_dict() for c in self._claims.values()],
                "sources": [
                    {**s.to_dict(), "entity_id": self._source_entity.get(s.source_id)}
                    for s in self._sources.values()
                ],
                "media_assets": [a.to_dict() for a in self._assets.values()],
                "change_log": [c.to_dict() for c in self._changes],
            }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "InMemoryKnowledgeStore":
        """Load a snapshot as-is (including any selection state it carries)."""
        store = cls()
        for raw in data.get("entities") or []:
            store.put_entity(Entity.from_dict(raw))
        for raw in data.get("documents") or []:
            store.put_document(RawDocument.from_dict(raw))
        for raw in data.get("claims") or []:
            claim = Claim.from_dict(raw)
            store._claims[claim.claim_id] = claim
        for raw in data.get("sources") or []:
            source = Source.from_dict(raw)
            store._sources[source.source_id] = source
            claim = store._claims.get(source.claim_id)
            entity_id = raw.get("entity_id") or (claim.entity_id if claim else None)
            if entity_id:
                store._source_entity[source.source_id] = entity_id
        for raw in data.get("media_assets") or []:
            asset = MediaAsset.from_dict(raw)
            store._assets[asset.asset_id] = asset
        for raw in data.get("change_log") or []:
            store._changes.append(ChangeLogEntry.from_dict(raw))
        return store
