# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from typing import Callable, Iterable, Protocol, runtime_checkable

from provenance_core.schema.changelog import ChangeLogEntry
from provenance_core.schema.claims import Claim, ClaimType, Source, VerificationStatus
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.media import ImageVerdict, MediaAsset

# Evaluated inside the select critical section against the freshest record.
SelectGuard = Callable[[MediaAsset], "str | None"]


def entity_key(entity_type: EntityType | str, entity_id: str) -> str:
    et = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type)
    return f"{et}:{entity_id}"


@runtime_checkable
class KnowledgeStore(Protocol):
    """
    Persistence boundary for the engine.

    Invariants every adapter upholds:
    - a claim is committed only together with its first source
    - sources are append-only; only quality_score changes
    - `select_asset` is the only write that sets selected=True, and it
      clears every other selection for the entity in the same critical section
    """

    # Ingestion-owned records (read by the engine, seeded by tests/CLI)
    def put_entity(self, entity: Entity) -> None:
        ...

    def get_entity(self, entity_id: str) -> Entity | None:
        ...

    def put_document(self, document: RawDocument) -> None:
        ...

    def get_document(self, document_id: str) -> RawDocument | None:
        ...

    def documents_for_entity(self, entity_id: str) -> list[RawDocument]:
        ...

    # Claims and sources
    def add_claim_with_source(self, claim: Claim, source: Source) -> None:
        ...

    def add_source(self, source: Source) -> None:
        ...

    def has_sources_for(self, document_id: str, entity_id: str) -> bool:
        ...

    def get_claim(self, claim_id: str) -> Claim | None:
        ...

    def claims_for(self, entity_id: str, claim_type: ClaimType | None = None) -> list[Claim]:
        ...

    def update_claim_status(self, claim_id: str, status: VerificationStatus) -> Claim:
        ...

    def get_source(self, source_id: str) -> Source | None:
        ...

    def sources_for_claim(self, claim_id: str) -> list[Source]:
        ...

    def update_source_quality(self, source_id: str, quality_score: float) -> Source:
        ...

    # Media
    def put_asset(self, asset: MediaAsset) -> MediaAsset:
        ...

    def get_asset(self, asset_id: str) -> MediaAsset | None:
        ...

    def list_assets(self, entity_type: EntityType | str, entity_id: str) -> list[MediaAsset]:
        ...

    def update_asset_scores(self, asset_id: str, verdict: ImageVerdict) -> MediaAsset:
        ...

    def select_asset(self, asset_id: str, *, guard: SelectGuard | None = None) -> tuple[MediaAsset, list[str]]:
        ...

    def reject_asset(self, asset_id: str, reason: str) -> MediaAsset:
        ...

    def set_storage_location(self, asset_id: str, storage_url: str, storage_path: str) -> MediaAsset:
        ...

    # Audit
    def append_changes(self, entries: Iterable[ChangeLogEntry]) -> None:
        ...

    def list_changes(self, record_id: str | None = None) -> list[ChangeLogEntry]:
        ...
