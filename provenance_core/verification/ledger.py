# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import logging

from provenance_core.schema.changelog import ChangeAction, ChangeLogEntry
from provenance_core.schema.claims import Claim, Source
from provenance_core.schema.serialization import stable_id
from provenance_core.storage.base import KnowledgeStore
from provenance_core.verification.errors import RecordNotFound
from provenance_core.verification.source_quality import SourceQualityScorer

logger = logging.getLogger(__name__)


def build_source_id(claim_id: str, document_id: str | None, url: str) -> str:
    return stable_id("src", claim_id, document_id or "", url)


class SourceLedger:
    """
    Append-only claim -> source links.

    There is no operation that edits a source's url or quote_snippet. The
    only mutable field is quality_score, and every change to it is
    written to the change log.
    """

    def __init__(self, store: KnowledgeStore, *, scorer: SourceQualityScorer | None = None):
        self.store = store
        self.scorer = scorer or SourceQualityScorer()

    def record(self, source: Source) -> Source:
        """Attach an additional source to an already committed claim."""
        self.store.add_source(source)
        logger.debug("[SourceLedger] Recorded %s for claim %s", source.source_id, source.claim_id)
        return source

    def sources_for(self, claim_id: str) -> list[Source]:
        return self.store.sources_for_claim(claim_id)

    def best_source(self, claim: Claim) -> Source | None:
        """Highest quality, then most recent fetch, then source_id."""
        sources = [s for s in self.sources_for(claim.claim_id) if s.quote_snippet.strip()]
        if not sources:
            return None
        return min(sources, key=lambda s: (-s.quality_score, -s.fetched_at.timestamp(), s.source_id))

    def update_quality(self, source_id: str, quality_score: float, *, actor: str = "system") -> Source:
        before = self.store.get_source(source_id)
        if before is None:
            raise RecordNotFound(f"Source {source_id} not found")
        updated = self.store.update_source_quality(source_id, quality_score)
        if updated.quality_score != before.quality_score:
            self.store.append_changes([
                ChangeLogEntry.build(
                    actor=actor,
                    action=ChangeAction.UPDATE,
                    table_name="sources",
                    record_id=source_id,
                    before={"quality_score": before.quality_score},
                    after={"quality_score": updated.quality_score},
                )
            ])
        return updated

    def rescore(self, entity_id: str, *, actor: str = "system") -> int:
        """Re-run domain reputation over every source of an entity. Returns the number changed."""
        changed = 0
        for claim in self.store.claims_for(entity_id):
            for source in self.sources_for(claim.claim_id):
                score = self.scorer.score(source.url)
                if abs(score - source.quality_score) > 1e-9:
                    self.update_quality(source.source_id, score, actor=actor)
                    changed += 1
        if changed:
            logger.info("[SourceLedger] Rescored %d sources for %s", changed, entity_id)
        return changed
