# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Provenance Engine is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with Provenance Engine. If not, see <https://www.gnu.org/licenses/>.

"""
Claim extraction with evidence grounding.

Claims are extraction, not generation: every stored claim carries a source
whose quote_snippet is a verbatim slice of the document it came from.
Model output that cannot be located in the document is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from provenance_core import PROMPT_VERSION
from provenance_core.agents.skills.claim_extraction import ClaimExtractionSkill
from provenance_core.agents.skills.claims_parsing import RawClaim
from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import classify_llm_failure
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.claims import Claim, Source, VerificationStatus
from provenance_core.schema.entities import Entity, RawDocument
from provenance_core.schema.serialization import stable_id, utcnow
from provenance_core.storage.base import KnowledgeStore
from provenance_core.utils.trace import Trace
from provenance_core.utils.url_utils import get_registrable_domain, source_name_from_url
from provenance_core.verification.errors import ExtractionFailure, LedgerImmutableError
from provenance_core.verification.evidence_grounding import locate_snippet
from provenance_core.verification.ledger import build_source_id
from provenance_core.verification.normalization import normalize_text
from provenance_core.verification.source_quality import SourceQualityScorer

logger = logging.getLogger(__name__)


def build_claim_id(document_id: str, entity_id: str, raw: RawClaim) -> str:
    return stable_id("clm", document_id, entity_id, raw.claim_type.value, normalize_text(raw.claim_text))


@dataclass
class ExtractionReport:
    document_id: str
    entity_id: str
    claims: list[Claim] = field(default_factory=list)
    skipped_reason: str | None = None
    dropped_ungrounded: int = 0
    dropped_duplicate: int = 0
    shadow: bool = False


class ClaimExtractor:
    def __init__(
        self,
        store: KnowledgeStore,
        skill: ClaimExtractionSkill,
        *,
        runtime: EngineRuntimeConfig | None = None,
        scorer: SourceQualityScorer | None = None,
    ):
        self.store = store
        self.skill = skill
        self.runtime = runtime or skill.runtime
        self.scorer = scorer or SourceQualityScorer()

    def skip_reason(self, document: RawDocument, entity: Entity, *, force: bool = False) -> str | None:
        """Why this pair needs no model call, or None when it does."""
        if len((document.content or "").strip()) < self.runtime.extraction.min_document_chars:
            return "too_short"
        if not force and self.store.has_sources_for(document.document_id, entity.entity_id):
            return "already_processed"
        return None

    async def extract(self, document: RawDocument, entity: Entity, *, force: bool = False) -> list[Claim]:
        """
        Extract, ground and persist claims for one (document, entity) pair.

        Returns the committed claims (or, in shadow mode, the claims that
        would have been committed).

        Raises:
            ExtractionFailure: the model call failed or returned unusable
                output; nothing was committed for this pair
        """
        report = await self.extract_with_report(document, entity, force=force)
        return report.claims

    async def extract_with_report(
        self,
        document: RawDocument,
        entity: Entity,
        *,
        force: bool = False,
    ) -> ExtractionReport:
        report = ExtractionReport(document_id=document.document_id, entity_id=entity.entity_id)
        cfg = self.runtime.extraction
        content = document.content or ""

        skip = self.skip_reason(document, entity, force=force)
        if skip is not None:
            logger.info("[ClaimExtractor] Skip %s for %s: %s", document.document_id, entity.entity_id, skip)
            report.skipped_reason = skip
            return report

        try:
            raw_claims = await self.skill.extract_raw(document, entity)
        except LLMCallError as e:
            failure = ExtractionFailure(
                document_id=document.document_id,
                entity_id=entity.entity_id,
                kind=classify_llm_failure(e),
                message=e.message,
            )
            logger.warning("[ClaimExtractor] %s", failure)
            Trace.event("claim_extractor.failure", failure.to_trace_dict())
            raise failure from e

        # Ground everything first so a bad item never leaves a partial batch behind.
        pairs: list[tuple[Claim, Source]] = []
        seen: set[str] = set()
        extracted_at = utcnow()
        for raw in raw_claims:
            quote = locate_snippet(content, raw.evidence_snippet, max_chars=cfg.max_snippet_chars)
            if quote is None:
                report.dropped_ungrounded += 1
                logger.info(
                    "[ClaimExtractor] Dropped ungrounded %s claim from %s: %r",
                    raw.claim_type.value, document.document_id, raw.evidence_snippet[:80],
                )
                continue

            claim_id = build_claim_id(document.document_id, entity.entity_id, raw)
            if claim_id in seen:
                report.dropped_duplicate += 1
                continue
            seen.add(claim_id)

            claim = Claim(
                claim_id=claim_id,
                entity_id=entity.entity_id,
                claim_type=raw.claim_type,
                claim_text=raw.claim_text,
                value_structured=raw.value_structured,
                confidence=raw.confidence,
                verification_status=VerificationStatus.UNVERIFIED,
                document_id=document.document_id,
                extraction_model=f"{self.skill.model_name}:{PROMPT_VERSION}",
                created_at=extracted_at,
            )
            source = Source(
                source_id=build_source_id(claim_id, document.document_id, document.url),
                claim_id=claim_id,
                document_id=document.document_id,
                url=document.url,
                domain=document.domain or get_registrable_domain(document.url) or "",
                source_name=document.title or source_name_from_url(document.url),
                quote_snippet=quote,
                quality_score=self.scorer.score(document.url),
                fetched_at=document.fetched_at,
            )
            pairs.append((claim, source))

        if self.runtime.features.shadow_mode:
            report.shadow = True
            report.claims = [c for c, _ in pairs]
            logger.info(
                "[ClaimExtractor] Shadow mode: %d claims for %s not committed",
                len(pairs), document.document_id,
            )
            return report

        for claim, source in pairs:
            try:
                self.store.add_claim_with_source(claim, source)
            except LedgerImmutableError:
                # Same claim id means same document/entity/type/text: a forced re-run.
                report.dropped_duplicate += 1
                continue
            report.claims.append(claim)

        Trace.event("claim_extractor.committed", {
            "document_id": document.document_id,
            "entity_id": entity.entity_id,
            "committed": len(report.claims),
            "dropped_ungrounded": report.dropped_ungrounded,
            "dropped_duplicate": report.dropped_duplicate,
        })
        logger.info(
            "[ClaimExtractor] %s/%s: %d committed, %d ungrounded, %d duplicate",
            document.document_id, entity.entity_id,
            len(report.claims), report.dropped_ungrounded, report.dropped_duplicate,
        )
        return report


