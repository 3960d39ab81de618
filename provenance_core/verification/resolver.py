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
Confidence / conflict resolution per (entity, predicate).

`resolve` is a pure read of the current claim set: re-running it on the
same claims gives the same FactResult. Conflicting values are surfaced as
a ConflictingFact; no winner is picked among them.

Agreement policies (how several agreeing claims affect displayed confidence):
- representative: the representative claim's own confidence (default)
- max: highest confidence among agreeing claims
- noisy_or: 1 - prod(1 - c) over the best claim per distinct domain
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from provenance_core import constants as C
from provenance_core.ranking import rank
from provenance_core.runtime_config import EngineRuntimeConfig, ResolverConfig
from provenance_core.schema.changelog import ChangeAction, ChangeLogEntry
from provenance_core.schema.claims import Claim, ClaimType, Source, VerificationStatus
from provenance_core.schema.facts import (
    ConflictingFact,
    ConflictValue,
    FactStatus,
    UnverifiedFact,
    UnverifiedReason,
    ValidFact,
)
from provenance_core.storage.base import KnowledgeStore
from provenance_core.verification.errors import RecordNotFound
from provenance_core.verification.normalization import claim_value_key, display_value

logger = logging.getLogger(__name__)


class AgreementPolicy(str, Enum):
    REPRESENTATIVE = "representative"
    MAX = "max"
    NOISY_OR = "noisy_or"


@dataclass(frozen=True, slots=True)
class EvidencedClaim:
    claim: Claim
    sources: tuple[Source, ...]
    best: Source
    key: str

    @property
    def avg_quality(self) -> float:
        return sum(s.quality_score for s in self.sources) / len(self.sources)

    @property
    def weight(self) -> float:
        return self.claim.confidence * self.avg_quality


@dataclass(frozen=True, slots=True)
class StatusTransition:
    claim_id: str
    before: VerificationStatus
    after: VerificationStatus


def _source_order(s: Source) -> tuple:
    return (-s.quality_score, -s.fetched_at.timestamp(), s.source_id)


def _best_source(sources: Iterable[Source]) -> Source:
    return min(sources, key=_source_order)


class FactResolver:
    def __init__(self, store: KnowledgeStore, *, runtime: EngineRuntimeConfig | None = None):
        self.store = store
        self.runtime = runtime or EngineRuntimeConfig.load_from_env()

    @property
    def config(self) -> ResolverConfig:
        return self.runtime.resolver

    @property
    def policy(self) -> AgreementPolicy:
        return AgreementPolicy(self.config.agreement_policy)

    def _active_claims(self, entity_id: str, claim_type: ClaimType) -> list[Claim]:
        return [
            c for c in self.store.claims_for(entity_id, claim_type)
            if c.verification_status != VerificationStatus.REJECTED
        ]

    def _gather(self, claims: list[Claim]) -> tuple[list[EvidencedClaim], UnverifiedReason | None]:
        """
        Split claims into usable evidence and, when nothing is usable, the
        most specific reason why.
        """
        evidenced: list[EvidencedClaim] = []
        saw_low_confidence = False
        saw_empty_snippet = False
        for claim in claims:
            sources = self.store.sources_for_claim(claim.claim_id)
            if not sources:
                continue
            with_snippet = tuple(s for s in sources if s.quote_snippet.strip())
            if not with_snippet:
                saw_empty_snippet = True
                continue
            if claim.confidence < self.config.min_confidence:
                saw_low_confidence = True
                continue
            evidenced.append(
                EvidencedClaim(
                    claim=claim,
                    sources=with_snippet,
                    best=_best_source(with_snippet),
                    key=claim_value_key(claim),
                )
            )
        if evidenced:
            return evidenced, None
        if saw_low_confidence:
            return [], UnverifiedReason.LOW_CONFIDENCE
        if saw_empty_snippet:
            return [], UnverifiedReason.NO_EVIDENCE
        return [], UnverifiedReason.NO_SOURCE

    def resolve(self, entity_id: str, predicate: str | ClaimType) -> ValidFact | ConflictingFact | UnverifiedFact:
        claim_type = ClaimType.parse(predicate)
        pred = claim_type.value if claim_type else str(predicate)
        if claim_type is None:
            return UnverifiedFact(
                predicate=pred, reason=UnverifiedReason.NO_CLAIMS, display_text=C.UNKNOWN_DISPLAY_TEXT
            )

        claims = self._active_claims(entity_id, claim_type)
        if not claims:
            return UnverifiedFact(
                predicate=pred, reason=UnverifiedReason.NO_CLAIMS, display_text=C.UNKNOWN_DISPLAY_TEXT
            )

        evidenced, reason = self._gather(claims)
        if reason is not None:
            return UnverifiedFact(predicate=pred, reason=reason, display_text=C.UNVERIFIED_DISPLAY_TEXT)

        groups: dict[str, list[EvidencedClaim]] = {}
        for ec in evidenced:
            groups.setdefault(ec.key, []).append(ec)

        if len(groups) == 1:
            return self._valid_fact(pred, evidenced)
        return self._conflicting_fact(pred, groups)

    def _valid_fact(self, predicate: str, agreeing: list[EvidencedClaim]) -> ValidFact:
        representative = rank(
            agreeing,
            score=lambda ec: ec.weight,
            tiebreak=lambda ec: (*_source_order(ec.best), ec.claim.claim_id),
        )[0]
        confidence = self._display_confidence(representative, agreeing)
        domains = {s.domain or s.url for ec in agreeing for s in ec.sources}
        verified = confidence >= self.config.verified_threshold or (
            self.policy != AgreementPolicy.REPRESENTATIVE and len(domains) >= 2
        )
        best = representative.best
        return ValidFact(
            predicate=predicate,
            value=display_value(representative.claim),
            confidence=confidence,
            status=FactStatus.VERIFIED if verified else FactStatus.UNVERIFIED,
            evidence_snippet=best.quote_snippet,
            source_name=best.source_name or best.domain,
            source_url=best.url,
            fetched_at=best.fetched_at,
            claim_id=representative.claim.claim_id,
            source_id=best.source_id,
            supporting_sources=len({s.source_id for ec in agreeing for s in ec.sources}),
        )

    def _display_confidence(self, representative: EvidencedClaim, agreeing: list[EvidencedClaim]) -> float:
        policy = self.policy
        if policy == AgreementPolicy.MAX:
            value = max(ec.claim.confidence for ec in agreeing)
        elif policy == AgreementPolicy.NOISY_OR:
            # One vote per domain.
            per_domain: dict[str, float] = {}
            for ec in agreeing:
                domain = ec.best.domain or ec.best.url
                per_domain[domain] = max(per_domain.get(domain, 0.0), ec.claim.confidence)
            miss = 1.0
            for c in per_domain.values():
                miss *= 1.0 - c
            value = 1.0 - miss
        else:
            value = representative.claim.confidence
        return max(0.0, min(1.0, value))

    def _conflicting_fact(self, predicate: str, groups: dict[str, list[EvidencedClaim]]) -> ConflictingFact:
        entries: list[ConflictValue] = []
        for members in groups.values():
            champion = min(members, key=lambda ec: (*_source_order(ec.best), ec.claim.claim_id))
            best = champion.best
            entries.append(
                ConflictValue(
                    value=display_value(champion.claim),
                    source_name=best.source_name or best.domain,
                    source_url=best.url,
                    quality_score=best.quality_score,
                    fetched_at=best.fetched_at,
                    claim_id=champion.claim.claim_id,
                    source_id=best.source_id,
                    evidence_snippet=best.quote_snippet,
                )
            )
        ordered = rank(
            entries,
            score=lambda e: e.quality_score,
            tiebreak=lambda e: (-e.fetched_at.timestamp(), e.source_id),
        )
        return ConflictingFact(
            predicate=predicate,
            display_text=C.CONFLICT_DISPLAY_TEMPLATE.format(n=len(ordered)),
            values=tuple(ordered),
        )

    def predicates_for(self, entity_id: str) -> list[str]:
        present = {
            c.claim_type.value for c in self.store.claims_for(entity_id)
            if c.verification_status != VerificationStatus.REJECTED
        }
        return sorted(present)

    def resolve_all(
        self,
        entity_id: str,
        predicates: Iterable[str | ClaimType] | None = None,
    ) -> list[ValidFact | ConflictingFact | UnverifiedFact]:
        """
        One result per predicate present for the entity (sorted), or per
        requested predicate (in request order, duplicates dropped).
        """
        if predicates is None:
            wanted: list[Any] = self.predicates_for(entity_id)
        else:
            wanted = []
            for p in predicates:
                key = p.value if isinstance(p, ClaimType) else str(p)
                if key not in wanted:
                    wanted.append(key)
        return [self.resolve(entity_id, p) for p in wanted]

    def reconcile(self, entity_id: str, predicate: str | ClaimType, *, actor: str = "system") -> list[StatusTransition]:
        """
        Persist verification_status for the claims behind `resolve`.
        Idempotent: a second run on unchanged claims writes nothing.
        """
        claim_type = ClaimType.parse(predicate)
        if claim_type is None:
            return []
        claims = self._active_claims(entity_id, claim_type)
        if not claims:
            return []

        result = self.resolve(entity_id, claim_type)
        evidenced, _ = self._gather(claims)
        evidenced_ids = {ec.claim.claim_id for ec in evidenced}

        targets: dict[str, VerificationStatus] = {}
        for claim in claims:
            target = VerificationStatus.UNVERIFIED
            if claim.claim_id in evidenced_ids:
                if isinstance(result, ConflictingFact):
                    target = VerificationStatus.CONFLICTING
                elif isinstance(result, ValidFact) and result.status == FactStatus.VERIFIED:
                    target = VerificationStatus.VERIFIED
            targets[claim.claim_id] = target

        transitions: list[StatusTransition] = []
        changes: list[ChangeLogEntry] = []
        for claim in claims:
            after = targets[claim.claim_id]
            if claim.verification_status == after:
                continue
            self.store.update_claim_status(claim.claim_id, after)
            transitions.append(StatusTransition(claim.claim_id, claim.verification_status, after))
            changes.append(
                ChangeLogEntry.build(
                    actor=actor,
                    action=ChangeAction.UPDATE,
                    table_name="claims",
                    record_id=claim.claim_id,
                    before={"verification_status": claim.verification_status.value},
                    after={"verification_status": after.value},
                    metadata={"predicate": claim_type.value, "result": result.kind},
                )
            )
        if changes:
            self.store.append_changes(changes)
            logger.info(
                "[FactResolver] Reconciled %s/%s: %d transitions",
                entity_id, claim_type.value, len(transitions),
            )
        return transitions

    def reconcile_entity(self, entity_id: str, *, actor: str = "system") -> list[StatusTransition]:
        out: list[StatusTransition] = []
        for predicate in self.predicates_for(entity_id):
            out.extend(self.reconcile(entity_id, predicate, actor=actor))
        return out

    def reject_claim(self, claim_id: str, reason: str, *, actor: str) -> Claim:
        """Human override: the claim stops counting as evidence for any result."""
        claim = self.store.get_claim(claim_id)
        if claim is None:
            raise RecordNotFound(f"Claim {claim_id} not found")
        if claim.verification_status == VerificationStatus.REJECTED:
            return claim
        updated = self.store.update_claim_status(claim_id, VerificationStatus.REJECTED)
        self.store.append_changes([
            ChangeLogEntry.build(
                actor=actor,
                action=ChangeAction.REJECT,
                table_name="claims",
                record_id=claim_id,
                before={"verification_status": claim.verification_status.value},
                after={"verification_status": VerificationStatus.REJECTED.value},
                metadata={"reason": reason},
            )
        ])
        logger.info("[FactResolver] Claim %s rejected by %s: %s", claim_id, actor, reason)
        return updated
