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
Media selection policy.

The only code path that marks a MediaAsset as selected. Every write goes
through KnowledgeStore.select_asset / reject_asset, which run the
deselect-others + select-one step as a single critical section per entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from provenance_core.ranking import pick_best, rank
from provenance_core.runtime_config import EngineRuntimeConfig, SelectionConfig
from provenance_core.schema.changelog import ChangeAction, ChangeLogEntry
from provenance_core.schema.entities import EntityType
from provenance_core.schema.media import CopyrightRisk, LicenseStatus, MediaAsset
from provenance_core.storage.base import KnowledgeStore
from provenance_core.utils.trace import Trace
from provenance_core.verification.errors import IneligibleCandidate, RecordNotFound

logger = logging.getLogger(__name__)

# Candidates can change between the read and the guarded write.
_MAX_SELECT_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class SelectionOutcome:
    selected: MediaAsset | None
    deselected: list[str] = field(default_factory=list)
    forced: bool = False


class SelectionPolicy:
    def __init__(
        self,
        store: KnowledgeStore,
        *,
        runtime: EngineRuntimeConfig | None = None,
        on_promoted: Callable[[MediaAsset], object] | None = None,
    ):
        self.store = store
        self.runtime = runtime or EngineRuntimeConfig.load_from_env()
        self.on_promoted = on_promoted

    @property
    def config(self) -> SelectionConfig:
        return self.runtime.selection

    def combined_score(self, asset: MediaAsset) -> float:
        score = self.config.match_weight * asset.match_score + self.config.quality_weight * asset.quality_score
        return max(0.0, min(100.0, score))

    def ineligibility_reason(self, asset: MediaAsset) -> str | None:
        if asset.is_rejected:
            return "rejected"
        if not asset.scored:
            return "not_scored"
        if asset.copyright_risk == CopyrightRisk.HIGH:
            return "copyright_risk_high"
        if asset.match_score < self.config.min_match_score:
            return f"match_score_below_{self.config.min_match_score:g}"
        return None

    def is_eligible(self, asset: MediaAsset) -> bool:
        return self.ineligibility_reason(asset) is None

    def pick(self, candidates: list[MediaAsset]) -> MediaAsset | None:
        return pick_best(
            candidates,
            score=self.combined_score,
            eligible=self.is_eligible,
            tiebreak=lambda a: (-a.match_score, a.asset_id),
        )

    def select(self, entity_type: EntityType | str, entity_id: str, *, actor: str = "system") -> SelectionOutcome:
        """
        Promote the best eligible candidate. With no eligible candidate the
        current selection is left as it is.
        """
        for _ in range(_MAX_SELECT_ATTEMPTS):
            candidates = self.store.list_assets(entity_type, entity_id)
            best = self.pick(candidates)
            if best is None:
                logger.info(
                    "[SelectionPolicy] No eligible candidate for %s:%s (%d candidates)",
                    EntityType(entity_type).value, entity_id, len(candidates),
                )
                return SelectionOutcome(selected=None)
            try:
                selected, deselected = self.store.select_asset(best.asset_id, guard=self.ineligibility_reason)
            except IneligibleCandidate as e:
                logger.info("[SelectionPolicy] Candidate changed before commit: %s", e)
                continue
            return self._committed(selected, deselected, actor=actor, forced=False)

        logger.warning("[SelectionPolicy] Gave up selecting for %s:%s after retries", entity_type, entity_id)
        return SelectionOutcome(selected=None)

    def force_select(self, asset_id: str, *, actor: str) -> SelectionOutcome:
        """
        Human override. Skips score thresholds but never selects a rejected
        candidate.
        """
        asset = self.store.get_asset(asset_id)
        if asset is None:
            raise RecordNotFound(f"Asset {asset_id} not found")
        reason = self.ineligibility_reason(asset)
        selected, deselected = self.store.select_asset(
            asset_id,
            guard=lambda a: "rejected" if a.is_rejected else None,
        )
        if reason:
            logger.warning("[SelectionPolicy] %s force-selected %s despite: %s", actor, asset_id, reason)
        return self._committed(selected, deselected, actor=actor, forced=True, override_reason=reason)

    def reject(self, asset_id: str, reason: str, *, actor: str) -> MediaAsset:
        """Clear selection and mark rejected. No replacement is promoted."""
        before = self.store.get_asset(asset_id)
        if before is None:
            raise RecordNotFound(f"Asset {asset_id} not found")
        rejected = self.store.reject_asset(asset_id, reason)
        self.store.append_changes([
            ChangeLogEntry.build(
                actor=actor,
                action=ChangeAction.REJECT,
                table_name="media_assets",
                record_id=asset_id,
                before={"selected": before.selected, "license_status": before.license_status.value},
                after={"selected": False, "license_status": LicenseStatus.REJECTED.value},
                metadata={"reason": reason},
            )
        ])
        Trace.event("selection.reject", {"asset_id": asset_id, "was_selected": before.selected})
        logger.info("[SelectionPolicy] %s rejected %s (was_selected=%s)", actor, asset_id, before.selected)
        return rejected

    def repair(self, entity_type: EntityType | str, entity_id: str, *, actor: str = "system") -> SelectionOutcome:
        """
        Heal a multi-selected entity: run selection again; if nothing is
        eligible, keep the highest-scoring currently selected asset only.
        """
        selected_now = [a for a in self.store.list_assets(entity_type, entity_id) if a.selected]
        if len(selected_now) <= 1:
            return SelectionOutcome(selected=selected_now[0] if selected_now else None)
        outcome = self.select(entity_type, entity_id, actor=actor)
        if outcome.selected is not None:
            return outcome
        keep = rank(selected_now, score=self.combined_score, tiebreak=lambda a: a.asset_id)[0]
        selected, deselected = self.store.select_asset(keep.asset_id)
        return self._committed(selected, deselected, actor=actor, forced=False)

    def _committed(
        self,
        selected: MediaAsset,
        deselected: list[str],
        *,
        actor: str,
        forced: bool,
        override_reason: str | None = None,
    ) -> SelectionOutcome:
        metadata = {
            "combined_score": round(self.combined_score(selected), 2),
            "deselected": deselected,
            "forced": forced,
        }
        if override_reason:
            metadata["override_reason"] = override_reason
        entries = [
            ChangeLogEntry.build(
                actor=actor,
                action=ChangeAction.SELECT,
                table_name="media_assets",
                record_id=selected.asset_id,
                after={"selected": True},
                metadata=metadata,
            )
        ]
        entries.extend(
            ChangeLogEntry.build(
                actor=actor,
                action=ChangeAction.UPDATE,
                table_name="media_assets",
                record_id=other_id,
                before={"selected": True},
                after={"selected": False},
                metadata={"replaced_by": selected.asset_id},
            )
            for other_id in deselected
        )
        self.store.append_changes(entries)
        Trace.event("selection.commit", {"asset_id": selected.asset_id, **metadata})
        logger.info(
            "[SelectionPolicy] Selected %s for %s:%s (score=%.1f, deselected=%d)",
            selected.asset_id, selected.entity_type.value, selected.entity_id,
            self.combined_score(selected), len(deselected),
        )
        if self.on_promoted is not None and not selected.storage_url:
            self.on_promoted(selected)
        return SelectionOutcome(selected=selected, deselected=deselected, forced=forced)
