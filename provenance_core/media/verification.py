from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from provenance_core.agents.skills.image_verification import ImageVerificationSkill
from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import classify_llm_failure
from provenance_core.media.selection import SelectionOutcome, SelectionPolicy
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.entities import EntityType
from provenance_core.schema.media import MediaAsset
from provenance_core.storage.base import KnowledgeStore
from provenance_core.utils.trace import Trace

logger = logging.getLogger(__name__)


@dataclass
class MediaVerificationReport:
    entity_type: str
    entity_id: str
    scored: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    selection: SelectionOutcome | None = None

    @property
    def selected_asset_id(self) -> str | None:
        if self.selection is None or self.selection.selected is None:
            return None
        return self.selection.selected.asset_id


class MediaVerifier:
    """
    Scores unscored candidates one at a time, then runs selection.

    A candidate whose verification fails stays unscored, which keeps it out
    of selection until a later run scores it.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        skill: ImageVerificationSkill,
        policy: SelectionPolicy,
        *,
        runtime: EngineRuntimeConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.skill = skill
        self.policy = policy
        self.runtime = runtime or policy.runtime
        self._sleep = sleep

    def pending(self, assets: list[MediaAsset], *, rescore: bool) -> list[MediaAsset]:
        return [a for a in assets if not a.is_rejected and (rescore or not a.scored)]

    async def verify_entity(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        *,
        rescore: bool = False,
        actor: str = "system",
    ) -> MediaVerificationReport:
        et = EntityType(entity_type)
        report = MediaVerificationReport(entity_type=et.value, entity_id=entity_id)
        assets = self.store.list_assets(et, entity_id)
        todo = self.pending(assets, rescore=rescore)
        todo_ids = {a.asset_id for a in todo}
        report.skipped = [a.asset_id for a in assets if a.asset_id not in todo_ids]

        delay = self.runtime.selection.verify_delay_sec
        for i, asset in enumerate(todo):
            if i and delay > 0:
                await self._sleep(delay)
            try:
                verdict = await self.skill.verify(asset)
            except LLMCallError as e:
                kind = classify_llm_failure(e)
                report.failed[asset.asset_id] = kind.value
                logger.warning("[MediaVerifier] %s failed (%s): %s", asset.asset_id, kind.value, e.message)
                continue
            self.store.update_asset_scores(asset.asset_id, verdict)
            report.scored.append(asset.asset_id)

        report.selection = self.policy.select(et, entity_id, actor=actor)
        Trace.event("media_verifier.done", {
            "entity": f"{et.value}:{entity_id}",
            "scored": len(report.scored),
            "failed": len(report.failed),
            "selected": report.selected_asset_id,
        })
        logger.info(
            "[MediaVerifier] %s:%s scored=%d failed=%d selected=%s",
            et.value, entity_id, len(report.scored), len(report.failed), report.selected_asset_id,
        )
        return report
