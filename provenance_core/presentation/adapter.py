# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Fact results -> display frames.

Internal results are converted into flat, UI-facing frames here and nowhere
else. Only a ValidFact can render as a fact with evidence; anything that is
not one of the known result variants is an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from provenance_core import constants as C
from provenance_core.schema.facts import ConflictingFact, FactStatus, UnverifiedFact, UnverifiedReason, ValidFact
from provenance_core.schema.media import MediaAsset
from provenance_core.schema.serialization import utcnow
from provenance_core.utils.trace import Trace
from provenance_core.verification.errors import InvariantViolation

logger = logging.getLogger(__name__)


class Badge:
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


@dataclass
class EvidenceViewState:
    """Per-entity "show evidence" toggle. Visible unless hidden for that entity."""

    evidence_ui_enabled: bool = True
    hidden: set[str] = field(default_factory=set)

    def is_visible(self, entity_id: str) -> bool:
        return self.evidence_ui_enabled and entity_id not in self.hidden

    def toggle(self, entity_id: str) -> bool:
        if entity_id in self.hidden:
            self.hidden.discard(entity_id)
        else:
            self.hidden.add(entity_id)
        return self.is_visible(entity_id)

    def set_visible(self, entity_id: str, visible: bool) -> None:
        if visible:
            self.hidden.discard(entity_id)
        else:
            self.hidden.add(entity_id)


@dataclass(frozen=True, slots=True)
class ConflictDisplay:
    value: str
    source_name: str
    source_url: str
    fetched: str


@dataclass(frozen=True, slots=True)
class FactDisplay:
    predicate: str
    label: str
    badge: str
    render: bool
    value: str | None = None
    display_text: str | None = None
    confidence: str | None = None
    confidence_level: str | None = None
    show_evidence: bool = False
    evidence_snippet: str | None = None
    source_name: str | None = None
    source_url: str | None = None
    fetched: str | None = None
    conflicts: tuple[ConflictDisplay, ...] = ()


@dataclass(frozen=True, slots=True)
class EntityFactsDisplay:
    entity_id: str
    facts: tuple[FactDisplay, ...]
    empty_state: bool
    empty_message: str | None = None

    @property
    def visible(self) -> tuple[FactDisplay, ...]:
        return tuple(f for f in self.facts if f.render)


def format_confidence(confidence: float) -> str:
    return f"{round(max(0.0, min(1.0, confidence)) * 100)}%"


def confidence_level(confidence: float) -> str:
    if confidence >= C.CONFIDENCE_HIGH:
        return "high"
    if confidence >= C.CONFIDENCE_MEDIUM:
        return "medium"
    return "low"


def format_fetched_time(fetched_at: datetime, *, now: datetime | None = None) -> str:
    now = now or utcnow()
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    days = max(0, (now - fetched_at).days)
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return f"{days // 7} weeks ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"


def humanize_predicate(predicate: str) -> str:
    text = str(predicate or "").replace("_", " ").strip()
    return text[:1].upper() + text[1:] if text else ""


def _value_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def present_fact(
    fact: ValidFact | ConflictingFact | UnverifiedFact,
    view_state: EvidenceViewState | None = None,
    *,
    entity_id: str = "",
    render_placeholders: bool = False,
    now: datetime | None = None,
) -> FactDisplay:
    view_state = view_state or EvidenceViewState()
    match fact:
        case ValidFact():
            return FactDisplay(
                predicate=fact.predicate,
                label=humanize_predicate(fact.predicate),
                badge=Badge.VERIFIED if fact.status == FactStatus.VERIFIED else Badge.UNVERIFIED,
                render=True,
                value=_value_text(fact.value),
                confidence=format_confidence(fact.confidence),
                confidence_level=confidence_level(fact.confidence),
                show_evidence=view_state.is_visible(entity_id),
                evidence_snippet=fact.evidence_snippet,
                source_name=fact.source_name,
                source_url=fact.source_url,
                fetched=format_fetched_time(fact.fetched_at, now=now),
            )
        case ConflictingFact():
            return FactDisplay(
                predicate=fact.predicate,
                label=humanize_predicate(fact.predicate),
                badge=Badge.CONFLICT,
                render=True,
                display_text=fact.display_text,
                conflicts=tuple(
                    ConflictDisplay(
                        value=_value_text(v.value),
                        source_name=v.source_name,
                        source_url=v.source_url,
                        fetched=format_fetched_time(v.fetched_at, now=now),
                    )
                    for v in fact.values
                ),
            )
        case UnverifiedFact():
            return FactDisplay(
                predicate=fact.predicate,
                label=humanize_predicate(fact.predicate),
                badge=Badge.UNKNOWN if fact.reason == UnverifiedReason.NO_CLAIMS else Badge.UNVERIFIED,
                render=render_placeholders,
                display_text=fact.display_text,
            )
        case _:
            raise TypeError(f"Unsupported fact result: {type(fact).__name__}")


def present_entity_facts(
    entity_id: str,
    facts: Iterable[ValidFact | ConflictingFact | UnverifiedFact],
    view_state: EvidenceViewState | None = None,
    *,
    render_placeholders: bool = False,
    now: datetime | None = None,
) -> EntityFactsDisplay:
    displays = tuple(
        present_fact(f, view_state, entity_id=entity_id, render_placeholders=render_placeholders, now=now)
        for f in facts
    )
    empty = not any(d.render for d in displays)
    return EntityFactsDisplay(
        entity_id=entity_id,
        facts=displays,
        empty_state=empty,
        empty_message=C.EMPTY_STATE_MESSAGE if empty else None,
    )


def _default_asset_score(asset: MediaAsset) -> float:
    return max(0.0, min(100.0, C.MATCH_WEIGHT * asset.match_score + C.QUALITY_WEIGHT * asset.quality_score))


def resolve_selected_asset(
    assets: Iterable[MediaAsset],
    *,
    score: Callable[[MediaAsset], float] = _default_asset_score,
) -> MediaAsset | None:
    """
    The single selected asset, or None.

    More than one selected asset breaks the selection invariant; it is
    reported and the highest scoring one (then lowest asset_id) is shown.
    """
    selected = [a for a in assets if a.selected]
    if len(selected) <= 1:
        return selected[0] if selected else None

    violation = InvariantViolation(
        invariant="single_selected_asset",
        record_ids=sorted(a.asset_id for a in selected),
        details={"entity": f"{selected[0].entity_type.value}:{selected[0].entity_id}", "selected": len(selected)},
    )
    logger.error("[Presentation] %s", violation)
    Trace.event("presentation.invariant_violation", violation.to_trace_dict())
    return min(selected, key=lambda a: (-score(a), a.asset_id))
