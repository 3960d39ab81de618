from provenance_core.presentation.adapter import (
    Badge,
    ConflictDisplay,
    EntityFactsDisplay,
    EvidenceViewState,
    FactDisplay,
    confidence_level,
    format_confidence,
    format_fetched_time,
    humanize_predicate,
    present_entity_facts,
    present_fact,
    resolve_selected_asset,
)

__all__ = [
    "Badge",
    "ConflictDisplay",
    "EntityFactsDisplay",
    "EvidenceViewState",
    "FactDisplay",
    "confidence_level",
    "format_confidence",
    "format_fetched_time",
    "humanize_predicate",
    "present_entity_facts",
    "present_fact",
    "resolve_selected_asset",
]
