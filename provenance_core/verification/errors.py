# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Engine errors.

Conflicts between sources are results (ConflictingFact), not errors, and
have no exception here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from provenance_core.llm.failures import LLMFailureKind


class ProvenanceError(RuntimeError):
    pass


class RecordNotFound(ProvenanceError):
    pass


class LedgerImmutableError(ProvenanceError):
    """A write tried to replace an existing source or claim record."""


class IneligibleCandidate(ProvenanceError):
    def __init__(self, asset_id: str, reason: str):
        super().__init__(f"Asset {asset_id} is not eligible for selection: {reason}")
        self.asset_id = asset_id
        self.reason = reason


@dataclass
class ExtractionFailure(ProvenanceError):
    """
    Extraction for one (document, entity) pair failed as a whole.
    Nothing was committed for that pair; the caller decides on retry.
    """

    document_id: str
    entity_id: str
    kind: LLMFailureKind = LLMFailureKind.UNKNOWN
    message: str = ""

    def __post_init__(self) -> None:
        super().__init__(
            f"Extraction failed for document={self.document_id} entity={self.entity_id} "
            f"({self.kind.value}): {self.message}"
        )

    def to_trace_dict(self) -> dict[str, Any]:
        return {
            "type": "ExtractionFailure",
            "document_id": self.document_id,
            "entity_id": self.entity_id,
            "kind": self.kind.value,
            "message": self.message[:200],
        }


@dataclass
class InvariantViolation(ProvenanceError):
    """
    Stored state broke an engine invariant (e.g. two selected assets for
    one entity). Logged and healed; never shown to readers as-is.
    """

    invariant: str
    record_ids: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(f"Invariant violated: {self.invariant} (records={self.record_ids})")

    def to_trace_dict(self) -> dict[str, Any]:
        return {
            "type": "InvariantViolation",
            "invariant": self.invariant,
            "record_ids": list(self.record_ids),
            "details": self.details,
        }
