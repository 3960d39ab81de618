# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Resolved fact results.

FactResult is a tagged union on `kind`. Consumers must match on the variant
explicitly; an unrecognized shape is an error, never a valid fact.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter

from provenance_core.schema.serialization import SchemaModel


class FactStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


class UnverifiedReason(str, Enum):
    NO_CLAIMS = "no_claims"
    NO_SOURCE = "no_source"
    NO_EVIDENCE = "no_evidence"
    LOW_CONFIDENCE = "low_confidence"
    MISSING_DATA = "missing_data"


class ValidFact(SchemaModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["valid"] = "valid"
    predicate: str
    value: Any
    confidence: float
    status: FactStatus
    evidence_snippet: str
    source_name: str
    source_url: str
    fetched_at: datetime
    claim_id: str
    source_id: str
    supporting_sources: int = 1


class ConflictValue(SchemaModel):
    model_config = ConfigDict(frozen=True)

    value: Any
    source_name: str
    source_url: str
    quality_score: float
    fetched_at: datetime
    claim_id: str
    source_id: str
    evidence_snippet: str = ""


class ConflictingFact(SchemaModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["conflict"] = "conflict"
    predicate: str
    display_text: str
    values: tuple[ConflictValue, ...]


class UnverifiedFact(SchemaModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unverified"] = "unverified"
    predicate: str
    reason: UnverifiedReason
    display_text: str
    value: None = None


FactResult = Annotated[
    Union[ValidFact, ConflictingFact, UnverifiedFact],
    Field(discriminator="kind"),
]

_FACT_ADAPTER: TypeAdapter = TypeAdapter(FactResult)


def load_fact(data: dict[str, Any]) -> ValidFact | ConflictingFact | UnverifiedFact:
    return _FACT_ADAPTER.validate_python(data)
