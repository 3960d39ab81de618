# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Claims and their sources.

A Claim is an atomic, typed assertion about one entity taken from one
RawDocument. A Source ties the claim to the verbatim excerpt that supports
it. A claim without a source is never committed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from provenance_core.schema.serialization import SchemaModel, utcnow


class ClaimType(str, Enum):
    """
    Closed predicate vocabulary.

    Values are stored as plain strings, so members can be added without
    breaking older records. Anything unknown lands in BIO_FACT.
    """

    BIO_FACT = "bio_fact"
    BIRTHPLACE = "birthplace"
    BIRTH_DATE = "birth_date"
    REAL_NAME = "real_name"
    FOUNDED_YEAR = "founded_year"
    RELEASE = "release"
    RELEASE_YEAR = "release_year"
    ALBUM = "album"
    TRACK = "track"
    REMIX = "remix"
    LABEL = "label"
    LABEL_FOUNDER = "label_founder"
    GENRE = "genre"
    SUBGENRE = "subgenre"
    STYLE = "style"
    INFLUENCE = "influence"
    INFLUENCED_BY = "influenced_by"
    COLLABORATOR = "collaborator"
    COLLABORATION = "collaboration"
    AWARD = "award"
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"
    TOURING = "touring"
    RESIDENCY = "residency"
    FESTIVAL = "festival"
    EQUIPMENT = "equipment"
    GEAR = "gear"
    MANUFACTURER = "manufacturer"
    TECHNIQUE = "technique"
    EDUCATION = "education"
    CAREER_START = "career_start"
    ALIAS = "alias"
    SIDE_PROJECT = "side_project"
    LOCATION = "location"
    CAPACITY = "capacity"
    QUOTE = "quote"
    PHILOSOPHY = "philosophy"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Any) -> "ClaimType | None":
        if isinstance(raw, cls):
            return raw
        key = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return None

    @classmethod
    def coerce(cls, raw: Any) -> "ClaimType":
        """Normalize to the closed vocabulary. Never rejects."""
        return cls.parse(raw) or cls.BIO_FACT


# Predicates whose structured value is a date; normalized to ISO-8601.
DATE_CLAIM_TYPES = frozenset({ClaimType.BIRTH_DATE})
# Predicates whose structured value is a year.
YEAR_CLAIM_TYPES = frozenset({
    ClaimType.FOUNDED_YEAR,
    ClaimType.RELEASE_YEAR,
    ClaimType.CAREER_START,
})


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    CONFLICTING = "conflicting"
    REJECTED = "rejected"


def _clamp_unit(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if f != f:  # NaN
        return 0.0
    return max(0.0, min(1.0, f))


class Claim(SchemaModel):
    model_config = ConfigDict(frozen=True)

    claim_id: str
    entity_id: str
    claim_type: ClaimType = ClaimType.BIO_FACT
    claim_text: str
    value_structured: Any | None = None
    confidence: float = 0.5
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    document_id: str
    extraction_model: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("claim_type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> ClaimType:
        return ClaimType.coerce(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return _clamp_unit(v)

    @property
    def predicate(self) -> str:
        return self.claim_type.value


class Source(SchemaModel):
    """
    Evidence link for a claim. `url` and `quote_snippet` are fixed at
    creation; only `quality_score` may change (through the ledger).
    """

    model_config = ConfigDict(frozen=True)

    source_id: str
    claim_id: str
    document_id: str | None = None
    url: str
    domain: str = ""
    source_name: str = ""
    quote_snippet: str
    quality_score: float = 0.5
    fetched_at: datetime = Field(default_factory=utcnow)

    @field_validator("quality_score", mode="before")
    @classmethod
    def _clamp_quality(cls, v: Any) -> float:
        return _clamp_unit(v)
