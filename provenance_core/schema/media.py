# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from provenance_core.schema.entities import EntityType
from provenance_core.schema.serialization import SchemaModel, utcnow


class CopyrightRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def coerce(cls, raw: Any) -> "CopyrightRisk":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(getattr(raw, "value", raw) or "").strip().lower())
        except ValueError:
            return cls.MEDIUM


class LicenseStatus(str, Enum):
    SAFE = "safe"
    UNKNOWN = "unknown"
    REJECTED = "rejected"

    @classmethod
    def coerce(cls, raw: Any) -> "LicenseStatus":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(getattr(raw, "value", raw) or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


def _clamp_score(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if f != f:
        return 0.0
    return max(0.0, min(100.0, f))


class MediaAsset(SchemaModel):
    """
    Candidate image for an entity.

    `selected` is written only by the selection policy through the store's
    atomic select operation.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str
    entity_type: EntityType
    entity_id: str
    entity_name: str = ""
    source_url: str
    storage_url: str | None = None
    storage_path: str | None = None
    provider: str | None = None
    license: str | None = None
    match_score: float = 0.0
    quality_score: float = 0.0
    copyright_risk: CopyrightRisk = CopyrightRisk.MEDIUM
    license_status: LicenseStatus = LicenseStatus.UNKNOWN
    scored: bool = False
    tags: tuple[str, ...] = ()
    alt_text: str | None = None
    reasoning: str | None = None
    selected: bool = False
    rejection_reason: str | None = None
    version: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("match_score", "quality_score", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return _clamp_score(v)

    @field_validator("copyright_risk", mode="before")
    @classmethod
    def _coerce_risk(cls, v: Any) -> CopyrightRisk:
        return CopyrightRisk.coerce(v)

    @field_validator("license_status", mode="before")
    @classmethod
    def _coerce_license(cls, v: Any) -> LicenseStatus:
        return LicenseStatus.coerce(v)

    @property
    def is_rejected(self) -> bool:
        return self.license_status == LicenseStatus.REJECTED or bool(self.rejection_reason)


class ImageVerdict(SchemaModel):
    """Parsed output of one image verification call."""

    match_score: float = 0.0
    quality_score: float = 0.0
    copyright_risk: CopyrightRisk = CopyrightRisk.MEDIUM
    license_status: LicenseStatus = LicenseStatus.UNKNOWN
    tags: tuple[str, ...] = ()
    alt_text: str | None = None
    reasoning: str | None = None

    @field_validator("match_score", "quality_score", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return _clamp_score(v)

    @field_validator("copyright_risk", mode="before")
    @classmethod
    def _coerce_risk(cls, v: Any) -> CopyrightRisk:
        return CopyrightRisk.coerce(v)

    @field_validator("license_status", mode="before")
    @classmethod
    def _coerce_license(cls, v: Any) -> LicenseStatus:
        return LicenseStatus.coerce(v)
