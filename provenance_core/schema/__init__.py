# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Provenance Core Schema Module
"""

from provenance_core.schema.changelog import ChangeAction, ChangeLogEntry
from provenance_core.schema.claims import (
    Claim,
    ClaimType,
    Source,
    VerificationStatus,
)
from provenance_core.schema.entities import Entity, EntityType, RawDocument
from provenance_core.schema.facts import (
    ConflictingFact,
    ConflictValue,
    FactResult,
    FactStatus,
    UnverifiedFact,
    UnverifiedReason,
    ValidFact,
    load_fact,
)
from provenance_core.schema.media import (
    CopyrightRisk,
    ImageVerdict,
    LicenseStatus,
    MediaAsset,
)
from provenance_core.schema.serialization import SchemaModel, dump_schema, load_schema

__all__ = [
    "ChangeAction",
    "ChangeLogEntry",
    "Claim",
    "ClaimType",
    "Source",
    "VerificationStatus",
    "Entity",
    "EntityType",
    "RawDocument",
    "ConflictingFact",
    "ConflictValue",
    "FactResult",
    "FactStatus",
    "UnverifiedFact",
    "UnverifiedReason",
    "ValidFact",
    "load_fact",
    "CopyrightRisk",
    "ImageVerdict",
    "LicenseStatus",
    "MediaAsset",
    "SchemaModel",
    "dump_schema",
    "load_schema",
]
