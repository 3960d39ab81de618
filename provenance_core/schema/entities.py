# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Entities and raw documents.

Both are owned by the ingestion side. The engine only reads them and keys
its own records (claims, sources, media assets) by entity identity.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import ConfigDict, Field, model_validator

from provenance_core.schema.serialization import SchemaModel, utcnow
from provenance_core.utils.url_utils import get_registrable_domain


class EntityType(str, Enum):
    ARTIST = "artist"
    VENUE = "venue"
    LABEL = "label"
    GEAR = "gear"
    FESTIVAL = "festival"
    CREW = "crew"
    RELEASE = "release"


class Entity(SchemaModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    slug: str
    name: str
    entity_type: EntityType = EntityType.ARTIST


class RawDocument(SchemaModel):
    """Fetched source text. Never mutated after ingestion."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    url: str
    domain: str = ""
    content: str = ""
    title: str | None = None
    fetched_at: datetime = Field(default_factory=utcnow)
    entity_ids: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _derive_domain(cls, data):
        if isinstance(data, dict) and not data.get("domain"):
            data = dict(data)
            data["domain"] = get_registrable_domain(data.get("url")) or ""
        return data
