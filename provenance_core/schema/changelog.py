# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from provenance_core.schema.serialization import SchemaModel, stable_id, utcnow


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SELECT = "select"
    REJECT = "reject"


class ChangeLogEntry(SchemaModel):
    """Audit record for every human or batch write to engine-owned state."""

    model_config = ConfigDict(frozen=True)

    change_id: str
    actor: str
    action: ChangeAction
    table_name: str
    record_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def build(
        cls,
        *,
        actor: str,
        action: ChangeAction,
        table_name: str,
        record_id: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "ChangeLogEntry":
        created_at = utcnow()
        return cls(
            change_id=stable_id("chg", table_name, record_id, action.value, created_at.isoformat()),
            actor=actor,
            action=action,
            table_name=table_name,
            record_id=record_id,
            before=before,
            after=after,
            metadata=dict(metadata or {}),
            created_at=created_at,
        )
