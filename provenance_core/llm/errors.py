from __future__ import annotations

from dataclasses import dataclass

from provenance_core.llm.failures import LLMFailureKind


@dataclass
class LLMCallError(Exception):
    message: str
    kind: LLMFailureKind = LLMFailureKind.UNKNOWN

    def __str__(self) -> str:
        return f"{self.message} (kind={self.kind.value})"
