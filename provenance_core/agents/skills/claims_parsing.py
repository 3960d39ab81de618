from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from provenance_core.schema.claims import ClaimType


@dataclass(frozen=True, slots=True)
class RawClaim:
    """One claim as returned by the model, before grounding."""

    claim_type: ClaimType
    claim_text: str
    evidence_snippet: str
    confidence: float
    value_structured: Any | None = None
    original_type: str | None = None


def clamp_float(value, *, default: float, lo: float, hi: float) -> float:
    try:
        f = float(value)
    except Exception:
        f = float(default)
    if f != f:
        f = float(default)
    return max(lo, min(hi, f))


def clamp_int(value, *, default: int, lo: int, hi: int) -> int:
    try:
        i = int(value)
    except Exception:
        i = int(default)
    return max(lo, min(hi, i))


def normalize_structured_value(value: Any) -> Any | None:
    """Keep scalars and flat lists; drop anything else."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        v = value.strip()
        return v or None
    if isinstance(value, (list, tuple)):
        items = [str(x).strip() for x in value if isinstance(x, (str, int, float)) and str(x).strip()]
        return items or None
    return None


def parse_raw_claims(payload: Any, *, default_confidence: float) -> list[RawClaim]:
    """
    Turn the model's `{"claims": [...]}` payload into RawClaims.

    Items without text or snippet are skipped. Unknown claim types become
    bio_fact; confidence is clamped to [0, 1].
    """
    if not isinstance(payload, dict):
        raise ValueError("schema validation failed: expected object with 'claims'")
    items = payload.get("claims")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValueError("schema validation failed: 'claims' expected array")

    out: list[RawClaim] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = str(item.get("claim_text") or item.get("text") or "").strip()
        snippet = str(item.get("evidence_snippet") or item.get("quote") or "").strip()
        if not text or not snippet:
            continue
        raw_type = item.get("claim_type") or item.get("type")
        out.append(
            RawClaim(
                claim_type=ClaimType.coerce(raw_type),
                claim_text=text,
                evidence_snippet=snippet,
                confidence=clamp_float(item.get("confidence"), default=default_confidence, lo=0.0, hi=1.0),
                value_structured=normalize_structured_value(item.get("value")),
                original_type=str(raw_type) if raw_type is not None else None,
            )
        )
    return out
