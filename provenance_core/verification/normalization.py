from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import Any

from provenance_core.schema.claims import DATE_CLAIM_TYPES, YEAR_CLAIM_TYPES, Claim, ClaimType

_WS_RE = re.compile(r"\s+")
_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")
_ORDINAL_RE = re.compile(r"(\d{1,2})(st|nd|rd|th)\b", re.IGNORECASE)
_LIST_SEP = "\x1f"

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d.%m.%Y",
)
_MONTH_FORMATS = ("%Y-%m", "%B %Y", "%b %Y")


class MalformedValue(ValueError):
    pass


def normalize_text(value: str) -> str:
    s = unicodedata.normalize("NFKC", str(value))
    s = _WS_RE.sub(" ", s).strip().casefold()
    return s.rstrip(".;,").strip()


def canonicalize_date(raw: str) -> str | None:
    """ISO-8601 date (YYYY-MM-DD, YYYY-MM or YYYY), or None if unparseable."""
    s = _ORDINAL_RE.sub(r"\1", _WS_RE.sub(" ", str(raw)).strip().rstrip("."))
    if not s:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    for fmt in _MONTH_FORMATS:
        try:
            return datetime.strptime(s, fmt).strftime("%Y-%m")
        except ValueError:
            continue
    if re.fullmatch(r"\d{4}", s):
        return s
    return None


def canonicalize_year(raw: Any) -> str | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return str(raw) if 1000 <= raw <= 2999 else None
    m = _YEAR_RE.search(str(raw))
    return m.group(1) if m else None


def structured_value(claim: Claim) -> Any:
    """
    The claim's typed value.

    Raises MalformedValue when value_structured is missing or does not fit
    the predicate (callers fall back to claim_text).
    """
    v = claim.value_structured
    if v is None:
        raise MalformedValue("missing structured value")
    if claim.claim_type in DATE_CLAIM_TYPES:
        iso = canonicalize_date(str(v)) if isinstance(v, (str, int)) else None
        if iso is None:
            raise MalformedValue(f"not a date: {v!r}")
        return iso
    if claim.claim_type in YEAR_CLAIM_TYPES:
        year = canonicalize_year(v) if isinstance(v, (str, int)) else None
        if year is None:
            raise MalformedValue(f"not a year: {v!r}")
        return year
    if isinstance(v, bool):
        raise MalformedValue("boolean value")
    if isinstance(v, (int, float)):
        return v
    if isinstance(v, str):
        if not v.strip():
            raise MalformedValue("empty value")
        return v.strip()
    if isinstance(v, (list, tuple)):
        items = [str(x).strip() for x in v if isinstance(x, (str, int, float)) and not isinstance(x, bool)]
        items = [x for x in items if x]
        if not items or len(items) != len(v):
            raise MalformedValue("list with non-scalar items")
        return items
    raise MalformedValue(f"unsupported value type: {type(v).__name__}")


def display_value(claim: Claim) -> Any:
    try:
        return structured_value(claim)
    except MalformedValue:
        return claim.claim_text


def normalize_value(value: Any, claim_type: ClaimType | None = None) -> str:
    """
    Comparison key for agreement checks: case-folded, trimmed, dates in
    ISO-8601, list order preserved.
    """
    if isinstance(value, (list, tuple)):
        return _LIST_SEP.join(normalize_text(str(v)) for v in value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)

    text = str(value)
    if claim_type in YEAR_CLAIM_TYPES:
        year = canonicalize_year(text)
        if year:
            return year
    iso = canonicalize_date(text)
    if iso:
        return iso
    return normalize_text(text)


def claim_value_key(claim: Claim) -> str:
    return normalize_value(display_value(claim), claim.claim_type)
