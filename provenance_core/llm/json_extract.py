# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Defensive JSON extraction from model output.

Accepts, in order: the whole text as JSON, the first fenced ```json block,
the first balanced {...} object found anywhere in the text. Anything else
is an INVALID_JSON failure.
"""

from __future__ import annotations

import json
import re
from typing import Any

from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import LLMFailureKind

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def _balanced_objects(text: str):
    """Yield each top-level {...} span, respecting strings and escapes."""
    depth = 0
    start = -1
    in_str = False
    escape = False
    for i, ch in enumerate(text):
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            if depth > 0:
                in_str = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                yield text[start:i + 1]
                start = -1


def _try_load(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(text: str | None) -> dict[str, Any]:
    """Return the first JSON object in `text` or raise LLMCallError(INVALID_JSON)."""
    s = (text or "").strip()
    if not s:
        raise LLMCallError("Empty model output", kind=LLMFailureKind.INVALID_JSON)

    direct = _try_load(s)
    if direct is not None:
        return direct

    for match in _FENCE_RE.finditer(s):
        fenced = _try_load(match.group(1).strip())
        if fenced is not None:
            return fenced

    for candidate in _balanced_objects(s):
        obj = _try_load(candidate)
        if obj is not None:
            return obj

    raise LLMCallError("No parseable JSON object in model output", kind=LLMFailureKind.INVALID_JSON)
