# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
LLM Failure Classification.

Every failure surfaces to the caller; classification only labels it for
logs, traces and batch checkpoints:
- CONNECTION_ERROR: Network/connection issues
- TIMEOUT: Request timeout
- PROVIDER_ERROR: Provider returned error (5xx, rate limit)
- INVALID_JSON: No parseable JSON object in the response
- SCHEMA_VALIDATION_FAILED: JSON parsed but has the wrong shape
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class LLMFailureKind(str, Enum):
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    INVALID_JSON = "invalid_json"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
    UNKNOWN = "unknown"


_CONNECTION_KEYWORDS = (
    "connection",
    "connect",
    "network",
    "socket",
    "refused",
    "unreachable",
    "dns",
    "ssl",
)

_TIMEOUT_KEYWORDS = (
    "timeout",
    "timed out",
    "deadline exceeded",
)

_PROVIDER_ERROR_KEYWORDS = (
    "rate limit",
    "rate_limit",
    "quota",
    "overloaded",
    "unavailable",
    "internal server",
    "incomplete response",
    "empty response",
    "500",
    "502",
    "503",
    "504",
)

_JSON_ERROR_KEYWORDS = (
    "json",
    "parse",
    "decode",
    "unexpected token",
    "expecting",
)

_SCHEMA_ERROR_KEYWORDS = (
    "schema",
    "validation",
    "missing required",
    "expected object",
    "expected array",
)


def classify_llm_failure(exc: BaseException) -> LLMFailureKind:
    """
    Classify an LLM call exception into a failure kind.

    Already-classified LLMCallError keeps its kind.
    """
    kind = getattr(exc, "kind", None)
    if isinstance(kind, LLMFailureKind):
        return kind

    error_msg = str(exc).lower()
    exc_type = type(exc).__name__.lower()

    # Timeouts first: asyncio.TimeoutError has an empty message.
    if "timeout" in exc_type or any(kw in error_msg for kw in _TIMEOUT_KEYWORDS):
        return LLMFailureKind.TIMEOUT

    if any(kw in error_msg for kw in _PROVIDER_ERROR_KEYWORDS):
        return LLMFailureKind.PROVIDER_ERROR

    if "json" in exc_type or any(kw in error_msg for kw in _JSON_ERROR_KEYWORDS):
        return LLMFailureKind.INVALID_JSON

    if "validation" in exc_type or any(kw in error_msg for kw in _SCHEMA_ERROR_KEYWORDS):
        return LLMFailureKind.SCHEMA_VALIDATION_FAILED

    if "connection" in exc_type or "network" in exc_type:
        return LLMFailureKind.CONNECTION_ERROR
    if any(kw in error_msg for kw in _CONNECTION_KEYWORDS):
        return LLMFailureKind.CONNECTION_ERROR

    return LLMFailureKind.UNKNOWN


def failure_kind_to_trace_data(kind: LLMFailureKind | None, exc: BaseException) -> dict[str, Any]:
    return {
        "failure_kind": kind.value if kind else "unknown",
        "error_type": type(exc).__name__,
        "error_message": str(exc)[:200],
    }
