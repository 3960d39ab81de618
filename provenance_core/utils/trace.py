# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Local-only JSONL trace of extraction and selection runs.

One file per run under the debug trace directory. Payloads are redacted
(API keys, bearer tokens, signed storage URLs) and long strings are cut
down to head/tail plus a digest. Never enabled outside local runs.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.utils.runtime import is_local_run

_MAX_STR = 2000
_MAX_ITEMS = 50
_REDACTED_KEYS = frozenset({"authorization", "api_key", "openai_api_key", "token", "credentials"})
_REDACTIONS = (
    (re.compile(r"sk-[A-Za-z0-9_-]{8,}"), "sk-***"),
    (re.compile(r"(Bearer\s+)\S+"), r"\1***"),
    (re.compile(r"([?&](?:X-Goog-Signature|X-Goog-Credential|key)=)[^&\s]+", re.IGNORECASE), r"\1***"),
)


@dataclass(frozen=True)
class TraceContext:
    trace_id: str
    path: Path | None

    @property
    def enabled(self) -> bool:
        return self.path is not None


_current: contextvars.ContextVar[TraceContext | None] = contextvars.ContextVar("provenance_trace", default=None)


def redact(text: str) -> str:
    for pattern, repl in _REDACTIONS:
        text = pattern.sub(repl, text)
    return text


def sanitize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        text = redact(value)
        if len(text) <= _MAX_STR:
            return text
        return {
            "len": len(text),
            "sha256": hashlib.sha256(text.encode("utf-8")).hexdigest(),
            "head": text[:300],
            "tail": text[-300:],
        }
    if isinstance(value, dict):
        return {
            str(k): "***" if str(k).lower() in _REDACTED_KEYS else sanitize(v)
            for k, v in list(value.items())[:_MAX_ITEMS]
        }
    if isinstance(value, (list, tuple, set)):
        return [sanitize(v) for v in list(value)[:_MAX_ITEMS]]
    return sanitize(str(value))


def current_trace() -> TraceContext | None:
    return _current.get()


class Trace:
    @staticmethod
    def start(trace_id: str, *, runtime: EngineRuntimeConfig | None = None) -> TraceContext:
        runtime = runtime or EngineRuntimeConfig.load_from_env()
        path = None
        if runtime.features.trace_enabled and is_local_run():
            safe_id = re.sub(r"[^A-Za-z0-9._-]", "_", trace_id)
            path = Path(runtime.debug.trace_dir) / f"{safe_id}.jsonl"
        ctx = TraceContext(trace_id=trace_id, path=path)
        _current.set(ctx)
        Trace.event("trace.start", {"runtime": runtime.to_safe_log_dict()})
        return ctx

    @staticmethod
    def stop() -> None:
        Trace.event("trace.stop")
        _current.set(None)

    @staticmethod
    def event(name: str, data: Any | None = None) -> None:
        ctx = _current.get()
        if ctx is None or ctx.path is None:
            return
        record = {"ts_ms": int(time.time() * 1000), "trace_id": ctx.trace_id, "event": name, "data": sanitize(data)}
        try:
            ctx.path.parent.mkdir(parents=True, exist_ok=True)
            with ctx.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError:
            # Trace writes are best-effort.
            return
