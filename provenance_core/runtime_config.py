from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from provenance_core import constants as C


def _parse_bool(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if not s:
        return default
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_int(raw: Any, *, default: int, min_v: int, max_v: int) -> int:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, int):
            v = raw
        else:
            v = int(str(raw).strip())
    except Exception:
        v = default
    return max(min_v, min(max_v, v))


def _parse_float(raw: Any, *, default: float, min_v: float, max_v: float) -> float:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, (int, float)):
            v = float(raw)
        else:
            v = float(str(raw).strip())
    except Exception:
        v = default
    return max(min_v, min(max_v, v))


def _parse_choice(raw: Any, *, default: str, choices: tuple[str, ...]) -> str:
    s = str(raw or "").strip().lower()
    return s if s in choices else default


AGREEMENT_POLICIES = ("representative", "max", "noisy_or")


@dataclass(frozen=True)
class EngineFeatureFlags:
    # Trace is a local-only debug feature; enabled by default, can be disabled via env.
    trace_enabled: bool = True
    # Shadow mode: extraction and grounding run, nothing is committed.
    shadow_mode: bool = False
    evidence_ui: bool = True
    storage_mirror: bool = True


@dataclass(frozen=True)
class EngineDebugFlags:
    log_prompts: bool = False
    trace_dir: str = "data/trace"


@dataclass(frozen=True)
class EngineLLMConfig:
    timeout_sec: float = 60.0
    concurrency: int = 4
    max_output_tokens_extraction: int = 2000
    max_output_tokens_vision: int = 600


@dataclass(frozen=True)
class ExtractionConfig:
    min_document_chars: int = C.MIN_DOCUMENT_CHARS
    max_document_chars: int = C.MAX_DOCUMENT_CHARS
    max_snippet_chars: int = C.MAX_SNIPPET_CHARS
    default_confidence: float = C.DEFAULT_CLAIM_CONFIDENCE
    delay_sec: float = C.EXTRACTION_DELAY_SEC
    max_documents_per_batch: int = C.MAX_DOCUMENTS_PER_BATCH


@dataclass(frozen=True)
class ResolverConfig:
    min_confidence: float = C.MIN_CONFIDENCE_THRESHOLD
    verified_threshold: float = C.VERIFIED_CONFIDENCE_THRESHOLD
    # representative | max | noisy_or
    agreement_policy: str = "representative"


@dataclass(frozen=True)
class SelectionConfig:
    match_weight: float = C.MATCH_WEIGHT
    quality_weight: float = C.QUALITY_WEIGHT
    min_match_score: float = C.MIN_MATCH_SCORE
    verify_delay_sec: float = C.MEDIA_VERIFY_DELAY_SEC
    mirror_timeout_sec: float = 20.0
    mirror_max_bytes: int = 15_000_000


@dataclass(frozen=True)
class EngineRuntimeConfig:
    llm: EngineLLMConfig
    features: EngineFeatureFlags
    debug: EngineDebugFlags
    extraction: ExtractionConfig
    resolver: ResolverConfig
    selection: SelectionConfig

    @staticmethod
    def defaults() -> "EngineRuntimeConfig":
        return EngineRuntimeConfig(
            llm=EngineLLMConfig(),
            features=EngineFeatureFlags(),
            debug=EngineDebugFlags(),
            extraction=ExtractionConfig(),
            resolver=ResolverConfig(),
            selection=SelectionConfig(),
        )

    @staticmethod
    def load_from_env() -> "EngineRuntimeConfig":
        llm = EngineLLMConfig(
            timeout_sec=_parse_float(os.getenv("OPENAI_TIMEOUT"), default=60.0, min_v=5.0, max_v=300.0),
            concurrency=_parse_int(os.getenv("OPENAI_CONCURRENCY"), default=4, min_v=1, max_v=16),
            max_output_tokens_extraction=_parse_int(
                os.getenv("PROVENANCE_EXTRACTION_MAX_OUTPUT_TOKENS"), default=2000, min_v=200, max_v=8000
            ),
            max_output_tokens_vision=_parse_int(
                os.getenv("PROVENANCE_VISION_MAX_OUTPUT_TOKENS"), default=600, min_v=100, max_v=4000
            ),
        )

        features = EngineFeatureFlags(
            trace_enabled=not _parse_bool(os.getenv("PROVENANCE_TRACE_DISABLE"), default=False),
            shadow_mode=_parse_bool(os.getenv("FEATURE_SHADOW_MODE"), default=False),
            evidence_ui=_parse_bool(os.getenv("FEATURE_EVIDENCE_UI"), default=True),
            storage_mirror=_parse_bool(os.getenv("FEATURE_STORAGE_MIRROR"), default=True),
        )

        debug = EngineDebugFlags(
            log_prompts=_parse_bool(os.getenv("PROVENANCE_ENGINE_LOG_PROMPTS"), default=False),
            trace_dir=(os.getenv("PROVENANCE_TRACE_DIR") or "").strip() or "data/trace",
        )

        extraction = ExtractionConfig(
            min_document_chars=_parse_int(
                os.getenv("PROVENANCE_MIN_DOCUMENT_CHARS"), default=C.MIN_DOCUMENT_CHARS, min_v=1, max_v=5000
            ),
            max_document_chars=_parse_int(
                os.getenv("PROVENANCE_MAX_DOCUMENT_CHARS"), default=C.MAX_DOCUMENT_CHARS, min_v=1000, max_v=200_000
            ),
            max_snippet_chars=_parse_int(
                os.getenv("PROVENANCE_MAX_SNIPPET_CHARS"), default=C.MAX_SNIPPET_CHARS, min_v=50, max_v=2000
            ),
            default_confidence=_parse_float(
                os.getenv("PROVENANCE_DEFAULT_CONFIDENCE"), default=C.DEFAULT_CLAIM_CONFIDENCE, min_v=0.0, max_v=1.0
            ),
            delay_sec=_parse_float(
                os.getenv("PROVENANCE_EXTRACTION_DELAY_SEC"), default=C.EXTRACTION_DELAY_SEC, min_v=0.0, max_v=30.0
            ),
            max_documents_per_batch=_parse_int(
                os.getenv("PROVENANCE_MAX_DOCUMENTS_PER_BATCH"), default=C.MAX_DOCUMENTS_PER_BATCH, min_v=1, max_v=500
            ),
        )

        resolver = ResolverConfig(
            min_confidence=_parse_float(
                os.getenv("PROVENANCE_MIN_CONFIDENCE"), default=C.MIN_CONFIDENCE_THRESHOLD, min_v=0.0, max_v=1.0
            ),
            verified_threshold=_parse_float(
                os.getenv("PROVENANCE_VERIFIED_THRESHOLD"), default=C.VERIFIED_CONFIDENCE_THRESHOLD, min_v=0.0, max_v=1.0
            ),
            agreement_policy=_parse_choice(
                os.getenv("PROVENANCE_AGREEMENT_POLICY"), default="representative", choices=AGREEMENT_POLICIES
            ),
        )

        selection = SelectionConfig(
            match_weight=_parse_float(os.getenv("MEDIA_MATCH_WEIGHT"), default=C.MATCH_WEIGHT, min_v=0.0, max_v=1.0),
            quality_weight=_parse_float(
                os.getenv("MEDIA_QUALITY_WEIGHT"), default=C.QUALITY_WEIGHT, min_v=0.0, max_v=1.0
            ),
            min_match_score=_parse_float(
                os.getenv("MEDIA_MIN_MATCH_SCORE"), default=C.MIN_MATCH_SCORE, min_v=0.0, max_v=100.0
            ),
            verify_delay_sec=_parse_float(
                os.getenv("MEDIA_VERIFY_DELAY_SEC"), default=C.MEDIA_VERIFY_DELAY_SEC, min_v=0.0, max_v=30.0
            ),
            mirror_timeout_sec=_parse_float(
                os.getenv("MEDIA_MIRROR_TIMEOUT_SEC"), default=20.0, min_v=1.0, max_v=120.0
            ),
            mirror_max_bytes=_parse_int(
                os.getenv("MEDIA_MIRROR_MAX_BYTES"), default=15_000_000, min_v=10_000, max_v=100_000_000
            ),
        )

        return EngineRuntimeConfig(
            llm=llm,
            features=features,
            debug=debug,
            extraction=extraction,
            resolver=resolver,
            selection=selection,
        )

    def to_safe_log_dict(self) -> dict[str, Any]:
        return {
            "features": {
                "trace_enabled": bool(self.features.trace_enabled),
                "shadow_mode": bool(self.features.shadow_mode),
                "evidence_ui": bool(self.features.evidence_ui),
                "storage_mirror": bool(self.features.storage_mirror),
            },
            "debug": {
                "log_prompts": bool(self.debug.log_prompts),
                "trace_dir": self.debug.trace_dir,
            },
            "llm": {
                "timeout_sec": float(self.llm.timeout_sec),
                "concurrency": int(self.llm.concurrency),
                "max_output_tokens_extraction": int(self.llm.max_output_tokens_extraction),
                "max_output_tokens_vision": int(self.llm.max_output_tokens_vision),
            },
            "extraction": {
                "min_document_chars": int(self.extraction.min_document_chars),
                "max_document_chars": int(self.extraction.max_document_chars),
                "max_snippet_chars": int(self.extraction.max_snippet_chars),
                "delay_sec": float(self.extraction.delay_sec),
                "max_documents_per_batch": int(self.extraction.max_documents_per_batch),
            },
            "resolver": {
                "min_confidence": float(self.resolver.min_confidence),
                "verified_threshold": float(self.resolver.verified_threshold),
                "agreement_policy": self.resolver.agreement_policy,
            },
            "selection": {
                "match_weight": float(self.selection.match_weight),
                "quality_weight": float(self.selection.quality_weight),
                "min_match_score": float(self.selection.min_match_score),
            },
        }
