from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from provenance_core import MEDIA_PROMPT_VERSION
from provenance_core.agents.llm_client import build_image_input
from provenance_core.agents.skills.base_skill import BaseSkill
from provenance_core.agents.skills.image_verification_prompts import (
    build_image_verification_instructions,
    build_image_verification_prompt,
)
from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import LLMFailureKind
from provenance_core.schema.media import ImageVerdict, MediaAsset

logger = logging.getLogger(__name__)

# camelCase keys the model is asked for -> ImageVerdict fields
_KEY_MAP = {
    "matchScore": "match_score",
    "qualityScore": "quality_score",
    "copyrightRisk": "copyright_risk",
    "licenseStatus": "license_status",
    "altText": "alt_text",
}


def parse_image_verdict(payload: Any) -> ImageVerdict:
    if not isinstance(payload, dict):
        raise LLMCallError("schema validation failed: expected object", kind=LLMFailureKind.SCHEMA_VALIDATION_FAILED)
    data = {_KEY_MAP.get(k, k): v for k, v in payload.items()}
    tags = data.get("tags")
    data["tags"] = tuple(str(t).strip() for t in tags if str(t).strip()) if isinstance(tags, list) else ()
    try:
        return ImageVerdict.model_validate(data)
    except ValidationError as e:
        raise LLMCallError(f"schema validation failed: {e}", kind=LLMFailureKind.SCHEMA_VALIDATION_FAILED) from e


class ImageVerificationSkill(BaseSkill):

    async def verify(self, asset: MediaAsset) -> ImageVerdict:
        payload = await self.llm_client.call_json(
            model=self.config.vision_model,
            input=build_image_input(build_image_verification_prompt(asset), asset.source_url),
            instructions=build_image_verification_instructions(),
            cache_key=MEDIA_PROMPT_VERSION,
            timeout=self.runtime.llm.timeout_sec,
            max_output_tokens=self.runtime.llm.max_output_tokens_vision,
            trace_kind="image_verification",
        )
        verdict = parse_image_verdict(payload)
        logger.debug(
            "[ImageVerification] %s match=%.0f quality=%.0f risk=%s",
            asset.asset_id, verdict.match_score, verdict.quality_score, verdict.copyright_risk.value,
        )
        return verdict
