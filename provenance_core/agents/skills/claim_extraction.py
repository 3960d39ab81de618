# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Claim extraction skill.

Calls the model once per document and returns raw, ungrounded claims.
Grounding and persistence happen in verification.extractor.
"""

from __future__ import annotations

import logging

from provenance_core import PROMPT_VERSION
from provenance_core.agents.skills.base_skill import BaseSkill
from provenance_core.agents.skills.claim_extraction_prompts import (
    build_claim_extraction_input,
    build_claim_extraction_instructions,
)
from provenance_core.agents.skills.claims_parsing import RawClaim, parse_raw_claims
from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import LLMFailureKind
from provenance_core.schema.entities import Entity, RawDocument
from provenance_core.utils.trace import Trace

logger = logging.getLogger(__name__)


class ClaimExtractionSkill(BaseSkill):

    @property
    def model_name(self) -> str:
        return self.config.extraction_model

    async def extract_raw(self, document: RawDocument, entity: Entity) -> list[RawClaim]:
        """
        Raises:
            LLMCallError: inference failed or the output has no usable claims payload
        """
        instructions = build_claim_extraction_instructions()
        prompt = build_claim_extraction_input(
            document, entity, max_chars=self.runtime.extraction.max_document_chars
        )
        if self.runtime.debug.log_prompts:
            logger.debug("[ClaimExtraction] Prompt for %s/%s:\n%s", document.document_id, entity.entity_id, prompt)

        payload = await self.llm_client.call_json(
            model=self.model_name,
            input=prompt,
            instructions=instructions,
            cache_key=PROMPT_VERSION,
            timeout=self.runtime.llm.timeout_sec,
            max_output_tokens=self.runtime.llm.max_output_tokens_extraction,
            trace_kind="claim_extraction",
        )

        try:
            claims = parse_raw_claims(payload, default_confidence=self.runtime.extraction.default_confidence)
        except ValueError as e:
            raise LLMCallError(str(e), kind=LLMFailureKind.SCHEMA_VALIDATION_FAILED) from e

        Trace.event("claim_extraction.parsed", {
            "document_id": document.document_id,
            "entity_id": entity.entity_id,
            "claims": len(claims),
            "fallback_types": sum(1 for c in claims if c.original_type and c.original_type != c.claim_type.value),
        })
        return claims
