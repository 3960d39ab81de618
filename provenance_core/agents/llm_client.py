# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Provenance Engine is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with Provenance Engine. If not, see <https://www.gnu.org/licenses/>.

"""
LLM client over the OpenAI Responses API.

- One attempt per call. Retries belong to the caller (batch re-runs),
  so a failed document is reported, never silently re-queried.
- Hard timeout around every request.
- JSON output parsed defensively (fences, wrapping prose).
- Trace events for prompt / response / error.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Any, Literal

from openai import AsyncOpenAI

from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import (
    LLMFailureKind,
    classify_llm_failure,
    failure_kind_to_trace_data,
)
from provenance_core.llm.json_extract import extract_json_object
from provenance_core.utils.trace import Trace

logger = logging.getLogger(__name__)


ReasoningEffort = Literal["low", "medium", "high"]


def build_image_input(prompt: str, image_url: str) -> list[dict[str, Any]]:
    """Responses API input with one text part and one image part."""
    return [
        {
            "role": "user",
            "content": [
                {"type": "input_text", "text": prompt},
                {"type": "input_image", "image_url": image_url},
            ],
        }
    ]


class LLMClient:
    """
    Thin async wrapper for the Responses API.

    Example:
        client = LLMClient(openai_api_key="sk-...")
        parsed = await client.call_json(
            model="gpt-5-mini",
            input="Document: ...",
            instructions="Extract claims as JSON.",
            cache_key="claim_extract_v2",
        )
    """

    def __init__(
        self,
        *,
        openai_api_key: str | None = None,
        default_timeout: float = 60.0,
        concurrency: int = 4,
        client: AsyncOpenAI | None = None,
    ):
        self.client = client or AsyncOpenAI(api_key=openai_api_key)
        self.default_timeout = default_timeout
        self._sem = asyncio.Semaphore(max(1, int(concurrency)))

    async def call(
        self,
        *,
        model: str,
        input: str | list[dict[str, Any]],  # noqa: A002 - official API param name
        instructions: str | None = None,
        json_output: bool = False,
        reasoning_effort: ReasoningEffort = "low",
        cache_key: str | None = None,
        timeout: float | None = None,
        max_output_tokens: int | None = None,
        trace_kind: str = "llm_call",
    ) -> dict:
        """
        Execute one Responses API call.

        Returns:
            Dict with keys:
            - "content": Raw text content from the model
            - "parsed": Parsed JSON object if json_output=True, else None
            - "model": Model used
            - "usage": Token usage and latency

        Raises:
            LLMCallError: on any failure, with a classified kind
        """
        effective_timeout = timeout or self.default_timeout

        params: dict = {
            "model": model,
            "input": input,
            "timeout": effective_timeout,
        }
        if instructions:
            params["instructions"] = instructions
        if max_output_tokens:
            params["max_output_tokens"] = max_output_tokens
        if json_output:
            params["text"] = {"format": {"type": "json_object"}}
        if "gpt-5" in model or model.startswith("o"):
            params["reasoning"] = {"effort": reasoning_effort}
        if cache_key:
            params["prompt_cache_key"] = cache_key

        input_repr = input if isinstance(input, str) else repr(input)
        payload_hash = hashlib.md5(((instructions or "") + "||" + input_repr).encode()).hexdigest()

        Trace.event(f"{trace_kind}.prompt", {
            "model": model,
            "input_chars": len(input_repr),
            "instructions_chars": len(instructions or ""),
            "payload_hash": payload_hash,
            "json_output": json_output,
            "cache_key": cache_key,
        })

        start_time = time.time()
        try:
            async with self._sem:
                response = await asyncio.wait_for(
                    self.client.responses.create(**params),
                    timeout=effective_timeout,
                )

            content = response.output_text
            if not content or not content.strip():
                if getattr(response, "error", None):
                    raise LLMCallError(f"LLM error: {response.error}", kind=LLMFailureKind.PROVIDER_ERROR)
                if getattr(response, "status", None) == "incomplete":
                    raise LLMCallError(
                        f"Incomplete response: {response.incomplete_details}",
                        kind=LLMFailureKind.PROVIDER_ERROR,
                    )
                raise LLMCallError("Empty response from LLM", kind=LLMFailureKind.PROVIDER_ERROR)

            parsed = extract_json_object(content) if json_output else None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = classify_llm_failure(e)
            logger.warning("[LLMClient] %s call failed (%s): %s", model, kind.value, e)
            Trace.event(f"{trace_kind}.error", {
                "model": model,
                "payload_hash": payload_hash,
                **failure_kind_to_trace_data(kind, e),
            })
            if isinstance(e, LLMCallError):
                raise
            raise LLMCallError(str(e) or type(e).__name__, kind=kind) from e

        latency_ms = int((time.time() - start_time) * 1000)
        usage: dict[str, Any] = {"latency_ms": latency_ms, "request_id": getattr(response, "id", "unknown")}
        if getattr(response, "usage", None):
            usage.update({
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.total_tokens,
            })

        Trace.event(f"{trace_kind}.response", {
            "model": response.model,
            "content_chars": len(content),
            "latency_ms": latency_ms,
            "payload_hash": payload_hash,
        })

        return {
            "content": content,
            "parsed": parsed,
            "model": response.model,
            "usage": usage,
        }

    async def call_json(
        self,
        *,
        model: str,
        input: str | list[dict[str, Any]],  # noqa: A002
        instructions: str | None = None,
        reasoning_effort: ReasoningEffort = "low",
        cache_key: str | None = None,
        timeout: float | None = None,
        max_output_tokens: int | None = None,
        trace_kind: str = "llm_call",
    ) -> dict:
        """Return the parsed JSON object directly (not wrapped in the result dict)."""
        result = await self.call(
            model=model,
            input=input,
            instructions=instructions,
            json_output=True,
            reasoning_effort=reasoning_effort,
            cache_key=cache_key,
            timeout=timeout,
            max_output_tokens=max_output_tokens,
            trace_kind=trace_kind,
        )
        return result["parsed"]

    async def close(self) -> None:
        if self.client:
            await self.client.close()
