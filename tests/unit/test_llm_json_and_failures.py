import asyncio

import pytest

from provenance_core.llm.errors import LLMCallError
from provenance_core.llm.failures import LLMFailureKind, classify_llm_failure, failure_kind_to_trace_data
from provenance_core.llm.json_extract import extract_json_object


@pytest.mark.unit
class TestExtractJsonObject:

    def test_direct_json(self):
        assert extract_json_object('{"claims": []}') == {"claims": []}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"claims": [{"claim_text": "x"}]}\n```\nThanks'
        assert extract_json_object(text) == {"claims": [{"claim_text": "x"}]}

    def test_balanced_object_in_prose(self):
        text = 'Sure. {"a": {"b": "has } brace"}} trailing words'
        assert extract_json_object(text) == {"a": {"b": "has } brace"}}

    def test_skips_unparseable_candidates(self):
        text = "{not json} then {\"ok\": true}"
        assert extract_json_object(text) == {"ok": True}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2, 3]"])
    def test_invalid_raises_invalid_json(self, text):
        with pytest.raises(LLMCallError) as exc:
            extract_json_object(text)
        assert exc.value.kind == LLMFailureKind.INVALID_JSON


@pytest.mark.unit
class TestClassifyFailure:

    def test_keeps_existing_kind(self):
        err = LLMCallError("whatever", kind=LLMFailureKind.SCHEMA_VALIDATION_FAILED)
        assert classify_llm_failure(err) == LLMFailureKind.SCHEMA_VALIDATION_FAILED

    def test_asyncio_timeout_with_empty_message(self):
        assert classify_llm_failure(asyncio.TimeoutError()) == LLMFailureKind.TIMEOUT

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Request timed out after 60s", LLMFailureKind.TIMEOUT),
            ("Rate limit reached for gpt-5-mini", LLMFailureKind.PROVIDER_ERROR),
            ("502 Bad Gateway", LLMFailureKind.PROVIDER_ERROR),
            ("Expecting value: line 1 column 1", LLMFailureKind.INVALID_JSON),
            ("missing required field claims", LLMFailureKind.SCHEMA_VALIDATION_FAILED),
            ("Connection refused", LLMFailureKind.CONNECTION_ERROR),
            ("something odd", LLMFailureKind.UNKNOWN),
        ],
    )
    def test_keyword_classification(self, message, expected):
        assert classify_llm_failure(RuntimeError(message)) == expected

    def test_trace_data_is_bounded(self):
        data = failure_kind_to_trace_data(LLMFailureKind.UNKNOWN, RuntimeError("x" * 500))
        assert data["failure_kind"] == "unknown"
        assert data["error_type"] == "RuntimeError"
        assert len(data["error_message"]) == 200
