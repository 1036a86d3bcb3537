"""
Tests for model output parsing helpers.
"""
from placement_api.utils.parsers import (
    ResponseShape,
    classify_response,
    parse_json_and_reasoning,
    parse_json_safe,
    parse_provider_response,
    strip_code_fence,
)


class TestParseJsonSafe:

    def test_plain_object(self):
        assert parse_json_safe('{"questions": [1, 2]}') == {"questions": [1, 2]}

    def test_fenced_object(self):
        raw = 'Here you go:\n```json\n{"topic": "Algebra"}\n```\nGood luck!'
        assert parse_json_safe(raw) == {"topic": "Algebra"}

    def test_object_with_surrounding_notes(self):
        raw = 'Sure! {"approved": true, "message": "Approved"} Let me know.'
        assert parse_json_safe(raw) == {"approved": True, "message": "Approved"}

    def test_zero_width_characters_are_removed(self):
        assert parse_json_safe('\ufeff{"a": 1}\u200b') == {"a": 1}

    def test_invalid_text_returns_none(self):
        assert parse_json_safe("the answer is correct") is None
        assert parse_json_safe("{not json}") is None

    def test_empty_input_returns_none(self):
        assert parse_json_safe(None) is None
        assert parse_json_safe("") is None
        assert parse_json_safe("   ") is None

    def test_non_object_json_returns_none(self):
        assert parse_json_safe("[1, 2, 3]") is None


class TestParseJsonAndReasoning:

    def test_splits_json_and_trailing_notes(self):
        parsed, notes = parse_json_and_reasoning('{"score": 3, "detail": {"x": 1}} Notes with {braces}')
        assert parsed == {"score": 3, "detail": {"x": 1}}
        assert notes == "Notes with {braces}"

    def test_no_json(self):
        parsed, notes = parse_json_and_reasoning("just words")
        assert parsed is None
        assert notes == "just words"

    def test_unbalanced_braces(self):
        parsed, _ = parse_json_and_reasoning('{"a": 1')
        assert parsed is None


class TestStripCodeFence:

    def test_without_fence_returns_text(self):
        assert strip_code_fence("hello") == "hello"

    def test_with_plain_fence(self):
        assert strip_code_fence("```\nbody\n```").strip() == "body"


class TestProviderResponses:

    def test_candidates_shape(self):
        payload = {
            "candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}],
            "usage_metadata": {
                "prompt_token_count": 120,
                "candidates_token_count": 30,
                "cached_content_token_count": 100,
            },
            "response_id": "resp-1",
        }
        parsed = parse_provider_response(payload)

        assert parsed.shape is ResponseShape.CANDIDATES
        assert parsed.text == "Hello world"
        assert parsed.tokens_input == 120
        assert parsed.tokens_output == 30
        assert parsed.cached is True
        assert parsed.request_id == "resp-1"

    def test_candidates_without_cache_hit(self):
        payload = {
            "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
            "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 2},
        }
        parsed = parse_provider_response(payload)

        assert parsed.tokens_input == 5
        assert parsed.tokens_output == 2
        assert parsed.cached is False

    def test_chat_choices_shape(self):
        payload = {
            "id": "chatcmpl-1",
            "choices": [{"message": {"role": "assistant", "content": "Plan text"}}],
            "usage": {
                "prompt_tokens": 40,
                "completion_tokens": 10,
                "prompt_tokens_details": {"cached_tokens": 32},
            },
        }
        parsed = parse_provider_response(payload)

        assert parsed.shape is ResponseShape.CHAT_CHOICES
        assert parsed.text == "Plan text"
        assert parsed.tokens_input == 40
        assert parsed.tokens_output == 10
        assert parsed.cached is True
        assert parsed.request_id == "chatcmpl-1"

    def test_chat_choices_with_content_parts(self):
        payload = {"choices": [{"message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}}]}
        assert parse_provider_response(payload).text == "a\nb"

    def test_unknown_shape(self):
        assert classify_response({"result": "?"}) is ResponseShape.UNKNOWN
        assert classify_response("text") is ResponseShape.UNKNOWN

        parsed = parse_provider_response({"result": "?"})
        assert parsed.text == ""
        assert parsed.tokens_input == 0

    def test_candidate_content_as_plain_string(self):
        parsed = parse_provider_response({"candidates": [{"content": "plain text"}], "usage_metadata": "x"})

        assert parsed.text == "plain text"
        assert parsed.tokens_input == 0
        assert parsed.cached is False

    def test_malformed_candidate_fields_are_ignored(self):
        payload = {
            "candidates": [{"content": ["not", "a", "dict"]}, "stray"],
            "usage_metadata": [1, 2],
            "response_id": ["resp"],
        }
        parsed = parse_provider_response(payload)

        assert parsed.shape is ResponseShape.CANDIDATES
        assert parsed.text == ""
        assert parsed.tokens_output == 0
        assert parsed.request_id is None

    def test_malformed_chat_usage_is_ignored(self):
        payload = {
            "id": 7,
            "choices": [{"message": "Plan text"}],
            "usage": {"prompt_tokens": "12", "prompt_tokens_details": "cached"},
        }
        parsed = parse_provider_response(payload)

        assert parsed.text == "Plan text"
        assert parsed.tokens_input == 12
        assert parsed.cached is False
        assert parsed.request_id == "7"

    def test_chat_usage_as_list(self):
        parsed = parse_provider_response({"choices": [{"text": "ok"}], "usage": ["prompt_tokens", 3]})

        assert parsed.text == "ok"
        assert parsed.tokens_input == 0

    def test_empty_candidate_list(self):
        parsed = parse_provider_response({"candidates": []})

        assert parsed.shape is ResponseShape.CANDIDATES
        assert parsed.text == ""
