"""Unit tests for chat request validation and parameter resolution."""

import pytest

from chet.api.schemas import ChatMessage, ChatRequest
from chet.core.config import SYSTEM_PROMPT
from chet.core.dispatch import (
    InferenceParams,
    InvalidShapeError,
    UnknownModelError,
    resolve_params,
    validate_chat_request,
    with_system_prompt,
)


def _request(**overrides) -> ChatRequest:
    body = {"messages": [{"role": "user", "content": "hi"}], "model": "llama-3.3-70b"}
    body.update(overrides)
    return ChatRequest.model_validate(body)


class TestValidateChatRequest:

    def test_valid(self, models):
        request = validate_chat_request(
            {"model": "qwen2.5-coder-32b", "messages": [{"role": "user", "content": "hi"}]}, models)
        assert request.model == "qwen2.5-coder-32b"
        assert request.messages[0].content == "hi"

    def test_model_defaults(self, models):
        request = validate_chat_request({"messages": []}, models)
        assert request.model == "llama-3.3-70b"

    def test_unknown_model(self, models):
        with pytest.raises(UnknownModelError) as exc_info:
            validate_chat_request({"model": "unknown-model-xyz", "messages": []}, models)
        assert "unknown-model-xyz" in str(exc_info.value)
        assert exc_info.value.field == "model"

    @pytest.mark.parametrize("messages", [None, "hi", {"role": "user"}, 3])
    def test_messages_not_a_list(self, models, messages):
        body = {"model": "llama-3.3-70b"}
        if messages is not None:
            body["messages"] = messages
        with pytest.raises(InvalidShapeError) as exc_info:
            validate_chat_request(body, models)
        assert exc_info.value.field == "messages"

    def test_invalid_role(self, models):
        with pytest.raises(InvalidShapeError) as exc_info:
            validate_chat_request({"messages": [{"role": "wizard", "content": "x"}]}, models)
        assert exc_info.value.field == "messages"

    def test_wrong_parameter_type(self, models):
        with pytest.raises(InvalidShapeError) as exc_info:
            validate_chat_request({"messages": [], "maxTokens": "lots"}, models)
        assert exc_info.value.field == "maxTokens"

    def test_camel_case_parameters(self, models):
        request = validate_chat_request(
            {"messages": [], "maxTokens": 100, "topP": 0.5, "useJsonMode": True}, models)
        assert request.max_tokens == 100
        assert request.top_p == 0.5
        assert request.use_json_mode is True


class TestWithSystemPrompt:

    def test_prepended_once(self):
        messages = [ChatMessage(role="user", content="a"), ChatMessage(role="assistant", content="b")]
        result = with_system_prompt(messages)
        assert [m.role for m in result] == ["system", "user", "assistant"]
        assert result[0].content == SYSTEM_PROMPT
        assert [m.content for m in result[1:]] == ["a", "b"]

    def test_existing_system_message_kept(self):
        messages = [ChatMessage(role="user", content="a"), ChatMessage(role="system", content="custom")]
        result = with_system_prompt(messages)
        assert result == messages
        assert sum(1 for m in result if m.role == "system") == 1

    def test_input_not_mutated(self):
        messages = [ChatMessage(role="user", content="a")]
        with_system_prompt(messages)
        assert len(messages) == 1


class TestResolveParams:

    def test_defaults_from_model(self, models):
        params = resolve_params(_request(), models["llama-3.3-70b"])
        assert params.max_tokens == 1024
        assert params.temperature == 0.6
        assert params.top_p == 0.9
        assert params.top_k == 40
        assert params.seed is None
        assert params.repetition_penalty is None

    def test_system_prompt_first(self, models):
        params = resolve_params(_request(), models["llama-3.3-70b"])
        assert params.messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert params.messages[1] == {"role": "user", "content": "hi"}

    def test_clamped_to_maximum(self, models):
        params = resolve_params(
            _request(maxTokens=100000, temperature=9, topP=3, topK=500, presencePenalty=7),
            models["llama-3.3-70b"])
        assert params.max_tokens == 4096
        assert params.temperature == 5
        assert params.top_p == 2
        assert params.top_k == 50
        assert params.presence_penalty == 2

    def test_clamped_to_minimum(self, models):
        params = resolve_params(
            _request(maxTokens=0, temperature=-1, topP=0, topK=0, seed=0, frequencyPenalty=-5),
            models["deepseek-coder-6.7b"])
        assert params.max_tokens == 1
        assert params.temperature == 0
        assert params.top_p == 0.001
        assert params.top_k == 1
        assert params.seed == 1
        assert params.frequency_penalty == -2

    def test_boundaries_pass_through(self, models):
        params = resolve_params(
            _request(maxTokens=4096, temperature=0, topP=2, topK=1, seed=9_999_999_999),
            models["llama-3.3-70b"])
        assert params.max_tokens == 4096
        assert params.temperature == 0
        assert params.top_p == 2
        assert params.top_k == 1
        assert params.seed == 9_999_999_999

    def test_in_range_values_unchanged(self, models):
        params = resolve_params(_request(temperature=1.3, repetitionPenalty=1.1), models["llama-3.3-70b"])
        assert params.temperature == 1.3
        assert params.repetition_penalty == 1.1

    def test_json_mode(self, models):
        params = resolve_params(_request(useJsonMode=True), models["hermes-2-pro-7b"])
        assert params.response_format == {"type": "json_object"}

    def test_json_mode_custom_format(self, models):
        fmt = {"type": "json_schema", "json_schema": {"type": "object"}}
        params = resolve_params(_request(useJsonMode=True, responseFormat=fmt), models["hermes-2-pro-7b"])
        assert params.response_format == fmt

    def test_json_mode_off(self, models):
        params = resolve_params(_request(responseFormat={"type": "json_object"}), models["hermes-2-pro-7b"])
        assert params.response_format is None

    def test_tools_forwarded(self, models):
        tools = [{"type": "function", "function": {"name": "get_weather"}}]
        params = resolve_params(_request(tools=tools), models["hermes-2-pro-7b"])
        assert params.tools == tools

    def test_empty_tools_dropped(self, models):
        params = resolve_params(_request(tools=[]), models["hermes-2-pro-7b"])
        assert params.tools is None


class TestInferenceParams:

    def test_payload_omits_none(self):
        params = InferenceParams(messages=[], max_tokens=10, temperature=0.5)
        assert params.to_payload() == {"messages": [], "max_tokens": 10, "temperature": 0.5}

    def test_metadata_excludes_messages(self):
        params = InferenceParams(messages=[{"role": "user", "content": "x"}], max_tokens=10, seed=7)
        assert params.metadata() == {"max_tokens": 10, "seed": 7}
