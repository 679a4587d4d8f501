import json

import httpx
import pytest

from ccrouter.core.provider.provider_config_loader import ProviderConfigLoader
from ccrouter.core.provider.provider_registry import ProviderRegistry
from ccrouter.core.provider_config import ProviderConfig
from ccrouter.transformers import TransformerRegistry, register_builtin_transformers
from ccrouter.transformers.anthropic import AnthropicTransformer
from ccrouter.transformers.base import (
    TransformResult,
    iter_body,
    merge_config,
    read_json,
    stream_response,
    unpack_result,
)
from ccrouter.transformers.cerebras import CerebrasTransformer
from ccrouter.transformers.forcereasoning import PROMPT, ForceReasoningTransformer
from ccrouter.transformers.maxtoken import MaxTokenTransformer
from ccrouter.transformers.openai_responses import (
    OpenAIResponsesTransformer,
    convert_chat_to_responses,
)
from tests.fixtures.mock_http import achunks, parse_sse

PROVIDER = ProviderConfig(name="p", base_url="https://p.test/v1", api_key="sk-p", models=["m"])


def _sse(*payloads):
    frames = [f"data: {json.dumps(p)}\n\n".encode() for p in payloads]
    return frames + [b"data: [DONE]\n\n"]


def _content_chunk(text):
    return {"id": "c1", "choices": [{"index": 0, "delta": {"content": text}}]}


@pytest.mark.unit
class TestBaseHelpers:
    def test_unpack_and_merge(self):
        assert unpack_result({"a": 1}) == ({"a": 1}, {})
        body, config = unpack_result(TransformResult(body={"b": 2}, config={"url": "u"}))
        assert body == {"b": 2}
        assert config == {"url": "u"}

        merged = merge_config({"headers": {"a": "1"}, "url": "x"}, {"headers": {"b": "2"}})
        assert merged == {"headers": {"a": "1", "b": "2"}, "url": "x"}

    @pytest.mark.asyncio
    async def test_iter_body_closes_wrapped_source(self):
        closed = []

        async def source():
            try:
                yield b"one"
                yield b"two"
            finally:
                closed.append(True)

        response = stream_response(source(), headers={"content-length": "6", "x-id": "1"})
        assert "content-length" not in response.headers
        assert response.headers["x-id"] == "1"

        body = iter_body(response)
        assert await body.__anext__() == b"one"
        await body.aclose()
        assert closed == [True]


@pytest.mark.unit
class TestRegistry:
    def test_builtin_registration(self):
        registry = register_builtin_transformers(TransformerRegistry())
        endpoints = {t.name: t.end_point for t in registry.get_transformers_with_endpoint()}
        assert endpoints == {
            "anthropic": "/v1/messages",
            "openai": "/v1/chat/completions",
            "openai-responses": "/v1/responses",
        }
        assert {t.name for t in registry.get_transformers_without_endpoint()} == {
            "forcereasoning",
            "cerebras",
            "maxtoken",
        }

    def test_create_with_options_builds_fresh_instance(self):
        registry = register_builtin_transformers(TransformerRegistry())
        shared = registry.create("maxtoken")
        bound = registry.create("maxtoken", {"max_tokens": 100})
        assert shared is registry.get("maxtoken")
        assert bound is not shared
        assert bound.max_tokens == 100
        assert registry.create("nope", {"x": 1}) is None

    def test_nameless_transformer_is_rejected(self):
        class Nameless(MaxTokenTransformer):
            name = ""

        with pytest.raises(ValueError):
            TransformerRegistry().register(Nameless)


@pytest.mark.unit
class TestProviderLoading:
    def test_resolves_provider_and_model_chains(self, caplog):
        loader = ProviderConfigLoader(register_builtin_transformers(TransformerRegistry()))
        provider = loader.build(
            {
                "name": "deepseek",
                "baseUrl": "https://api.deepseek.test/chat/completions",
                "apiKey": "sk-d",
                "models": ["deepseek-chat"],
                "transformer": {
                    "use": ["openai", ["maxtoken", {"max_tokens": 100}], "mystery"],
                    "deepseek-chat": {"use": ["forcereasoning"]},
                },
            }
        )

        assert [t.name for t in provider.transformer.use] == ["openai", "maxtoken"]
        assert provider.transformer.use[1].max_tokens == 100
        assert [t.name for t in provider.transformer.for_model("deepseek-chat")] == ["forcereasoning"]
        assert provider.transformer.for_model("other") == []
        assert "Unknown transformer 'mystery'" in caplog.text
        assert provider.to_dict()["transformer"]["use"][0] == "openai"

    def test_load_all_reports_failures(self):
        loader = ProviderConfigLoader(TransformerRegistry())
        providers, results = loader.load_all(
            [
                {"name": "ok", "api_base_url": "https://ok.test", "api_key": "k", "models": ["m"]},
                {"name": "broken", "api_base_url": "https://b.test", "models": ["m"]},
            ]
        )
        assert [p.name for p in providers] == ["ok"]
        assert [(r.name, r.status) for r in results] == [("ok", "success"), ("broken", "failed")]
        assert "API key is required" in results[1].message

    def test_registry_lookups_and_updates(self):
        registry = ProviderRegistry()
        registry.register(PROVIDER)

        assert registry.find("P") is PROVIDER
        assert registry.resolve_model_route("P", "M") == ("p", "m")
        assert registry.resolve_model_route("p", "unknown") is None

        updated = registry.update("p", {"models": ["m", "n"], "name": "ignored", "api_key": None})
        assert updated.models == ["m", "n"]
        assert updated.name == "p"
        assert updated.api_key == "sk-p"
        assert registry.update("missing", {}) is None
        assert registry.toggle("p", False)
        assert registry.get("p").enabled is False
        assert registry.delete("p")
        assert not registry.exists("p")


@pytest.mark.unit
class TestSimpleTransformers:
    @pytest.mark.asyncio
    async def test_maxtoken_caps_only_larger_values(self):
        transformer = MaxTokenTransformer({"max_tokens": 1000})
        assert (await transformer.transform_request_in({"max_tokens": 4000}, PROVIDER, None))[
            "max_tokens"
        ] == 1000
        assert (await transformer.transform_request_in({"max_tokens": 10}, PROVIDER, None))[
            "max_tokens"
        ] == 10
        assert (await transformer.transform_request_in({}, PROVIDER, None))["max_tokens"] == 1000
        unbound = MaxTokenTransformer()
        request = {"max_tokens": 4000}
        assert await unbound.transform_request_in(request, PROVIDER, None) is request

    @pytest.mark.asyncio
    async def test_cerebras_reasoning_toggle_and_auth_header(self):
        transformer = CerebrasTransformer()

        result = await transformer.transform_request_in({"reasoning": {"effort": "low"}}, PROVIDER, None)
        assert "reasoning" not in result.body
        assert result.config["headers"]["Authorization"] == "Bearer sk-p"

        result = await transformer.transform_request_in({"model": "m"}, PROVIDER, None)
        assert result.body == {"model": "m", "disable_reasoning": False}

    @pytest.mark.asyncio
    async def test_anthropic_auth_swaps_in_provider_key(self):
        result = await AnthropicTransformer().auth({"model": "m"}, PROVIDER, None)
        assert result.body == {"model": "m"}
        assert result.config["headers"] == {"x-api-key": "sk-p", "authorization": "Bearer sk-p"}

    @pytest.mark.asyncio
    async def test_anthropic_leaves_non_chat_bodies_alone(self):
        response = httpx.Response(400, json={"error": {"message": "bad"}})
        out = await AnthropicTransformer().transform_response_in(response, None)
        assert out.status_code == 400
        assert await read_json(out) == {"error": {"message": "bad"}}


@pytest.mark.unit
class TestForceReasoning:
    @pytest.mark.asyncio
    async def test_request_folds_thinking_and_prompts_last_user_turn(self):
        request = {
            "messages": [
                {"role": "user", "content": "q1"},
                {"role": "assistant", "content": "a1", "thinking": {"content": "t1"}},
                {"role": "user", "content": "q2"},
            ]
        }

        body = await ForceReasoningTransformer().transform_request_in(request, PROVIDER, None)

        assert body["messages"][1] == {
            "role": "assistant",
            "content": "<reasoning_content>t1</reasoning_content>\na1",
        }
        assert body["messages"][2]["content"] == [
            {"type": "text", "text": PROMPT},
            {"type": "text", "text": "q2"},
        ]
        # Input is not mutated
        assert request["messages"][1]["thinking"] == {"content": "t1"}

    @pytest.mark.asyncio
    async def test_tool_turn_gets_extra_user_prompt(self):
        request = {"messages": [{"role": "tool", "tool_call_id": "c", "content": "out"}]}
        body = await ForceReasoningTransformer().transform_request_in(request, PROVIDER, None)
        assert body["messages"][-1] == {"role": "user", "content": [{"type": "text", "text": PROMPT}]}

    @pytest.mark.asyncio
    async def test_json_response_is_split(self):
        response = httpx.Response(
            200,
            json={
                "choices": [
                    {
                        "message": {
                            "role": "assistant",
                            "content": "<reasoning_content>plan</reasoning_content>\n\nAnswer",
                        },
                        "finish_reason": "stop",
                    }
                ]
            },
        )

        data = await read_json(await ForceReasoningTransformer().transform_response_out(response, None))

        assert data["thinking"] == {"content": "plan"}
        assert data["choices"][0]["message"]["content"] == "Answer"

    @pytest.mark.asyncio
    async def test_stream_response_is_split(self):
        chunks = _sse(
            _content_chunk("<reasoning_content>pl"),
            _content_chunk("an</reasoning_content>Ans"),
            _content_chunk("wer"),
        )
        response = stream_response(achunks(chunks))

        out = await ForceReasoningTransformer().transform_response_out(response, None)
        text = b"".join([chunk async for chunk in iter_body(out)]).decode()

        events = [data for _, data in parse_sse(text)]
        assert events[-1] == "[DONE]"
        deltas = [e["choices"][0]["delta"] for e in events[:-1]]
        assert deltas[0] == {"thinking": {"content": "pl"}}
        assert deltas[1] == {"thinking": {"content": "an"}}
        assert "signature" in deltas[2]["thinking"]
        assert [d["content"] for d in deltas[3:]] == ["Ans", "wer"]


@pytest.mark.unit
class TestOpenAIResponses:
    def test_chat_request_conversion(self):
        body = convert_chat_to_responses(
            {
                "model": "gpt-5",
                "temperature": 0.2,
                "max_tokens": 100,
                "reasoning": {"effort": "high", "enabled": True},
                "messages": [
                    {"role": "system", "content": "Be brief."},
                    {"role": "user", "content": [{"type": "text", "text": "hi", "cache_control": {}}]},
                    {
                        "role": "assistant",
                        "content": "",
                        "tool_calls": [
                            {"id": "call_1", "type": "function", "function": {"name": "Edit", "arguments": "{}"}}
                        ],
                    },
                    {"role": "tool", "tool_call_id": "call_1", "content": "ok"},
                ],
                "tools": [
                    {"type": "function", "function": {"name": "Edit", "parameters": {"type": "object"}}},
                    {"type": "function", "function": {"name": "web_search", "parameters": {}}},
                ],
            }
        )

        assert "temperature" not in body
        assert "max_tokens" not in body
        assert body["instructions"] == "Be brief."
        assert body["reasoning"] == {"effort": "high", "summary": "detailed"}
        assert body["input"] == [
            {"role": "user", "content": [{"type": "input_text", "text": "hi"}]},
            {"type": "function_call", "arguments": "{}", "name": "Edit", "call_id": "call_1"},
            {"type": "function_call_output", "call_id": "call_1", "output": "ok"},
        ]
        assert body["tools"][0]["strict"] is True
        assert body["tools"][0]["parameters"]["required"] == [
            "file_path",
            "old_string",
            "new_string",
            "replace_all",
        ]
        assert body["tools"][-1] == {"type": "web_search"}
        assert body["parallel_tool_calls"] is False

    @pytest.mark.asyncio
    async def test_non_stream_response_becomes_chat_completion(self, responses_function_call_payload):
        response = httpx.Response(200, json=responses_function_call_payload)
        out = await OpenAIResponsesTransformer().transform_response_out(response, None)
        data = await read_json(out)
        assert data["object"] == "chat.completion"
        assert data["choices"][0]["finish_reason"] == "tool_calls"
