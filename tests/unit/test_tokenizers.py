import json

import httpx
import pytest
import respx
from tokenizers import Tokenizer as HFTokenizer
from tokenizers import models, pre_tokenizers

from ccrouter.core.provider.provider_registry import ProviderRegistry
from ccrouter.core.provider_config import ProviderConfig
from ccrouter.tokenizer.api_tokenizer import ApiTokenizer, concatenated_text
from ccrouter.tokenizer.base import TokenizerConfig, iter_request_texts, message_text
from ccrouter.tokenizer.huggingface_tokenizer import (
    HF_RESOLVE_URL,
    HuggingFaceTokenizer,
    safe_model_name,
)
from ccrouter.tokenizer.service import TokenizerService, cache_key
from ccrouter.tokenizer.tiktoken_tokenizer import TiktokenTokenizer
from tests.fixtures.services import WordTokenizer

COUNT_URL = "https://count.test/v1/tokens"

REQUEST = {
    "messages": [
        {"role": "user", "content": "hello world"},
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "calling tool"},
                {"type": "tool_use", "id": "t1", "name": "lookup", "input": {"q": "x"}},
            ],
        },
        {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "result text"}],
        },
    ],
    "system": [{"type": "text", "text": "be brief"}],
    "tools": [
        {"name": "lookup", "description": "Look up", "input_schema": {"type": "object"}},
        {"name": "bare"},
    ],
}


def _word_level_json() -> str:
    vocab = {"[UNK]": 0, "hello": 1, "world": 2}
    tokenizer = HFTokenizer(models.WordLevel(vocab, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = pre_tokenizers.Whitespace()
    return tokenizer.to_str()


@pytest.mark.unit
class TestRequestTexts:
    def test_collects_every_countable_fragment(self):
        assert list(iter_request_texts(REQUEST)) == [
            "hello world",
            "calling tool",
            '{"q": "x"}',
            "result text",
            "be brief",
            "lookupLook up",
            '{"type": "object"}',
        ]

    def test_message_text_and_concatenation(self):
        assert message_text(REQUEST["messages"][1]) == 'calling tool {"q": "x"}'
        text = concatenated_text({"messages": [{"content": "a"}], "system": "sys", "tools": [{"name": "t"}]})
        assert text == "a sys t"


@pytest.mark.unit
class TestTiktokenTokenizer:
    @pytest.mark.asyncio
    async def test_counts_are_deterministic(self):
        tokenizer = TiktokenTokenizer()
        try:
            await tokenizer.initialize()
        except RuntimeError:
            pytest.skip("cl100k_base encoding not available offline")

        first = await tokenizer.count_tokens(REQUEST)
        second = await tokenizer.count_tokens(REQUEST)

        assert first == second > 0
        assert tokenizer.name == "tiktoken-cl100k_base"
        assert tokenizer.encode_text("<|endoftext|>")

    @pytest.mark.asyncio
    async def test_uninitialized_encoding_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            await TiktokenTokenizer().count_tokens(REQUEST)


@pytest.mark.unit
class TestHuggingFaceTokenizer:
    @pytest.mark.asyncio
    async def test_loads_from_disk_cache(self, tmp_path):
        tokenizer = HuggingFaceTokenizer("org/Model.v1", cache_dir=str(tmp_path))
        model_dir = tmp_path / safe_model_name("org/Model.v1")
        model_dir.mkdir()
        (model_dir / "tokenizer.json").write_text(_word_level_json())
        (model_dir / "tokenizer_config.json").write_text("{}")

        await tokenizer.initialize()

        assert safe_model_name("org/Model.v1") == "org_Model_v1"
        assert tokenizer.name == "huggingface-Model.v1"
        assert await tokenizer.count_tokens({"messages": [{"content": "hello world again"}]}) == 3

    @pytest.mark.asyncio
    async def test_downloads_and_caches_tokenizer_files(self, tmp_path):
        model_id = "org/tiny"
        with respx.mock:
            respx.get(HF_RESOLVE_URL.format(model_id=model_id, filename="tokenizer.json")).mock(
                return_value=httpx.Response(200, json=json.loads(_word_level_json()))
            )
            respx.get(
                HF_RESOLVE_URL.format(model_id=model_id, filename="tokenizer_config.json")
            ).mock(return_value=httpx.Response(404))

            tokenizer = HuggingFaceTokenizer(model_id, cache_dir=str(tmp_path))
            await tokenizer.initialize()

        assert (tmp_path / "org_tiny" / "tokenizer.json").exists()
        assert json.loads((tmp_path / "org_tiny" / "tokenizer_config.json").read_text()) == {}
        assert tokenizer.encode_text("hello world") == [1, 2]

    @pytest.mark.asyncio
    async def test_shared_client_follows_cdn_redirects(self, tmp_path):
        model_id = "org/tiny"
        cdn = "https://cdn-lfs.hf.test/blobs"
        with respx.mock:
            for filename in ("tokenizer.json", "tokenizer_config.json"):
                respx.get(HF_RESOLVE_URL.format(model_id=model_id, filename=filename)).mock(
                    return_value=httpx.Response(302, headers={"location": f"{cdn}/{filename}"})
                )
            respx.get(f"{cdn}/tokenizer.json").mock(
                return_value=httpx.Response(200, json=json.loads(_word_level_json()))
            )
            respx.get(f"{cdn}/tokenizer_config.json").mock(
                return_value=httpx.Response(200, json={"model_max_length": 512})
            )

            async with httpx.AsyncClient(timeout=30) as client:
                tokenizer = HuggingFaceTokenizer(model_id, cache_dir=str(tmp_path), client=client)
                await tokenizer.initialize()

        assert tokenizer.encode_text("hello world") == [1, 2]
        config = json.loads((tmp_path / "org_tiny" / "tokenizer_config.json").read_text())
        assert config == {"model_max_length": 512}

    @pytest.mark.asyncio
    async def test_unreachable_hub_falls_back_to_shared_tokenizer(self, tmp_path, caplog):
        fallback = WordTokenizer()
        service = TokenizerService(cache_dir=str(tmp_path), fallback=fallback)
        with respx.mock:
            respx.get(url__startswith="https://huggingface.co/").mock(
                return_value=httpx.Response(503)
            )
            tokenizer = await service.get_tokenizer({"type": "huggingface", "model": "org/missing"})

        assert tokenizer is fallback
        assert "Failed to initialize huggingface tokenizer" in caplog.text


@pytest.mark.unit
class TestApiTokenizer:
    @pytest.mark.asyncio
    async def test_openai_format_and_nested_response_field(self):
        config = TokenizerConfig(
            type="api",
            url=COUNT_URL,
            api_key="key-1",
            headers={"X-Team": "t"},
            request_format="openai",
            response_field="usage.input_tokens",
        )
        tokenizer = ApiTokenizer(config)
        await tokenizer.initialize()

        with respx.mock:
            route = respx.post(COUNT_URL).mock(
                return_value=httpx.Response(200, json={"usage": {"input_tokens": 42}})
            )
            count = await tokenizer.count_tokens(REQUEST)

        assert count == 42
        assert tokenizer.name == "api-count.test"
        sent = route.calls.last.request
        assert sent.headers["authorization"] == "Bearer key-1"
        assert sent.headers["x-team"] == "t"
        body = json.loads(sent.content)
        assert body["model"] == "gpt-3.5-turbo"
        assert body["messages"][0] == {"role": "user", "content": "hello world"}

    @pytest.mark.parametrize(
        "request_format,expected_keys",
        [
            ("anthropic", {"messages", "system", "tools"}),
            ("custom", {"text"}),
            ("standard", set(REQUEST)),
        ],
    )
    def test_request_formats(self, request_format, expected_keys):
        config = TokenizerConfig(type="api", url=COUNT_URL, api_key="k", request_format=request_format)
        assert set(ApiTokenizer(config).format_request_body(REQUEST)) == expected_keys

    @pytest.mark.parametrize("payload", [{"token_count": "12"}, {"other": 1}, {"token_count": True}])
    def test_invalid_response_field(self, payload):
        tokenizer = ApiTokenizer(TokenizerConfig(type="api", url=COUNT_URL, api_key="k"))
        with pytest.raises(ValueError, match="Invalid response from API tokenizer"):
            tokenizer.extract_token_count(payload)

    @pytest.mark.asyncio
    async def test_http_failure_raises(self):
        tokenizer = ApiTokenizer(TokenizerConfig(type="api", url=COUNT_URL, api_key="k"))
        with respx.mock:
            respx.post(COUNT_URL).mock(return_value=httpx.Response(500))
            with pytest.raises(RuntimeError, match="API tokenizer request failed: 500"):
                await tokenizer.count_tokens(REQUEST)

    def test_requires_url_and_key(self):
        with pytest.raises(ValueError):
            ApiTokenizer(TokenizerConfig(type="api", url=COUNT_URL))


@pytest.mark.unit
class TestTokenizerService:
    def test_cache_keys(self):
        assert cache_key(TokenizerConfig(type="tiktoken")) == "tiktoken:cl100k_base"
        assert cache_key(TokenizerConfig(type="huggingface", model="a/b")) == "hf:a/b"
        assert cache_key(TokenizerConfig(type="api", url=COUNT_URL)) == f"api:{COUNT_URL}"
        assert cache_key(TokenizerConfig(type="x")) == 'unknown:{"type": "x"}'

    @pytest.mark.asyncio
    async def test_tokenizers_are_cached_by_key(self, tmp_path):
        service = TokenizerService(cache_dir=str(tmp_path), fallback=WordTokenizer())
        spec = {"type": "api", "url": COUNT_URL, "api_key": "k"}

        first = await service.get_tokenizer(spec)
        second = await service.get_tokenizer(TokenizerConfig.from_dict(spec))

        assert first is second
        assert isinstance(first, ApiTokenizer)
        service.clear_cache()
        assert await service.get_tokenizer(spec) is not first

    @pytest.mark.asyncio
    async def test_unknown_type_uses_fallback(self, tmp_path):
        fallback = WordTokenizer()
        service = TokenizerService(cache_dir=str(tmp_path), fallback=fallback)
        assert await service.get_tokenizer({"type": "sentencepiece"}) is fallback

        result = await service.count_tokens({"messages": [{"content": "one two three"}]})
        assert result.token_count == 3
        assert result.tokenizer_name == "words"

    def test_config_for_model_prefers_model_entry(self, tmp_path):
        registry = ProviderRegistry()
        registry.register(
            ProviderConfig(
                name="p",
                base_url="https://p.test",
                api_key="k",
                models=["m1", "m2"],
                tokenizer={
                    "default": {"type": "tiktoken", "encoding": "o200k_base"},
                    "models": {"m1": {"type": "huggingface", "model": "org/m1"}},
                },
            )
        )
        service = TokenizerService(registry, cache_dir=str(tmp_path))

        assert service.get_tokenizer_config_for_model("p", "m1").model == "org/m1"
        assert service.get_tokenizer_config_for_model("p", "m2").encoding == "o200k_base"
        assert service.get_tokenizer_config_for_model("missing", "m1") is None

    def test_fallback_requires_initialization(self, tmp_path):
        with pytest.raises(RuntimeError):
            TokenizerService(cache_dir=str(tmp_path)).fallback
