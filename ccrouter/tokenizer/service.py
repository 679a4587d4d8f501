"""Tokenizer selection, caching and graceful fallback."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from ccrouter.tokenizer.api_tokenizer import ApiTokenizer
from ccrouter.tokenizer.base import Tokenizer, TokenizerConfig, TokenizerResult
from ccrouter.tokenizer.huggingface_tokenizer import HuggingFaceTokenizer
from ccrouter.tokenizer.tiktoken_tokenizer import DEFAULT_ENCODING, TiktokenTokenizer

if TYPE_CHECKING:
    from ccrouter.core.provider.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)

FALLBACK_KEY = "fallback"


def cache_key(config: TokenizerConfig) -> str:
    if config.type == "tiktoken":
        return f"tiktoken:{config.encoding or DEFAULT_ENCODING}"
    if config.type == "huggingface":
        return f"hf:{config.model}"
    if config.type == "api":
        return f"api:{config.url}"
    return f"unknown:{json.dumps(config.to_dict(), sort_keys=True)}"


class TokenizerService:
    """Builds tokenizers on demand and caches them by a derived key.

    Any failure while creating a tokenizer is logged and answered with the
    shared ``cl100k_base`` tiktoken instance, so callers never see
    tokenizer initialization errors.
    """

    def __init__(
        self,
        provider_registry: ProviderRegistry | None = None,
        *,
        cache_dir: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        fallback: Tokenizer | None = None,
    ) -> None:
        self.provider_registry = provider_registry
        self.cache_dir = cache_dir
        self.timeout = timeout
        self._client = client
        self._tokenizers: dict[str, Tokenizer] = {}
        self._lock = asyncio.Lock()
        self._fallback: Tokenizer | None = fallback
        if fallback is not None:
            self._tokenizers[FALLBACK_KEY] = fallback

    async def initialize(self) -> None:
        if self._fallback is not None:
            return
        fallback = TiktokenTokenizer(DEFAULT_ENCODING)
        try:
            await fallback.initialize()
        except Exception as e:
            logger.error(f"TokenizerService initialization error: {e}")
            raise
        self._fallback = fallback
        self._tokenizers[FALLBACK_KEY] = fallback
        logger.info("TokenizerService initialized successfully")

    @property
    def fallback(self) -> Tokenizer:
        if self._fallback is None:
            raise RuntimeError("TokenizerService is not initialized")
        return self._fallback

    def _build(self, config: TokenizerConfig) -> Tokenizer:
        if config.type == "tiktoken":
            return TiktokenTokenizer(config.encoding or DEFAULT_ENCODING)
        if config.type == "huggingface":
            if not config.model:
                raise ValueError("HuggingFace tokenizer requires a model id")
            return HuggingFaceTokenizer(
                config.model, cache_dir=self.cache_dir, timeout=self.timeout, client=self._client
            )
        if config.type == "api":
            return ApiTokenizer(config, timeout=self.timeout, client=self._client)
        raise ValueError(f"Unknown tokenizer type: {config.type}")

    async def get_tokenizer(self, config: TokenizerConfig | dict[str, Any]) -> Tokenizer:
        if isinstance(config, dict):
            config = TokenizerConfig.from_dict(config)
        key = cache_key(config)

        cached = self._tokenizers.get(key)
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._tokenizers.get(key)
            if cached is not None:
                return cached
            try:
                tokenizer = self._build(config)
                await tokenizer.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize {config.type} tokenizer: {e}", exc_info=True)
                await self.initialize()
                return self.fallback
            self._tokenizers[key] = tokenizer
            logger.info(f"Tokenizer initialized successfully: {config.type} ({key})")
            return tokenizer

    async def count_tokens(
        self,
        request: dict[str, Any],
        config: TokenizerConfig | dict[str, Any] | None = None,
    ) -> TokenizerResult:
        tokenizer = await self.get_tokenizer(config) if config else self.fallback
        token_count = await tokenizer.count_tokens(request)
        return TokenizerResult(token_count=token_count, tokenizer_name=tokenizer.name, cached=False)

    def get_tokenizer_config_for_model(
        self, provider_name: str, model_name: str
    ) -> TokenizerConfig | None:
        if self.provider_registry is None:
            return None
        provider = self.provider_registry.get(provider_name)
        if provider is None or not provider.tokenizer:
            return None
        models = provider.tokenizer.get("models") or {}
        spec = models.get(model_name) or provider.tokenizer.get("default")
        return TokenizerConfig.from_dict(spec) if spec else None

    def clear_cache(self) -> None:
        """Drop cached tokenizers except the shared fallback."""
        for key, tokenizer in list(self._tokenizers.items()):
            if key == FALLBACK_KEY:
                continue
            tokenizer.dispose()
            del self._tokenizers[key]

    def dispose(self) -> None:
        for tokenizer in self._tokenizers.values():
            try:
                tokenizer.dispose()
            except Exception as e:
                logger.error(f"Error disposing tokenizer: {e}")
        self._tokenizers.clear()
        self._fallback = None
