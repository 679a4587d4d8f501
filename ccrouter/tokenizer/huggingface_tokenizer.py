"""HuggingFace ``tokenizer.json`` backend with an on-disk cache."""

import asyncio
import json
import logging
import os
import re
from typing import Any

import httpx
from tokenizers import Tokenizer as HFTokenizer

from ccrouter.tokenizer.base import Tokenizer, iter_request_texts

logger = logging.getLogger(__name__)

HF_RESOLVE_URL = "https://huggingface.co/{model_id}/resolve/main/{filename}"


def safe_model_name(model_id: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", model_id.replace("/", "_"))


class HuggingFaceTokenizer(Tokenizer):
    type = "huggingface"

    def __init__(
        self,
        model_id: str,
        cache_dir: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model_id = model_id
        self.cache_dir = cache_dir
        self.timeout = timeout
        self._client = client
        self._tokenizer: HFTokenizer | None = None

    @property
    def name(self) -> str:
        return f"huggingface-{self.model_id.split('/')[-1]}"

    @property
    def model_dir(self) -> str:
        return os.path.join(self.cache_dir, safe_model_name(self.model_id))

    @property
    def tokenizer_json_path(self) -> str:
        return os.path.join(self.model_dir, "tokenizer.json")

    @property
    def tokenizer_config_path(self) -> str:
        return os.path.join(self.model_dir, "tokenizer_config.json")

    def _load_from_cache(self) -> str | None:
        if not (
            os.path.exists(self.tokenizer_json_path) and os.path.exists(self.tokenizer_config_path)
        ):
            return None
        try:
            with open(self.tokenizer_json_path, encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            logger.warning(f"Failed to load tokenizer from cache: {e}")
            return None

    async def _download(self) -> str:
        logger.info(f"Downloading tokenizer files for {self.model_id}")
        json_url = HF_RESOLVE_URL.format(model_id=self.model_id, filename="tokenizer.json")
        config_url = HF_RESOLVE_URL.format(model_id=self.model_id, filename="tokenizer_config.json")

        client = self._client or httpx.AsyncClient()
        try:
            json_res, config_res = await asyncio.gather(
                client.get(json_url, timeout=self.timeout, follow_redirects=True),
                client.get(config_url, timeout=self.timeout, follow_redirects=True),
            )
        finally:
            if self._client is None:
                await client.aclose()

        if not json_res.is_success:
            raise RuntimeError(
                f"Failed to fetch tokenizer.json: {json_res.status_code} {json_res.reason_phrase}"
            )
        tokenizer_json = json_res.json()
        tokenizer_config: dict[str, Any] = config_res.json() if config_res.is_success else {}

        os.makedirs(self.model_dir, exist_ok=True)
        serialized = json.dumps(tokenizer_json, indent=2)
        with open(self.tokenizer_json_path, "w", encoding="utf-8") as f:
            f.write(serialized)
        with open(self.tokenizer_config_path, "w", encoding="utf-8") as f:
            json.dump(tokenizer_config, f, indent=2)
        return serialized

    async def initialize(self) -> None:
        if self._tokenizer is not None:
            return
        logger.info(f"Initializing HuggingFace tokenizer: {self.model_id}")
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            raw = self._load_from_cache() or await self._download()
            self._tokenizer = HFTokenizer.from_str(raw)
        except Exception as e:
            logger.error(f"Failed to initialize tokenizer: {e}")
            raise RuntimeError(
                f"Failed to initialize HuggingFace tokenizer for {self.model_id}: {e}"
            ) from e
        logger.info(f"Tokenizer initialized: {self.name}")

    @property
    def is_initialized(self) -> bool:
        return self._tokenizer is not None

    @property
    def supports_encode(self) -> bool:
        return self._tokenizer is not None

    def encode_text(self, text: str) -> list[int]:
        if self._tokenizer is None:
            raise RuntimeError("Tokenizer not initialized")
        return self._tokenizer.encode(text).ids

    async def count_tokens(self, request: dict[str, Any]) -> int:
        if self._tokenizer is None:
            raise RuntimeError("Tokenizer not initialized")
        text = " ".join(iter_request_texts(request))
        return len(self._tokenizer.encode(text).ids)

    def dispose(self) -> None:
        self._tokenizer = None
