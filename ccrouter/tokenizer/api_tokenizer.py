"""Remote token counting through an HTTP endpoint."""

import json
import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from ccrouter.tokenizer.base import Tokenizer, TokenizerConfig, message_text

logger = logging.getLogger(__name__)

REQUEST_FORMATS = ("standard", "openai", "anthropic", "custom")


class ApiTokenizer(Tokenizer):
    """POSTs the request to a counting API and reads a dot-path field."""

    type = "api"

    def __init__(
        self,
        config: TokenizerConfig,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.url or not config.api_key:
            raise ValueError("API tokenizer requires url and api_key")
        self.url = config.url
        self.api_key = config.api_key
        self.request_format = config.request_format or "standard"
        self.response_field = config.response_field or "token_count"
        self.headers = dict(config.headers)
        self.timeout = timeout
        self._client = client

        hostname = urlparse(config.url).hostname
        self._name = f"api-{hostname or config.url}"

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid API URL: {self.url}")

    def format_request_body(self, request: dict[str, Any]) -> dict[str, Any]:
        if self.request_format == "openai":
            return {
                # Placeholder; some counting APIs insist on a model field
                "model": "gpt-3.5-turbo",
                "messages": [
                    {"role": msg.get("role"), "content": message_text(msg)}
                    for msg in request.get("messages") or []
                ],
            }
        if self.request_format == "anthropic":
            return {
                "messages": request.get("messages") or [],
                "system": request.get("system"),
                "tools": request.get("tools"),
            }
        if self.request_format == "custom":
            return {"text": concatenated_text(request)}
        return request

    def extract_token_count(self, data: Any) -> int:
        value = data
        try:
            for part in self.response_field.split("."):
                if value is None:
                    raise ValueError(f"Field path '{self.response_field}' not found in response")
                value = value.get(part) if isinstance(value, dict) else None
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(
                    f"Expected number at field path '{self.response_field}', "
                    f"got {type(value).__name__}"
                )
        except ValueError as e:
            logger.error(
                f"Failed to extract token count from API response: {e}. Response: {json.dumps(data)}"
            )
            raise ValueError(f"Invalid response from API tokenizer: {e}") from e
        return int(value)

    async def count_tokens(self, request: dict[str, Any]) -> int:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            **self.headers,
        }
        body = self.format_request_body(request)

        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(self.url, json=body, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TimeoutError("API tokenizer request timed out") from e
        finally:
            if self._client is None:
                await client.aclose()

        if not response.is_success:
            raise RuntimeError(
                f"API tokenizer request failed: {response.status_code} {response.reason_phrase}"
            )
        return self.extract_token_count(response.json())


def concatenated_text(request: dict[str, Any]) -> str:
    parts = [message_text(msg) for msg in request.get("messages") or []]

    system = request.get("system")
    if isinstance(system, str):
        parts.append(system)
    elif isinstance(system, list):
        for item in system:
            if not isinstance(item, dict) or item.get("type") != "text":
                continue
            text = item.get("text")
            if isinstance(text, str):
                parts.append(text)
            elif isinstance(text, list):
                parts.extend(t for t in text if t)

    for tool in request.get("tools") or []:
        if tool.get("name"):
            parts.append(tool["name"])
        if tool.get("description"):
            parts.append(tool["description"])
        if tool.get("input_schema"):
            parts.append(json.dumps(tool["input_schema"], ensure_ascii=False))

    return " ".join(parts)
