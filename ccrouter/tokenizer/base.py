"""Tokenizer backend contract and shared request-text extraction."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ccrouter.core.constants import Constants


@dataclass(frozen=True)
class TokenizerConfig:
    """Declarative tokenizer selection for one provider or model."""

    type: str
    encoding: str | None = None
    model: str | None = None
    url: str | None = None
    api_key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    request_format: str | None = None
    response_field: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenizerConfig:
        return cls(
            type=str(data.get("type") or ""),
            encoding=data.get("encoding"),
            model=data.get("model"),
            url=data.get("url"),
            api_key=data.get("api_key") or data.get("apiKey"),
            headers=dict(data.get("headers") or {}),
            request_format=data.get("request_format") or data.get("requestFormat"),
            response_field=data.get("response_field") or data.get("responseField"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for key in ("encoding", "model", "url", "api_key", "request_format", "response_field"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.headers:
            data["headers"] = dict(self.headers)
        return data


@dataclass(frozen=True)
class TokenizerResult:
    token_count: int
    tokenizer_name: str
    cached: bool = False


class Tokenizer(ABC):
    """A token-counting backend.

    ``initialize`` must be idempotent. Backends that can produce token ids
    override ``encode_text`` and report ``supports_encode``.
    """

    type: str = ""

    @property
    @abstractmethod
    def name(self) -> str: ...

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def count_tokens(self, request: dict[str, Any]) -> int: ...

    @property
    def is_initialized(self) -> bool:
        return True

    @property
    def supports_encode(self) -> bool:
        return False

    def encode_text(self, text: str) -> list[int]:
        raise NotImplementedError(f"{self.name} cannot encode text")

    def dispose(self) -> None:
        return None


def _tool_result_text(part: dict[str, Any]) -> str:
    content = part.get("content")
    return content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)


def iter_request_texts(request: dict[str, Any]) -> Iterator[str]:
    """Yield every countable text fragment of an Anthropic-shaped request.

    Covers message text, serialized ``tool_use`` inputs and ``tool_result``
    contents, the system prompt (string or text blocks) and tool
    definitions. Tools contribute ``name + description`` only when a
    description is present, plus the serialized ``input_schema``.
    """
    for message in request.get("messages") or []:
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            yield content
        elif isinstance(content, list):
            for part in content:
                if not isinstance(part, dict):
                    continue
                part_type = part.get("type")
                if part_type == Constants.CONTENT_TEXT and part.get("text"):
                    yield part["text"]
                elif part_type == Constants.CONTENT_TOOL_USE and part.get("input") is not None:
                    yield json.dumps(part["input"], ensure_ascii=False)
                elif part_type == Constants.CONTENT_TOOL_RESULT:
                    yield _tool_result_text(part)

    system = request.get("system")
    if isinstance(system, str):
        yield system
    elif isinstance(system, list):
        for item in system:
            if not isinstance(item, dict) or item.get("type") != Constants.CONTENT_TEXT:
                continue
            text = item.get("text")
            if isinstance(text, str):
                yield text
            elif isinstance(text, list):
                for text_part in text:
                    if text_part:
                        yield text_part

    for tool in request.get("tools") or []:
        if not isinstance(tool, dict):
            continue
        if tool.get("description"):
            yield f"{tool.get('name') or ''}{tool['description']}"
        if tool.get("input_schema"):
            yield json.dumps(tool["input_schema"], ensure_ascii=False)


def message_text(message: dict[str, Any]) -> str:
    """Flatten one message into a space-joined string."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    texts: list[str] = []
    for part in content:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == Constants.CONTENT_TEXT and part.get("text"):
            texts.append(part["text"])
        elif part_type == Constants.CONTENT_TOOL_USE and part.get("input"):
            texts.append(json.dumps(part["input"], ensure_ascii=False))
        elif part_type == Constants.CONTENT_TOOL_RESULT:
            texts.append(_tool_result_text(part))
        else:
            texts.append("")
    return " ".join(texts)
