"""Transformer capability interface and response helpers.

A transformer is a stateless adapter between the unified (OpenAI Chat
Completions shaped) request and one provider or endpoint wire format. All
hooks are optional: the defaults pass their input through unchanged. Request
hooks return either a replacement body or a ``TransformResult`` that also
carries HTTP config (headers, url) to merge into the outbound call.

Responses travel through the hooks as ``httpx.Response`` objects so a hook
can replace a JSON body or wrap a streaming body without buffering it.
"""

from __future__ import annotations

import json
from abc import ABC
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Union

import httpx

if TYPE_CHECKING:
    from ccrouter.api.context.request_context import RequestContext
    from ccrouter.core.provider_config import ProviderConfig

# Headers that describe the upstream body encoding and must not survive a rewrap
_BODY_ENCODING_HEADERS = {"content-length", "content-encoding", "transfer-encoding"}

# Response extension holding the async iterator a wrapped streaming body reads from
BODY_SOURCE_EXTENSION = "ccrouter.body_source"


@dataclass(frozen=True)
class TransformResult:
    """Replacement body plus HTTP config to merge into the outbound request."""

    body: dict[str, Any]
    config: dict[str, Any] = field(default_factory=dict)


TransformOutput = Union[dict[str, Any], TransformResult]


def unpack_result(result: TransformOutput) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a hook result into ``(body, config)``."""
    if isinstance(result, TransformResult):
        return result.body, dict(result.config)
    return result, {}


def merge_config(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge ``extra`` into ``base``; ``headers`` are merged key by key."""
    merged = {**base, **extra}
    if "headers" in base or "headers" in extra:
        merged["headers"] = {**(base.get("headers") or {}), **(extra.get("headers") or {})}
    return merged


class Transformer(ABC):
    """Base class for all transformers.

    Subclasses set ``name`` (registry key) and optionally ``end_point`` (the
    inbound path they serve). Instances are shared across concurrent requests
    and must not keep per-request state on ``self``.
    """

    name: ClassVar[str] = ""
    end_point: ClassVar[str | None] = None

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self.options: dict[str, Any] = dict(options or {})

    async def transform_request_out(
        self, request: dict[str, Any], context: RequestContext
    ) -> TransformOutput:
        """Endpoint format -> unified request."""
        return request

    async def transform_request_in(
        self, request: dict[str, Any], provider: ProviderConfig, context: RequestContext
    ) -> TransformOutput:
        """Unified request -> provider format."""
        return request

    async def transform_response_out(
        self, response: httpx.Response, context: RequestContext
    ) -> httpx.Response:
        """Provider response -> unified response."""
        return response

    async def transform_response_in(
        self, response: httpx.Response, context: RequestContext
    ) -> httpx.Response:
        """Unified response -> endpoint format."""
        return response

    async def auth(
        self, request: dict[str, Any], provider: ProviderConfig, context: RequestContext
    ) -> TransformOutput:
        """Last chance to sign the outbound request; also runs in bypass mode."""
        return request

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def is_event_stream(response: httpx.Response) -> bool:
    return "text/event-stream" in response.headers.get("content-type", "")


def passthrough_headers(response: httpx.Response) -> dict[str, str]:
    return {k: v for k, v in response.headers.items() if k.lower() not in _BODY_ENCODING_HEADERS}


def json_response(
    data: Any,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Build a JSON ``httpx.Response`` carrying the given status and headers."""
    out_headers = {
        k: v for k, v in (headers or {}).items() if k.lower() not in _BODY_ENCODING_HEADERS
    }
    out_headers["content-type"] = "application/json"
    return httpx.Response(
        status_code,
        headers=out_headers,
        content=json.dumps(data, ensure_ascii=False).encode("utf-8"),
    )


def stream_response(
    chunks: AsyncIterator[bytes],
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Wrap an async byte iterator as a streaming ``text/event-stream`` response."""
    out_headers = {
        k: v for k, v in (headers or {}).items() if k.lower() not in _BODY_ENCODING_HEADERS
    }
    out_headers["content-type"] = "text/event-stream"
    return httpx.Response(
        status_code,
        headers=out_headers,
        content=chunks,
        extensions={BODY_SOURCE_EXTENSION: chunks},
    )


async def iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """Iterate a response body, releasing the response and its source on exit."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()
        source = response.extensions.get(BODY_SOURCE_EXTENSION)
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


async def read_json(response: httpx.Response) -> Any:
    """Read and decode a JSON body, closing the response."""
    await response.aread()
    return response.json()
