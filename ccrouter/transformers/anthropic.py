"""Anthropic Messages endpoint (``/v1/messages``)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from ccrouter.conversion.request_converter import convert_anthropic_to_unified
from ccrouter.conversion.response_converter import (
    convert_unified_stream_to_anthropic,
    convert_unified_to_anthropic,
)
from ccrouter.transformers.base import (
    Transformer,
    TransformResult,
    is_event_stream,
    iter_body,
    json_response,
    passthrough_headers,
    read_json,
    stream_response,
)

if TYPE_CHECKING:
    from ccrouter.api.context.request_context import RequestContext
    from ccrouter.core.provider_config import ProviderConfig

logger = logging.getLogger(__name__)


class AnthropicTransformer(Transformer):
    name = "anthropic"
    end_point = "/v1/messages"

    async def transform_request_out(
        self, request: dict[str, Any], context: RequestContext
    ) -> dict[str, Any]:
        return convert_anthropic_to_unified(request)

    async def auth(
        self, request: dict[str, Any], provider: ProviderConfig, context: RequestContext
    ) -> TransformResult:
        # Bypassed requests carry the client's own credentials; swap in the provider key
        return TransformResult(
            body=request,
            config={
                "headers": {
                    "x-api-key": provider.api_key,
                    "authorization": f"Bearer {provider.api_key}",
                }
            },
        )

    async def transform_response_in(
        self, response: httpx.Response, context: RequestContext
    ) -> httpx.Response:
        headers = passthrough_headers(response)
        if is_event_stream(response):
            return stream_response(
                convert_unified_stream_to_anthropic(iter_body(response)),
                status_code=response.status_code,
                headers=headers,
            )

        data = await read_json(response)
        if not isinstance(data, dict) or "choices" not in data:
            # Already Anthropic-shaped (or an error body): leave as is
            logger.debug(f"Passing through non-chat response body (status {response.status_code})")
            return json_response(data, status_code=response.status_code, headers=headers)
        return json_response(
            convert_unified_to_anthropic(data),
            status_code=response.status_code,
            headers=headers,
        )
