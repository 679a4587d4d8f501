"""Request orchestrator for transformer endpoints.

This module provides the RequestOrchestrator class which drives one inbound
request through routing, the transformer pipelines, dispatch, fallback and
final response formatting.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterable, AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ccrouter.api.context.request_context import RequestContext
from ccrouter.conversion.response_converter import anthropic_error_event
from ccrouter.core.error_types import ApiError, ErrorType
from ccrouter.core.logging import ConversationLogger
from ccrouter.streaming.sse import aclose_quietly, sse_headers
from ccrouter.streaming.token_speed import session_id_from_body
from ccrouter.streaming.usage import watch_usage
from ccrouter.transformers.base import is_event_stream, iter_body, read_json

if TYPE_CHECKING:
    from ccrouter.api.services.container import Services
    from ccrouter.core.provider_config import ProviderConfig
    from ccrouter.transformers.base import Transformer

logger = logging.getLogger(__name__)


async def guard_client_stream(
    byte_stream: AsyncIterable[bytes], request_id: str
) -> AsyncIterator[bytes]:
    """Turn a mid-stream failure into a terminal error event for the client."""
    try:
        async for chunk in byte_stream:
            yield chunk
    except Exception as e:
        logger.error(f"[{request_id[:8]}] Stream processing failed: {e}", exc_info=True)
        yield anthropic_error_event(str(e), ErrorType.STREAMING_ERROR.value).encode("utf-8")
    finally:
        await aclose_quietly(byte_stream)


class RequestOrchestrator:
    """Drives a request through the gateway for one endpoint transformer.

    Responsibilities:
    1. Generate request ID and correlation context
    2. Route to a provider and model
    3. Run request pipeline, dispatch, response pipeline
    4. Retry through the fallback coordinator on upstream errors
    5. Format the final streaming or JSON response, recording usage
    """

    def __init__(self, services: Services) -> None:
        self.services = services
        self.logger = logging.getLogger(f"{__name__}.RequestOrchestrator")

    async def handle(
        self,
        endpoint: Transformer,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Response:
        request_id = str(uuid.uuid4())
        with ConversationLogger.correlation_context(request_id):
            context = await self.prepare_context(request_id, endpoint, body, headers or {})
            provider = self.resolve_provider(context)
            self.logger.info(
                f"{endpoint.end_point} -> {context.route} (scenario={context.scenario_type}, "
                f"tokens={context.token_count}, stream={context.is_stream})"
            )

            try:
                response = await self.execute(context.body, provider, context)
            except ApiError as e:
                if not e.is_provider_response_error:
                    raise
                self.logger.warning(f"Provider {context.route} failed: {e.message}")
                response = await self.services.fallback.run(e, context.body, context, self.execute)

            return await self.format_response(response, context)

    async def prepare_context(
        self,
        request_id: str,
        endpoint: Transformer,
        body: dict[str, Any],
        headers: dict[str, str],
    ) -> RequestContext:
        route = await self.services.router.route(body)
        model = route.model
        if not model:
            raise ApiError("No model configured for this request", 400, ErrorType.INVALID_REQUEST)

        provider_name, _, model_name = model.partition(",")
        return RequestContext(
            request_id=request_id,
            endpoint=endpoint,
            start_time=time.monotonic(),
            body=body,
            headers=headers,
            provider_name=provider_name,
            model=model_name or None,
            scenario_type=route.scenario_type,
            session_id=route.session_id,
            token_count=route.token_count,
            services=self.services,
        )

    def resolve_provider(self, context: RequestContext) -> ProviderConfig:
        provider = context.provider()
        if provider is None or not provider.enabled:
            raise ApiError(
                f"Provider '{context.provider_name}' not found",
                404,
                ErrorType.PROVIDER_NOT_FOUND,
            )
        return provider

    async def execute(
        self, body: dict[str, Any], provider: ProviderConfig, context: RequestContext
    ) -> httpx.Response:
        """One attempt: request pipeline, dispatch, response pipeline."""
        body = {**body, "model": context.model}
        prepared = await self.services.request_pipeline.run(body, provider, context)
        response = await self.services.dispatcher.send(prepared, provider.name, context.model)
        return await self.services.response_pipeline.run(
            response, provider, context, bypass=prepared.bypass
        )

    async def format_response(self, response: httpx.Response, context: RequestContext) -> Response:
        content_type = response.headers.get("content-type", "")
        streaming = is_event_stream(response) or (
            context.is_stream and "application/json" not in content_type
        )
        if streaming:
            return StreamingResponse(
                self._client_stream(response, context),
                status_code=response.status_code,
                headers=sse_headers(),
                media_type="text/event-stream",
            )

        data = await read_json(response)
        if isinstance(data, dict):
            self.services.router.record_usage(context.session_id, data.get("usage"))
            tracker = self.services.token_speed_tracker
            stats_session = session_id_from_body(context.body)
            if tracker is not None and stats_session:
                await tracker.record_response(
                    context.request_id,
                    stats_session,
                    data,
                    start_time=context.start_time,
                    tokenizer=self.services.tokenizer_service.fallback,
                )
        return JSONResponse(content=data, status_code=response.status_code)

    def _client_stream(self, response: httpx.Response, context: RequestContext) -> AsyncIterator[bytes]:
        def record(usage: dict[str, Any]) -> None:
            self.services.router.record_usage(context.session_id, usage)

        stream: AsyncIterator[bytes] = watch_usage(iter_body(response), record)
        tracker = self.services.token_speed_tracker
        stats_session = session_id_from_body(context.body)
        if tracker is not None and stats_session:
            stream = tracker.track_stream(
                context.request_id,
                stats_session,
                stream,
                start_time=context.start_time,
                tokenizer=self.services.tokenizer_service.fallback,
            )
        return guard_client_stream(stream, context.request_id)
