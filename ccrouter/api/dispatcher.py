"""Outbound HTTP call to a provider."""

from __future__ import annotations

import logging

import httpx

from ccrouter.api.pipeline import PreparedRequest
from ccrouter.core.error_types import ApiError, ErrorType

logger = logging.getLogger(__name__)


class Dispatcher:
    """Sends prepared requests over a shared ``httpx.AsyncClient``.

    The response is always opened in streaming mode; JSON bodies are read by
    whichever hook or formatter needs them. Non-2xx answers are read, closed
    and raised as ``provider_response_error``.
    """

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None) -> None:
        self.client = client
        self.timeout = timeout

    async def send(
        self, prepared: PreparedRequest, provider_name: str, model: str | None
    ) -> httpx.Response:
        request = self.client.build_request(
            "POST",
            prepared.url,
            json=prepared.body,
            headers=prepared.headers,
            timeout=self.timeout if self.timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        logger.debug(f"POST {prepared.url} -> {provider_name},{model}")
        response = await self.client.send(request, stream=True)

        if response.is_success:
            return response

        try:
            await response.aread()
            text = response.text
        finally:
            await response.aclose()
        logger.debug(f"Provider {provider_name} answered {response.status_code}: {text[:500]}")
        raise ApiError(
            f"Error from provider({provider_name},{model}: {response.status_code}): {text}",
            response.status_code,
            ErrorType.PROVIDER_RESPONSE_ERROR,
        )
