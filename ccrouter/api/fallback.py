"""Sequential retry of a failed request against the scenario's fallback models."""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx

from ccrouter.core.error_types import ApiError

if TYPE_CHECKING:
    from ccrouter.api.context.request_context import RequestContext
    from ccrouter.core.config.service import ConfigService
    from ccrouter.core.provider.provider_registry import ProviderRegistry
    from ccrouter.core.provider_config import ProviderConfig

logger = logging.getLogger(__name__)

Attempt = Callable[[dict[str, Any], "ProviderConfig", "RequestContext"], Awaitable[httpx.Response]]


class FallbackCoordinator:
    """Replays a request on each ``"provider,model"`` listed for its scenario.

    Only ``provider_response_error`` failures are retried. Every candidate
    gets a fresh body copy and its own context; the first success wins and
    exhaustion re-raises the last error seen.
    """

    def __init__(self, config_service: ConfigService, provider_registry: ProviderRegistry) -> None:
        self.config_service = config_service
        self.provider_registry = provider_registry

    def candidates(self, scenario_type: str) -> list[str]:
        fallback = self.config_service.fallback
        entries = fallback.get(scenario_type) if isinstance(fallback, dict) else None
        return [e for e in entries or [] if isinstance(e, str) and e]

    async def run(
        self,
        error: ApiError,
        body: dict[str, Any],
        context: RequestContext,
        attempt: Attempt,
    ) -> httpx.Response:
        if not error.is_provider_response_error:
            raise error
        candidates = self.candidates(context.scenario_type)
        if not candidates:
            raise error

        logger.warning(
            f"Request to {context.route} failed ({error.status_code}), "
            f"trying {len(candidates)} fallback model(s) for scenario '{context.scenario_type}'"
        )
        last_error: Exception = error
        for candidate in candidates:
            provider_name, _, model = candidate.partition(",")
            provider = self.provider_registry.find(provider_name)
            if provider is None:
                logger.warning(f"Fallback provider '{provider_name}' not found, skipping")
                continue

            retry_body = copy.deepcopy(body)
            retry_body["model"] = model
            retry_context = context.with_updates(
                body=retry_body, provider_name=provider.name, model=model
            )
            try:
                logger.info(f"Trying fallback model {candidate}")
                response = await attempt(retry_body, provider, retry_context)
            except Exception as e:
                logger.warning(f"Fallback model {candidate} failed: {e}")
                last_error = e
                continue
            logger.info(f"Fallback model {candidate} succeeded")
            return response

        logger.error(f"All fallback models failed for scenario '{context.scenario_type}'")
        raise last_error
