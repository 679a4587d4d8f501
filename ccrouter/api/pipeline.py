"""Request and response transformer pipelines.

The request side turns the inbound endpoint body into the provider's wire
format: endpoint ``transform_request_out``, then the provider's ``use``
chain, then the model chain. The response side mirrors it in reverse and
ends with the endpoint's ``transform_response_in``.

When the provider's only transformer is the endpoint transformer itself the
body is already in the provider's format, so every hook is skipped and the
inbound headers are forwarded (bypass mode).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from ccrouter.transformers.base import Transformer, merge_config, unpack_result

if TYPE_CHECKING:
    from ccrouter.api.context.request_context import RequestContext
    from ccrouter.core.provider_config import ProviderConfig

logger = logging.getLogger(__name__)

# Inbound headers that describe the client connection rather than the request
HOP_BY_HOP_HEADERS = {
    "host",
    "content-length",
    "connection",
    "transfer-encoding",
    "accept-encoding",
    "keep-alive",
}

UNDEFINED = "undefined"


def should_bypass(endpoint: Transformer, provider: ProviderConfig, model: str | None) -> bool:
    """True when the provider chain is exactly the endpoint transformer."""
    use = provider.transformer.use
    if len(use) != 1 or use[0].name != endpoint.name:
        return False
    model_chain = provider.transformer.for_model(model or "")
    return not model_chain or (len(model_chain) == 1 and model_chain[0].name == endpoint.name)


def forwardable_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


def build_outbound_headers(api_key: str, config_headers: dict[str, Any] | None) -> dict[str, str]:
    """Bearer auth overlaid with hook-supplied headers.

    Keys are compared case-insensitively; values that are ``None`` or the
    literal ``"undefined"`` remove the header.
    """
    headers: dict[str, str] = {"authorization": f"Bearer {api_key}"}
    for key, value in (config_headers or {}).items():
        name = key.lower()
        if value is None or value == UNDEFINED:
            headers.pop(name, None)
            continue
        headers[name] = str(value)

    authorization = headers.get("authorization")
    if authorization is not None and UNDEFINED in authorization:
        del headers["authorization"]
    return headers


@dataclass
class PreparedRequest:
    """Outbound request produced by ``RequestPipeline``."""

    body: dict[str, Any]
    url: str
    headers: dict[str, str]
    bypass: bool = False
    config: dict[str, Any] = field(default_factory=dict)


def _hook_name(transformer: Transformer, hook: str) -> str:
    return f"{transformer.name}.{hook}"


class RequestPipeline:
    """Runs the request-side hooks for one attempt."""

    async def run(
        self,
        body: dict[str, Any],
        provider: ProviderConfig,
        context: RequestContext,
    ) -> PreparedRequest:
        endpoint = context.endpoint
        bypass = should_bypass(endpoint, provider, context.model)
        request = copy.deepcopy(body)
        config: dict[str, Any] = {}

        if bypass:
            logger.debug(f"Bypassing transformers for provider '{provider.name}'")
            config["headers"] = forwardable_headers(context.headers)
            request, config = await self._apply(
                endpoint, "auth", request, config, endpoint.auth(request, provider, context)
            )
        else:
            hooks: list[tuple[Transformer, str]] = [(endpoint, "transform_request_out")]
            hooks += [(t, "transform_request_in") for t in provider.transformer.use]
            hooks += [
                (t, "transform_request_in")
                for t in provider.transformer.for_model(context.model or "")
            ]
            model_hooks_start = 1 + len(provider.transformer.use)

            for i, (transformer, hook) in enumerate(hooks):
                logger.debug(
                    f"Running transformer [{i + 1}/{len(hooks)}]: {_hook_name(transformer, hook)}"
                )
                if hook == "transform_request_out":
                    pending = transformer.transform_request_out(request, context)
                else:
                    pending = transformer.transform_request_in(request, provider, context)
                if i >= model_hooks_start:
                    # Model-level hooks replace the body only
                    request, _ = await self._apply(transformer, hook, request, {}, pending)
                else:
                    request, config = await self._apply(transformer, hook, request, config, pending)

        url = config.get("url") or provider.base_url
        headers = build_outbound_headers(provider.api_key, config.get("headers"))
        return PreparedRequest(
            body=request, url=str(url), headers=headers, bypass=bypass, config=config
        )

    @staticmethod
    async def _apply(
        transformer: Transformer,
        hook: str,
        request: dict[str, Any],
        config: dict[str, Any],
        pending: Any,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        try:
            result = await pending
        except Exception as e:
            logger.error(f"Transformer {_hook_name(transformer, hook)} failed: {e}", exc_info=True)
            raise
        body, extra = unpack_result(result)
        if hook == "auth" and "headers" in extra:
            extra = {**extra, "headers": forwardable_headers(extra["headers"])}
        return body, merge_config(config, extra)


class ResponsePipeline:
    """Runs the response-side hooks in the mirror order of the request side."""

    async def run(
        self,
        response: httpx.Response,
        provider: ProviderConfig,
        context: RequestContext,
        *,
        bypass: bool = False,
    ) -> httpx.Response:
        if bypass:
            return response

        hooks: list[tuple[Transformer, str]] = [
            (t, "transform_response_out")
            for t in reversed(provider.transformer.for_model(context.model or ""))
        ]
        hooks += [(t, "transform_response_out") for t in reversed(provider.transformer.use)]
        hooks.append((context.endpoint, "transform_response_in"))

        for i, (transformer, hook) in enumerate(hooks):
            logger.debug(
                f"Running transformer [{i + 1}/{len(hooks)}]: {_hook_name(transformer, hook)}"
            )
            try:
                if hook == "transform_response_in":
                    response = await transformer.transform_response_in(response, context)
                else:
                    response = await transformer.transform_response_out(response, context)
            except Exception as e:
                logger.error(
                    f"Transformer {_hook_name(transformer, hook)} failed: {e}", exc_info=True
                )
                await response.aclose()
                raise
        return response
