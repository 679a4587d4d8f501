"""Service container built once at startup and shared through ``app.state``.

This module provides ``build_services`` (construction and config loading)
and ``get_services`` (the FastAPI dependency accessor).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request

from ccrouter.api.dispatcher import Dispatcher
from ccrouter.api.fallback import FallbackCoordinator
from ccrouter.api.pipeline import RequestPipeline, ResponsePipeline
from ccrouter.core.config import Config, ConfigService
from ccrouter.core.provider.provider_config_loader import ProviderConfigLoader
from ccrouter.core.provider.provider_registry import ProviderRegistry
from ccrouter.routing.router import Router
from ccrouter.routing.session import ProjectOverrides, SessionUsageCache
from ccrouter.streaming.token_speed import TokenSpeedTracker
from ccrouter.tokenizer.service import TokenizerService
from ccrouter.transformers import TransformerRegistry, register_builtin_transformers

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every long-lived collaborator of the request path."""

    config: Config
    config_service: ConfigService
    transformer_registry: TransformerRegistry
    provider_registry: ProviderRegistry
    provider_loader: ProviderConfigLoader
    tokenizer_service: TokenizerService
    router: Router
    request_pipeline: RequestPipeline
    response_pipeline: ResponsePipeline
    dispatcher: Dispatcher
    fallback: FallbackCoordinator
    http_client: httpx.AsyncClient
    token_speed_tracker: TokenSpeedTracker | None = None

    async def startup(self) -> None:
        await self.tokenizer_service.initialize()
        logger.info(
            f"Services ready: {len(self.provider_registry.list_all())} provider(s), "
            f"{len(self.transformer_registry.list_all())} transformer(s)"
        )

    async def aclose(self) -> None:
        if self.token_speed_tracker is not None:
            await self.token_speed_tracker.aclose()
        self.tokenizer_service.dispose()
        await self.http_client.aclose()


def load_providers(
    config_service: ConfigService,
    loader: ProviderConfigLoader,
    registry: ProviderRegistry,
) -> None:
    providers, results = loader.load_all(config_service.get("Providers") or [])
    for provider in providers:
        registry.register(provider)
    failed = [r.name for r in results if r.status == "failed"]
    if failed:
        logger.warning(f"Skipped invalid providers: {', '.join(failed)}")
    logger.info(f"Loaded {len(providers)} provider(s) from config")


def build_services(
    config: Config | None = None,
    config_service: ConfigService | None = None,
    http_client: httpx.AsyncClient | None = None,
    transformer_registry: TransformerRegistry | None = None,
    tokenizer_service: TokenizerService | None = None,
) -> Services:
    """Wire up registries, tokenizers, router and the HTTP client.

    ``config_service`` defaults to the JSON document at ``config.config_file``.
    Tests pass their own config service, an ``httpx.AsyncClient`` mocked
    with respx and, when tiktoken data is unavailable, a tokenizer service.
    """
    if config is None:
        from ccrouter.core.config import config as default_config

        config = default_config
    if config_service is None:
        config_service = ConfigService.from_file(config.config_file)
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=config.api_timeout)

    if transformer_registry is None:
        transformer_registry = register_builtin_transformers(TransformerRegistry())
    provider_registry = ProviderRegistry()
    loader = ProviderConfigLoader(transformer_registry)
    load_providers(config_service, loader, provider_registry)

    if tokenizer_service is None:
        tokenizer_service = TokenizerService(
            provider_registry,
            cache_dir=config.hf_cache_dir,
            timeout=config.tokenizer_timeout,
            client=http_client,
        )
    else:
        tokenizer_service.provider_registry = provider_registry
    router = Router(
        config_service,
        provider_registry,
        tokenizer_service,
        session_usage=SessionUsageCache(),
        project_overrides=ProjectOverrides(config.claude_projects_dir, config.home_dir),
    )
    token_speed_tracker = (
        TokenSpeedTracker(interval=config.token_stats_interval)
        if config.token_stats_enabled
        else None
    )

    return Services(
        config=config,
        config_service=config_service,
        transformer_registry=transformer_registry,
        provider_registry=provider_registry,
        provider_loader=loader,
        tokenizer_service=tokenizer_service,
        router=router,
        request_pipeline=RequestPipeline(),
        response_pipeline=ResponsePipeline(),
        dispatcher=Dispatcher(http_client, timeout=config.api_timeout),
        fallback=FallbackCoordinator(config_service, provider_registry),
        http_client=http_client,
        token_speed_tracker=token_speed_tracker,
    )


def get_services(request: Request) -> Services:
    """Return the ``Services`` instance owned by the FastAPI app.

    Raises:
        TypeError: If app.state.services is missing or of the wrong type
    """
    services = getattr(request.app.state, "services", None)
    if not isinstance(services, Services):
        raise TypeError(
            f"app.state.services must be Services, got {type(services).__name__}"
        )
    return services
