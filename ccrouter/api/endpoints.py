"""HTTP routes: transformer endpoints, token counting and provider management."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from ccrouter import __version__
from ccrouter.api.models.endpoint_requests import (
    ProviderRequest,
    ProviderToggleRequest,
    TokenCountRequest,
)
from ccrouter.api.orchestrator.request_orchestrator import RequestOrchestrator
from ccrouter.api.services.container import Services, get_services
from ccrouter.api.services.endpoint_services import ProviderService, TokenCountService
from ccrouter.api.services.error_handling import ErrorResponseBuilder, build_error_response
from ccrouter.core.error_types import ApiError
from ccrouter.transformers.base import Transformer

logger = logging.getLogger(__name__)

router = APIRouter()


def get_provider_service(services: Services = Depends(get_services)) -> ProviderService:
    return ProviderService(services.provider_registry, services.provider_loader)


def get_token_count_service(services: Services = Depends(get_services)) -> TokenCountService:
    return TokenCountService(services.tokenizer_service)


@router.get("/")
async def root() -> dict[str, Any]:
    return {"message": "LLMs API", "version": __version__}


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint"""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/api/transformers")
async def list_transformers(services: Services = Depends(get_services)) -> dict[str, Any]:
    return {
        "transformers": [
            {"name": name, "endpoint": transformer.end_point}
            for name, transformer in services.transformer_registry.list_all().items()
        ]
    }


@router.post("/v1/messages/count_tokens")
async def count_tokens(
    request: TokenCountRequest,
    service: TokenCountService = Depends(get_token_count_service),
) -> Response:
    try:
        return (await service.execute(request)).to_response()
    except Exception as e:
        return build_error_response(e, "counting tokens")


@router.get("/providers")
async def list_providers(service: ProviderService = Depends(get_provider_service)) -> Response:
    return service.list_providers().to_response()


@router.post("/providers")
async def create_provider(
    request: ProviderRequest, service: ProviderService = Depends(get_provider_service)
) -> Response:
    try:
        return service.create_provider(request).to_response()
    except ApiError as e:
        return ErrorResponseBuilder.from_api_error(e)


@router.get("/providers/{provider_id}")
async def get_provider(
    provider_id: str, service: ProviderService = Depends(get_provider_service)
) -> Response:
    try:
        return service.get_provider(provider_id).to_response()
    except ApiError as e:
        return ErrorResponseBuilder.from_api_error(e)


@router.put("/providers/{provider_id}")
async def update_provider(
    provider_id: str,
    request: ProviderRequest,
    service: ProviderService = Depends(get_provider_service),
) -> Response:
    try:
        return service.update_provider(provider_id, request).to_response()
    except ApiError as e:
        return ErrorResponseBuilder.from_api_error(e)


@router.delete("/providers/{provider_id}")
async def delete_provider(
    provider_id: str, service: ProviderService = Depends(get_provider_service)
) -> Response:
    try:
        return service.delete_provider(provider_id).to_response()
    except ApiError as e:
        return ErrorResponseBuilder.from_api_error(e)


@router.patch("/providers/{provider_id}/toggle")
async def toggle_provider(
    provider_id: str,
    request: ProviderToggleRequest,
    service: ProviderService = Depends(get_provider_service),
) -> Response:
    try:
        return service.toggle_provider(provider_id, request.enabled).to_response()
    except ApiError as e:
        return ErrorResponseBuilder.from_api_error(e)


def make_transformer_route(
    transformer: Transformer,
) -> Callable[[Request], Awaitable[Response]]:
    """Build the POST handler serving ``transformer.end_point``."""

    async def handle(http_request: Request) -> Response:
        services = get_services(http_request)
        try:
            body = await http_request.json()
        except ValueError:
            return ErrorResponseBuilder.invalid_request("Request body must be valid JSON")
        if not isinstance(body, dict):
            return ErrorResponseBuilder.invalid_request("Request body must be a JSON object")

        try:
            return await RequestOrchestrator(services).handle(
                transformer, body, dict(http_request.headers)
            )
        except Exception as e:
            return build_error_response(e, f"calling {transformer.end_point}")

    handle.__name__ = f"{transformer.name.replace('-', '_')}_endpoint"
    return handle


def register_transformer_routes(target: APIRouter, services: Services) -> list[str]:
    """Add one POST route per registered transformer that declares an end point."""
    paths: list[str] = []
    for transformer in services.transformer_registry.get_transformers_with_endpoint():
        path = transformer.end_point
        if path is None or path in paths:
            continue
        target.add_api_route(
            path,
            make_transformer_route(transformer),
            methods=["POST"],
            response_model=None,
            response_class=JSONResponse,
        )
        paths.append(path)
        logger.debug(f"Registered endpoint POST {path} -> {transformer.name}")
    return paths
