"""Endpoint service layer for business logic abstraction.

Elevates business logic from routing layer into dedicated, testable services.
Each service encapsulates a single endpoint group's core operations.

Design principles:
- Dependency Injection: All dependencies passed via constructor
- Testability: Services can be unit tested independently of FastAPI
- Errors are raised as ``ApiError`` and rendered by ``ErrorResponseBuilder``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi.responses import JSONResponse, Response

from ccrouter.api.models.endpoint_requests import ProviderRequest, TokenCountRequest
from ccrouter.core.error_types import ApiError, ErrorType
from ccrouter.core.provider.provider_config_loader import ProviderConfigLoader
from ccrouter.core.provider.provider_registry import ProviderRegistry
from ccrouter.tokenizer.service import TokenizerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServiceResult:
    """Structured result of an endpoint service call."""

    status: int
    content: Any

    def to_response(self) -> Response:
        """Convert to FastAPI response."""
        return JSONResponse(status_code=self.status, content=self.content)


def is_valid_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def _invalid(message: str) -> ApiError:
    return ApiError(message, 400, ErrorType.INVALID_REQUEST)


def _not_found() -> ApiError:
    return ApiError("Provider not found", 404, ErrorType.PROVIDER_NOT_FOUND)


class ProviderService:
    """CRUD operations behind the ``/providers`` endpoints."""

    def __init__(self, registry: ProviderRegistry, loader: ProviderConfigLoader) -> None:
        self._registry = registry
        self._loader = loader

    def list_providers(self) -> ServiceResult:
        return ServiceResult(
            status=200, content=[p.to_dict() for p in self._registry.list_all().values()]
        )

    def get_provider(self, provider_id: str) -> ServiceResult:
        provider = self._registry.find(provider_id)
        if provider is None:
            raise _not_found()
        return ServiceResult(status=200, content=provider.to_dict())

    def create_provider(self, request: ProviderRequest) -> ServiceResult:
        name = (request.name or "").strip()
        if not name:
            raise _invalid("Provider name is required")
        if not is_valid_url(request.base_url):
            raise _invalid("Valid base URL is required")
        if not (request.api_key or "").strip():
            raise _invalid("API key is required")
        if not request.models:
            raise _invalid("At least one model is required")
        if self._registry.find(name) is not None:
            raise ApiError(
                f"Provider with name '{name}' already exists", 400, ErrorType.PROVIDER_EXISTS
            )

        try:
            provider = self._loader.build(request.to_entry())
        except ValueError as e:
            raise _invalid(str(e)) from e
        self._registry.register(provider)
        logger.info(f"Registered provider '{provider.name}' with {len(provider.models)} model(s)")
        return ServiceResult(status=200, content=provider.to_dict())

    def update_provider(self, provider_id: str, request: ProviderRequest) -> ServiceResult:
        current = self._registry.find(provider_id)
        if current is None:
            raise _not_found()
        if request.base_url is not None and not is_valid_url(request.base_url):
            raise _invalid("Valid base URL is required")

        changes: dict[str, Any] = {
            "base_url": request.base_url,
            "api_key": request.api_key,
            "models": request.models,
            "enabled": request.enabled,
            "tokenizer": request.tokenizer,
        }
        if request.transformer is not None:
            changes["transformer"] = self._loader.build_bindings(request.transformer)
        try:
            updated = self._registry.update(current.name, changes)
        except ValueError as e:
            raise _invalid(str(e)) from e
        if updated is None:
            raise _not_found()
        return ServiceResult(status=200, content=updated.to_dict())

    def delete_provider(self, provider_id: str) -> ServiceResult:
        provider = self._registry.find(provider_id)
        if provider is None or not self._registry.delete(provider.name):
            raise _not_found()
        return ServiceResult(status=200, content={"message": "Provider deleted successfully"})

    def toggle_provider(self, provider_id: str, enabled: bool) -> ServiceResult:
        provider = self._registry.find(provider_id)
        if provider is None or not self._registry.toggle(provider.name, enabled):
            raise _not_found()
        state = "enabled" if enabled else "disabled"
        return ServiceResult(status=200, content={"message": f"Provider {state} successfully"})


class TokenCountService:
    """Service for /v1/messages/count_tokens endpoint logic.

    A ``"provider,model"`` model selects that provider's tokenizer config and
    the response names the tokenizer used. Anything else, or any failure
    with the configured tokenizer, is counted with the default tiktoken
    encoding.
    """

    def __init__(self, tokenizer_service: TokenizerService) -> None:
        self._tokenizers = tokenizer_service

    async def execute(self, request: TokenCountRequest) -> ServiceResult:
        counting_request = request.to_counting_request()
        model = request.model or ""

        if "," in model:
            provider_name, model_name = model.split(",", 1)
            tokenizer_config = self._tokenizers.get_tokenizer_config_for_model(
                provider_name, model_name
            )
            if tokenizer_config is None:
                logger.warning(
                    f"No tokenizer config found for {provider_name},{model_name}, "
                    "using default tiktoken"
                )
            try:
                result = await self._tokenizers.count_tokens(counting_request, tokenizer_config)
                return ServiceResult(
                    status=200,
                    content={"input_tokens": result.token_count, "tokenizer": result.tokenizer_name},
                )
            except Exception as e:
                logger.error(f"Error using configured tokenizer: {e}", exc_info=True)
        else:
            logger.debug(f"Model {model!r} has no provider prefix, using default tiktoken")

        result = await self._tokenizers.count_tokens(counting_request)
        return ServiceResult(status=200, content={"input_tokens": result.token_count})
