"""API models for endpoint request DTOs."""

from ccrouter.api.models.endpoint_requests import (
    ProviderRequest,
    ProviderToggleRequest,
    TokenCountRequest,
)

__all__ = [
    "ProviderRequest",
    "ProviderToggleRequest",
    "TokenCountRequest",
]
