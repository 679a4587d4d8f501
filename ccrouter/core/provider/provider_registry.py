"""Provider registry for storing, querying and mutating provider configurations."""

import dataclasses
import logging
from typing import Any

from ccrouter.core.provider_config import ProviderConfig

logger = logging.getLogger(__name__)

# Fields a PUT /providers/{id} may change
UPDATABLE_FIELDS = ("base_url", "api_key", "models", "enabled", "tokenizer", "transformer")


class ProviderRegistry:
    """Central registry for provider configurations.

    Responsibilities:
    - Store and retrieve provider configs by name
    - Apply partial updates and enable/disable toggles
    - Resolve ``provider,model`` pairs case-insensitively for the router

    Reads are safe from concurrent requests; mutation happens through the
    provider management endpoints only.
    """

    def __init__(self) -> None:
        self._configs: dict[str, ProviderConfig] = {}

    def register(self, config: ProviderConfig) -> ProviderConfig:
        """Register (or replace) a provider configuration."""
        if config.name in self._configs:
            logger.debug(f"Replacing provider '{config.name}'")
        self._configs[config.name] = config
        return config

    def get(self, provider_name: str) -> ProviderConfig | None:
        return self._configs.get(provider_name)

    def find(self, provider_name: str) -> ProviderConfig | None:
        """Case-insensitive lookup by provider name."""
        config = self._configs.get(provider_name)
        if config is not None:
            return config
        lowered = provider_name.lower()
        for name, candidate in self._configs.items():
            if name.lower() == lowered:
                return candidate
        return None

    def resolve_model_route(self, provider_name: str, model: str) -> tuple[str, str] | None:
        """Resolve ``provider,model`` to canonical names if both are registered."""
        provider = self.find(provider_name)
        if provider is None:
            return None
        canonical_model = provider.find_model(model)
        if canonical_model is None:
            return None
        return provider.name, canonical_model

    def list_all(self) -> dict[str, ProviderConfig]:
        """Return a copy of all registered providers."""
        return self._configs.copy()

    def exists(self, provider_name: str) -> bool:
        return provider_name in self._configs

    def update(self, provider_name: str, changes: dict[str, Any]) -> ProviderConfig | None:
        """Apply a partial update; returns the new config or None if not found.

        Raises:
            ValueError: If the resulting configuration is invalid.
        """
        current = self._configs.get(provider_name)
        if current is None:
            return None
        allowed = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        updated = dataclasses.replace(current, **allowed)
        self._configs[provider_name] = updated
        logger.info(f"Updated provider '{provider_name}': {sorted(allowed)}")
        return updated

    def toggle(self, provider_name: str, enabled: bool) -> bool:
        current = self._configs.get(provider_name)
        if current is None:
            return False
        current.enabled = enabled
        logger.info(f"Provider '{provider_name}' {'enabled' if enabled else 'disabled'}")
        return True

    def delete(self, provider_name: str) -> bool:
        if self._configs.pop(provider_name, None) is None:
            return False
        logger.info(f"Deleted provider '{provider_name}'")
        return True

    def clear(self) -> None:
        """Clear all registered providers.

        This is primarily useful for testing.
        """
        self._configs.clear()
