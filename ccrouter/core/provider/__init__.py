"""Provider management package.

- ProviderRegistry: Stores, queries and mutates provider configurations
- ProviderConfigLoader: Builds providers from the config document, resolving
  transformer references through the TransformerRegistry
"""

from ccrouter.core.provider.provider_config_loader import ProviderConfigLoader, ProviderLoadResult
from ccrouter.core.provider.provider_registry import ProviderRegistry

__all__ = [
    "ProviderConfigLoader",
    "ProviderLoadResult",
    "ProviderRegistry",
]
