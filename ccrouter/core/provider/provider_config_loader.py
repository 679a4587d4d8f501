"""Provider configuration loading from the router config document."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ccrouter.core.provider_config import ProviderConfig, TransformerBindings

if TYPE_CHECKING:
    from ccrouter.transformers.base import Transformer
    from ccrouter.transformers.registry import TransformerRegistry


@dataclass
class ProviderLoadResult:
    """Result of loading a provider configuration."""

    name: str
    status: str  # "success", "failed"
    message: str | None = None


class ProviderConfigLoader:
    """Builds ``ProviderConfig`` objects from ``Providers`` entries.

    Each entry looks like::

        {
            "name": "deepseek",
            "api_base_url": "https://api.deepseek.com/chat/completions",
            "api_key": "sk-...",
            "models": ["deepseek-chat", "deepseek-reasoner"],
            "transformer": {
                "use": ["deepseek"],
                "deepseek-chat": {"use": ["tooluse"]}
            },
            "tokenizer": {"default": {"type": "tiktoken", "encoding": "cl100k_base"}}
        }

    Transformer references are either a name or ``[name, options]`` and are
    resolved against the ``TransformerRegistry``.
    """

    def __init__(self, transformer_registry: "TransformerRegistry") -> None:
        self._transformers = transformer_registry
        self._logger = logging.getLogger(__name__)

    def resolve_chain(self, refs: list[Any]) -> list["Transformer"]:
        """Resolve a list of transformer references, skipping unknown names."""
        chain: list[Transformer] = []
        for ref in refs or []:
            if isinstance(ref, (list, tuple)) and ref:
                name, options = ref[0], (ref[1] if len(ref) > 1 else None)
            else:
                name, options = ref, None
            transformer = self._transformers.create(str(name), options)
            if transformer is None:
                self._logger.warning(f"Unknown transformer '{name}' ignored")
                continue
            chain.append(transformer)
        return chain

    def build_bindings(self, spec: dict[str, Any] | None) -> TransformerBindings:
        spec = spec or {}
        bindings = TransformerBindings(spec=spec)
        for key, value in spec.items():
            if key == "use":
                bindings.use = self.resolve_chain(value)
            elif isinstance(value, dict) and "use" in value:
                bindings.models[key] = self.resolve_chain(value["use"])
        return bindings

    def build(self, entry: dict[str, Any]) -> ProviderConfig:
        """Build a provider from a config entry.

        Accepts both ``api_base_url``/``api_key`` and ``baseUrl``/``apiKey`` spellings.

        Raises:
            ValueError: If the entry is missing required fields.
        """
        return ProviderConfig(
            name=str(entry.get("name") or entry.get("id") or "").strip(),
            base_url=entry.get("api_base_url") or entry.get("baseUrl") or "",
            api_key=entry.get("api_key") or entry.get("apiKey") or "",
            models=list(entry.get("models") or []),
            transformer=self.build_bindings(entry.get("transformer")),
            enabled=bool(entry.get("enabled", True)),
            tokenizer=entry.get("tokenizer"),
        )

    def load_all(self, entries: list[dict[str, Any]]) -> tuple[list[ProviderConfig], list[ProviderLoadResult]]:
        providers: list[ProviderConfig] = []
        results: list[ProviderLoadResult] = []
        for entry in entries or []:
            name = str(entry.get("name", "<unnamed>"))
            try:
                provider = self.build(entry)
            except ValueError as e:
                self._logger.error(f"Failed to load provider '{name}': {e}")
                results.append(ProviderLoadResult(name=name, status="failed", message=str(e)))
                continue
            providers.append(provider)
            results.append(ProviderLoadResult(name=provider.name, status="success"))
        return providers, results
