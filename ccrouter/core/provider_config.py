from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ccrouter.transformers.base import Transformer


@dataclass
class TransformerBindings:
    """Resolved transformer chains for a provider.

    ``use`` is the provider-level chain, applied to every model in
    registration order; ``models`` maps an exact model name to its own chain.
    ``spec`` keeps the declarative form for round-tripping through the API.
    """

    use: list[Transformer] = field(default_factory=list)
    models: dict[str, list[Transformer]] = field(default_factory=dict)
    spec: dict[str, Any] = field(default_factory=dict)

    def for_model(self, model: str) -> list[Transformer]:
        return self.models.get(model, [])


@dataclass
class ProviderConfig:
    """Configuration for a single upstream provider"""

    name: str
    base_url: str
    api_key: str
    models: list[str] = field(default_factory=list)
    transformer: TransformerBindings = field(default_factory=TransformerBindings)
    enabled: bool = True
    tokenizer: dict[str, Any] | None = None

    @property
    def id(self) -> str:
        return self.name

    def has_model(self, model: str) -> bool:
        return model in self.models

    def find_model(self, model: str) -> str | None:
        """Case-insensitive model lookup returning the configured spelling."""
        lowered = model.lower()
        for candidate in self.models:
            if candidate.lower() == lowered:
                return candidate
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "api_base_url": self.base_url,
            "api_key": self.api_key,
            "models": list(self.models),
            "enabled": self.enabled,
        }
        if self.transformer.spec:
            data["transformer"] = self.transformer.spec
        if self.tokenizer:
            data["tokenizer"] = self.tokenizer
        return data

    def __post_init__(self) -> None:
        """Validate configuration after initialization"""
        if not self.name:
            raise ValueError("Provider name is required")
        if not self.base_url:
            raise ValueError(f"Base URL is required for provider '{self.name}'")
        if not self.api_key:
            raise ValueError(f"API key is required for provider '{self.name}'")
        if not isinstance(self.models, list) or not all(isinstance(m, str) for m in self.models):
            raise ValueError(f"Models for provider '{self.name}' must be a list of strings")
