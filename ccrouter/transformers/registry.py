"""Name-keyed registry of transformers."""

import logging
from typing import Any

from ccrouter.transformers.base import Transformer

logger = logging.getLogger(__name__)


class TransformerRegistry:
    """Stores transformer classes and their default (option-less) instances.

    ``create`` returns the shared default instance when no options are given,
    and a fresh instance when a provider binds the transformer with options.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[Transformer]] = {}
        self._instances: dict[str, Transformer] = {}

    def register(self, transformer_cls: type[Transformer]) -> Transformer:
        """Register a transformer class and build its default instance."""
        name = transformer_cls.name
        if not name:
            raise ValueError(f"Transformer {transformer_cls.__name__} has no name")
        instance = transformer_cls()
        self._classes[name] = transformer_cls
        self._instances[name] = instance
        logger.debug(f"Registered transformer '{name}' (endpoint={transformer_cls.end_point})")
        return instance

    def register_instance(self, transformer: Transformer) -> None:
        if not transformer.name:
            raise ValueError(f"Transformer {transformer!r} has no name")
        self._instances[transformer.name] = transformer

    def get(self, name: str) -> Transformer | None:
        return self._instances.get(name)

    def create(self, name: str, options: dict[str, Any] | None = None) -> Transformer | None:
        if not options:
            return self._instances.get(name)
        transformer_cls = self._classes.get(name)
        if transformer_cls is None:
            return None
        return transformer_cls(options)

    def exists(self, name: str) -> bool:
        return name in self._instances

    def list_all(self) -> dict[str, Transformer]:
        return self._instances.copy()

    def get_transformers_with_endpoint(self) -> list[Transformer]:
        return [t for t in self._instances.values() if t.end_point]

    def get_transformers_without_endpoint(self) -> list[Transformer]:
        return [t for t in self._instances.values() if not t.end_point]

    def remove(self, name: str) -> bool:
        self._classes.pop(name, None)
        return self._instances.pop(name, None) is not None

    def clear(self) -> None:
        self._classes.clear()
        self._instances.clear()
