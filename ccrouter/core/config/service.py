"""Accessor over the JSON router config document.

The document carries ``Providers``, ``Router``, ``fallback`` and the
optional ``CUSTOM_ROUTER_PATH`` / ``REWRITE_SYSTEM_PROMPT`` keys. Loading is
read-only; writing and backing up the file happen outside the gateway.
"""

import copy
import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)


class ConfigService:
    """Read access to the router config document via ``get``/``get_all``."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def from_file(cls, path: str) -> "ConfigService":
        """Load the document from ``path``; a missing file yields an empty config."""
        if not os.path.exists(path):
            logger.warning(f"Config file {path} not found, starting with empty config")
            return cls({})
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        logger.info(f"Loaded config from {path}")
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_all(self) -> dict[str, Any]:
        """Return a deep copy so callers (including custom routers) cannot mutate it."""
        return copy.deepcopy(self._data)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    @property
    def router(self) -> dict[str, Any]:
        return self._data.get("Router") or {}

    @property
    def fallback(self) -> dict[str, list[str]]:
        return self._data.get("fallback") or {}
