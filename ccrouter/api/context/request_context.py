"""Request context dataclass for encapsulating request processing data."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from ccrouter.core.constants import Constants

if TYPE_CHECKING:
    from ccrouter.api.services.container import Services
    from ccrouter.core.provider_config import ProviderConfig
    from ccrouter.transformers.base import Transformer


@dataclass(frozen=True)
class RequestContext:
    """Immutable per-request state shared by the pipeline, router and hooks.

    A fallback attempt derives its own context with ``with_updates`` so the
    original attempt and the retries never share mutable state.
    """

    # === Identity ===
    request_id: str
    endpoint: Transformer
    start_time: float

    # === Inbound request ===
    body: dict[str, Any]  # Body as received (after routing)
    headers: dict[str, str] = field(default_factory=dict)

    # === Routing outcome ===
    provider_name: str | None = None
    model: str | None = None
    scenario_type: str = Constants.SCENARIO_DEFAULT
    session_id: str | None = None
    token_count: int = 0

    # === Collaborators ===
    services: Services | None = None

    @property
    def is_stream(self) -> bool:
        return bool(self.body.get("stream"))

    @property
    def route(self) -> str:
        return f"{self.provider_name},{self.model}"

    def provider(self) -> ProviderConfig | None:
        if self.services is None or self.provider_name is None:
            return None
        return self.services.provider_registry.find(self.provider_name)

    def with_updates(self, **kwargs: Any) -> RequestContext:
        """Create a new context with specified fields updated."""
        return replace(self, **kwargs)
