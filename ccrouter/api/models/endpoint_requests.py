"""Endpoint request DTOs.

Request bodies for the provider management and token counting endpoints.
Fields are optional on purpose: required-field checks happen in the
service layer so they surface as ``invalid_request`` errors rather than
FastAPI validation errors.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProviderRequest(BaseModel):
    """Body of ``POST /providers`` and ``PUT /providers/{id}``.

    Accepts both the config-file spelling (``api_base_url``/``api_key``) and
    the camelCase API spelling (``baseUrl``/``apiKey``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None  # noqa: A003
    name: str | None = None
    type: str | None = None  # noqa: A003
    base_url: str | None = Field(
        None, validation_alias=AliasChoices("baseUrl", "api_base_url", "base_url")
    )
    api_key: str | None = Field(None, validation_alias=AliasChoices("apiKey", "api_key"))
    models: list[str] | None = None
    transformer: dict[str, Any] | None = None
    tokenizer: dict[str, Any] | None = None
    enabled: bool | None = None

    def to_entry(self) -> dict[str, Any]:
        """Shape the request as a ``Providers`` config entry."""
        entry: dict[str, Any] = {
            "name": (self.name or self.id or "").strip(),
            "api_base_url": self.base_url,
            "api_key": self.api_key,
            "models": self.models or [],
        }
        if self.transformer is not None:
            entry["transformer"] = self.transformer
        if self.tokenizer is not None:
            entry["tokenizer"] = self.tokenizer
        if self.enabled is not None:
            entry["enabled"] = self.enabled
        return entry


class ProviderToggleRequest(BaseModel):
    enabled: bool


class TokenCountRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str | None = None
    messages: list[dict[str, Any]] = Field(default_factory=list)
    system: str | list[dict[str, Any]] | None = None
    tools: list[dict[str, Any]] | None = None

    def to_counting_request(self) -> dict[str, Any]:
        return {
            "messages": self.messages,
            "system": self.system or [],
            "tools": self.tools or [],
        }
