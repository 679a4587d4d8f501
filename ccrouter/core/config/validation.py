"""Type coercion and validation for environment configuration.

Loads each ``EnvVarSpec`` from the environment, coerces it to its declared
type and runs its validator. Failures raise ``ConfigError`` naming the
offending variable.
"""

import os
from typing import Any

from ccrouter.core.config.schema import ConfigSchema, EnvVarSpec


class ConfigError(Exception):
    """Configuration validation error.

    Attributes:
        env_var: The environment variable name
        value: The raw value that failed validation
        message: Human-readable error message
    """

    def __init__(self, env_var: str, value: str, message: str) -> None:
        self.env_var = env_var
        self.value = value
        self.message = message
        super().__init__(f"{env_var}={value}: {message}")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _coerce(spec: EnvVarSpec, raw_value: str) -> Any:
    if spec.coerce is not None:
        return spec.coerce(raw_value)
    if spec.type_hint is bool:
        return _parse_bool(raw_value)
    if spec.type_hint is int:
        return int(raw_value)
    if spec.type_hint is float:
        return float(raw_value)
    return raw_value


def load_env_var(spec: EnvVarSpec) -> Any:
    """Load and validate a single environment variable.

    Unset or empty variables yield the spec default without validation.

    Raises:
        ConfigError: If type conversion or validation fails
    """
    raw_value = os.environ.get(spec.name)
    if raw_value is None or raw_value == "":
        return spec.default

    try:
        value = _coerce(spec, raw_value)
    except (ValueError, TypeError) as e:
        raise ConfigError(
            spec.name,
            raw_value,
            f"Cannot convert to {spec.type_hint.__name__}: {e}",
        ) from e

    if spec.validator is not None:
        try:
            valid = spec.validator(value)
        except (TypeError, AttributeError) as e:
            raise ConfigError(spec.name, raw_value, f"Validation error: {e}") from e
        if not valid:
            raise ConfigError(
                spec.name,
                raw_value,
                f"Validation failed for type {spec.type_hint.__name__}",
            )

    return value


def validate_all() -> list[ConfigError]:
    """Validate every schema variable and collect the errors.

    Used at startup so all configuration problems are reported at once.
    """
    errors: list[ConfigError] = []
    for spec in ConfigSchema.all_specs().values():
        try:
            load_env_var(spec)
        except ConfigError as e:
            errors.append(e)
    return errors
