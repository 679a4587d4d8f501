"""Declarative schema for environment variable configuration.

Every environment variable the gateway reads is declared here once, with
its default, type and an optional validator. ``validation.load_env_var``
does the coercion and raises ``ConfigError`` on bad input.
"""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _expand_path(value: str) -> str:
    return str(Path(value).expanduser())


@dataclass(frozen=True)
class EnvVarSpec:
    """Specification for a single environment variable.

    Attributes:
        name: Environment variable name (e.g., "PORT", "LOG_LEVEL")
        default: Default value if env var not set
        type_hint: Type for validation (int, str, float, bool)
        description: Human-readable description for docs
        validator: Optional custom validation function
        coerce: Optional function to convert string to target type
    """

    name: str
    default: Any
    type_hint: type
    description: str
    validator: Callable[[Any], bool] | None = None
    coerce: Callable[[str], Any] | None = None


class ConfigSchema:
    """Registry of all configuration environment variables."""

    # === Server Settings ===

    HOST = EnvVarSpec(
        name="HOST",
        default="127.0.0.1",
        type_hint=str,
        description="Server host address to bind to",
    )

    PORT = EnvVarSpec(
        name="PORT",
        default=3456,
        type_hint=int,
        description="Server port number",
        validator=lambda x: 1 <= x <= 65535,
    )

    LOG_LEVEL = EnvVarSpec(
        name="LOG_LEVEL",
        default="INFO",
        type_hint=str,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validator=lambda x: x.split()[0].upper()
        in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )

    # === Paths ===

    CCR_HOME = EnvVarSpec(
        name="CCR_HOME",
        default=str(Path.home() / ".claude-code-router"),
        type_hint=str,
        description="Gateway home directory (project/session router overrides live here)",
        coerce=_expand_path,
    )

    CCR_CONFIG_FILE = EnvVarSpec(
        name="CCR_CONFIG_FILE",
        default=None,
        type_hint=str,
        description="Path of the JSON router config (defaults to <CCR_HOME>/config.json)",
        coerce=_expand_path,
    )

    CLAUDE_PROJECTS_DIR = EnvVarSpec(
        name="CLAUDE_PROJECTS_DIR",
        default=str(Path.home() / ".claude" / "projects"),
        type_hint=str,
        description="Directory scanned to map a session id to its project",
        coerce=_expand_path,
    )

    HF_TOKENIZER_CACHE_DIR = EnvVarSpec(
        name="HF_TOKENIZER_CACHE_DIR",
        default=None,
        type_hint=str,
        description="Cache directory for downloaded HuggingFace tokenizers "
        "(defaults to <CCR_HOME>/.huggingface)",
        coerce=_expand_path,
    )

    # === Timeout Settings ===

    API_TIMEOUT_MS = EnvVarSpec(
        name="API_TIMEOUT_MS",
        default=600_000,
        type_hint=int,
        description="Timeout in milliseconds for provider requests",
        validator=lambda x: x > 0,
    )

    TOKENIZER_TIMEOUT_MS = EnvVarSpec(
        name="TOKENIZER_TIMEOUT_MS",
        default=30_000,
        type_hint=int,
        description="Timeout in milliseconds for tokenizer downloads and API tokenizers",
        validator=lambda x: x > 0,
    )

    # === Token Statistics ===

    TOKEN_STATS_ENABLED = EnvVarSpec(
        name="TOKEN_STATS_ENABLED",
        default=False,
        type_hint=bool,
        description="Track output tokens-per-second for session streams",
    )

    TOKEN_STATS_INTERVAL = EnvVarSpec(
        name="TOKEN_STATS_INTERVAL",
        default=1.0,
        type_hint=float,
        description="Interval in seconds between token-speed reports",
        validator=lambda x: x > 0,
    )

    @classmethod
    def all_specs(cls) -> dict[str, EnvVarSpec]:
        """Get all environment variable specifications.

        Returns:
            Dictionary mapping spec names to EnvVarSpec objects
        """
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if isinstance(getattr(cls, name), EnvVarSpec)
        }

    @classmethod
    def get_spec(cls, name: str) -> EnvVarSpec | None:
        for spec in cls.all_specs().values():
            if spec.name == name:
                return spec
        return None
