"""Environment-backed settings for the gateway.

Values are loaded once at construction from environment variables using
the declarative ``ConfigSchema``. Derived paths (config file, tokenizer
cache) fall back to locations under ``CCR_HOME``.
"""

import os

from ccrouter.core.config.schema import ConfigSchema
from ccrouter.core.config.validation import load_env_var


class Config:
    """Direct property access to validated environment settings."""

    def __init__(self) -> None:
        self._host: str = load_env_var(ConfigSchema.HOST)
        self._port: int = load_env_var(ConfigSchema.PORT)
        self._log_level: str = load_env_var(ConfigSchema.LOG_LEVEL)
        self._home_dir: str = load_env_var(ConfigSchema.CCR_HOME)
        self._config_file: str | None = load_env_var(ConfigSchema.CCR_CONFIG_FILE)
        self._claude_projects_dir: str = load_env_var(ConfigSchema.CLAUDE_PROJECTS_DIR)
        self._hf_cache_dir: str | None = load_env_var(ConfigSchema.HF_TOKENIZER_CACHE_DIR)
        self._api_timeout_ms: int = load_env_var(ConfigSchema.API_TIMEOUT_MS)
        self._tokenizer_timeout_ms: int = load_env_var(ConfigSchema.TOKENIZER_TIMEOUT_MS)
        self._token_stats_enabled: bool = load_env_var(ConfigSchema.TOKEN_STATS_ENABLED)
        self._token_stats_interval: float = load_env_var(ConfigSchema.TOKEN_STATS_INTERVAL)

    # Server settings
    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def log_level(self) -> str:
        return self._log_level

    # Paths
    @property
    def home_dir(self) -> str:
        return self._home_dir

    @property
    def config_file(self) -> str:
        return self._config_file or os.path.join(self._home_dir, "config.json")

    @property
    def claude_projects_dir(self) -> str:
        return self._claude_projects_dir

    @property
    def hf_cache_dir(self) -> str:
        return self._hf_cache_dir or os.path.join(self._home_dir, ".huggingface")

    # Timeouts, exposed in seconds for httpx
    @property
    def api_timeout(self) -> float:
        return self._api_timeout_ms / 1000

    @property
    def tokenizer_timeout(self) -> float:
        return self._tokenizer_timeout_ms / 1000

    # Token statistics
    @property
    def token_stats_enabled(self) -> bool:
        return self._token_stats_enabled

    @property
    def token_stats_interval(self) -> float:
        return self._token_stats_interval
