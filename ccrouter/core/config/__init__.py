"""Configuration package: environment settings and the router config document."""

from ccrouter.core.config.config import Config
from ccrouter.core.config.service import ConfigService
from ccrouter.core.config.validation import ConfigError

config = Config()

__all__ = ["Config", "ConfigError", "ConfigService", "config"]
