"""Tests for environment settings and the router config document."""

import json
import os

import pytest

from ccrouter.core.config import Config, ConfigError, ConfigService
from ccrouter.core.config.schema import ConfigSchema
from ccrouter.core.config.validation import load_env_var, validate_all


@pytest.mark.unit
class TestEnvSettings:
    def test_defaults_under_home(self, tmp_home, monkeypatch):
        for name in ("HOST", "PORT", "API_TIMEOUT_MS", "TOKEN_STATS_ENABLED"):
            monkeypatch.delenv(name, raising=False)

        config = Config()

        assert config.host == "127.0.0.1"
        assert config.port == 3456
        assert config.home_dir == str(tmp_home)
        assert config.config_file == os.path.join(str(tmp_home), "config.json")
        assert config.hf_cache_dir == os.path.join(str(tmp_home), ".huggingface")
        assert config.api_timeout == 600.0
        assert config.token_stats_enabled is False

    def test_values_are_coerced(self, tmp_home, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("API_TIMEOUT_MS", "2500")
        monkeypatch.setenv("TOKEN_STATS_ENABLED", "yes")
        monkeypatch.setenv("CCR_CONFIG_FILE", "~/router.json")

        config = Config()

        assert config.port == 8080
        assert config.api_timeout == 2.5
        assert config.token_stats_enabled is True
        assert config.config_file == os.path.expanduser("~/router.json")

    @pytest.mark.parametrize(
        "name,value",
        [("PORT", "not-a-number"), ("PORT", "70000"), ("LOG_LEVEL", "LOUD"), ("API_TIMEOUT_MS", "0")],
    )
    def test_invalid_values_raise_config_error(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        spec = ConfigSchema.get_spec(name)

        with pytest.raises(ConfigError) as exc_info:
            load_env_var(spec)

        assert exc_info.value.env_var == name
        assert name in [e.env_var for e in validate_all()]

    def test_empty_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("PORT", "")
        assert load_env_var(ConfigSchema.PORT) == 3456


@pytest.mark.unit
class TestConfigService:
    def test_missing_file_gives_empty_config(self, tmp_path, caplog):
        service = ConfigService.from_file(str(tmp_path / "absent.json"))
        assert service.get_all() == {}
        assert service.router == {}
        assert "not found" in caplog.text

    def test_loads_document(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"Router": {"default": "a,b"}, "fallback": {"default": ["c,d"]}}))

        service = ConfigService.from_file(str(path))

        assert service.router == {"default": "a,b"}
        assert service.fallback == {"default": ["c,d"]}
        assert service.get("CUSTOM_ROUTER_PATH") is None

    def test_non_object_document_is_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            ConfigService.from_file(str(path))

    def test_get_all_returns_a_copy(self):
        service = ConfigService({"Router": {"default": "a,b"}})
        snapshot = service.get_all()
        snapshot["Router"]["default"] = "x,y"
        assert service.router["default"] == "a,b"
