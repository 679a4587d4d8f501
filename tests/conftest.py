"""Shared pytest configuration and fixtures for ccrouter tests."""

import os
from unittest.mock import MagicMock

import pytest

# Import HTTP mocking fixtures from fixtures module
pytest_plugins = ["tests.fixtures.mock_http", "tests.fixtures.services"]


@pytest.fixture
def tmp_home(tmp_path, monkeypatch):
    """Point CCR_HOME and the Claude projects dir at a temporary directory."""
    home = tmp_path / "ccr-home"
    projects = tmp_path / "projects"
    home.mkdir()
    projects.mkdir()
    monkeypatch.setenv("CCR_HOME", str(home))
    monkeypatch.setenv("CLAUDE_PROJECTS_DIR", str(projects))
    monkeypatch.delenv("CCR_CONFIG_FILE", raising=False)
    monkeypatch.delenv("HF_TOKENIZER_CACHE_DIR", raising=False)
    return home


@pytest.fixture
def mock_config(tmp_path):
    """Mock environment settings with test values."""
    config = MagicMock()
    config.host = "127.0.0.1"
    config.port = 3456
    config.log_level = "DEBUG"
    config.home_dir = str(tmp_path)
    config.config_file = os.path.join(str(tmp_path), "config.json")
    config.claude_projects_dir = str(tmp_path / "projects")
    config.hf_cache_dir = str(tmp_path / ".huggingface")
    config.api_timeout = 5.0
    config.tokenizer_timeout = 5.0
    config.token_stats_enabled = False
    config.token_stats_interval = 1.0
    return config


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (fast, no external deps)")
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires services)"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        if "tests/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
