"""Shared test configuration for dstatus tests."""

import pytest

from dstatus.core.logging import setup_logging


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    # Reuse the application logging pipeline so structlog processors behave
    # identically in tests.
    setup_logging(json_logs=False, log_level_name="DEBUG")


@pytest.fixture(autouse=True)
def restore_logging():
    """Reset logging after tests that reconfigure it (e.g. through the CLI)."""
    yield
    setup_logging(json_logs=False, log_level_name="DEBUG")


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Run with no config file or environment overrides in reach."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    for name in ("ENCODER__BLOCK_SIZE", "ENCODER__CONTENT_TYPE", "LOGGING__LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
