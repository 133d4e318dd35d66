"""Pytest configuration and shared fixtures.

This module provides pytest configuration and shared fixtures for all tests
in the OmniDB test suite.
"""

import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
import structlog
import yaml

from omnidb.config.models import ConnectionProfile

# Capture every structlog event instead of printing it
log_capture = structlog.testing.LogCapture()

structlog.configure(
    processors=[log_capture],
    logger_factory=structlog.testing.ReturnLoggerFactory(),
    cache_logger_on_first_use=True,
)


@pytest.fixture
def log_output() -> structlog.testing.LogCapture:
    """Captured log events of the current test."""
    log_capture.entries.clear()
    return log_capture


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def make_profile() -> Callable[..., ConnectionProfile]:
    """Factory for connection profiles with test defaults."""

    def _make(engine_type: str = "mysql", **overrides) -> ConnectionProfile:
        data = {
            "id": f"test_{engine_type}",
            "name": f"{engine_type} test",
            "engine_type": engine_type,
            "host": "localhost",
            "database": "testdb",
            "username": "test_user",
            "password": "test_password",
            "timeout_ms": 1000,
            "query_timeout_ms": 1000,
        }
        data.update(overrides)
        return ConnectionProfile(**data)

    return _make


@pytest.fixture
def mysql_profile(make_profile) -> ConnectionProfile:
    return make_profile("mysql")


@pytest.fixture
def postgres_profile(make_profile) -> ConnectionProfile:
    return make_profile("postgresql", database="appdb")


@pytest.fixture
def sample_settings_data() -> dict:
    """Sample settings file content."""
    return {
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "console_output": False,
        },
        "pool": {
            "min_size": 1,
            "max_size": 4,
            "acquire_timeout": 5,
        },
        "profiles": {
            "orders": {
                "name": "Orders",
                "engine_type": "mysql",
                "host": "db.internal",
                "database": "orders",
                "username": "app",
                "password": "s3cret",
            },
            "cache": {
                "engine_type": "redis",
                "host": "cache.internal",
                "database": "2",
                "enabled": False,
            },
        },
    }


@pytest.fixture
def settings_file(temp_dir: Path, sample_settings_data: dict) -> Path:
    """Create temporary settings file."""
    config_path = temp_dir / "omnidb.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_settings_data, f)
    return config_path


# Pytest markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower, real dependencies)"
    )
    config.addinivalue_line(
        "markers", "database: marks tests requiring database connection"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that take > 1 second"
    )


# Auto-mark tests based on their location
def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    tests_root = Path(config.rootdir) / "tests"
    for item in items:
        try:
            test_path = Path(item.fspath).relative_to(tests_root)
        except ValueError:
            continue

        if test_path.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif test_path.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)
