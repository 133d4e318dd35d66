"""Logging-specific test configuration and fixtures."""

import logging

import pytest
import structlog

from omnidb.logging.factory import LoggerFactory


@pytest.fixture
def logger_factory():
    """Create clean logger factory for testing."""
    factory = LoggerFactory()
    yield factory
    factory.shutdown()


@pytest.fixture(autouse=True)
def restore_logging_state():
    """Restore structlog and root logger configuration after each test."""
    saved_config = structlog.get_config()
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level

    yield

    structlog.configure(**saved_config)
    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_level)
