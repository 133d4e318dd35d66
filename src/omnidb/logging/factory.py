"""Logger factory and configuration for OmniDB.

This module provides centralized logger creation and the structlog
processor chain. Nothing is configured at import time: the embedding
application calls :func:`configure_logging` (or
:meth:`LoggerFactory.configure_from_config`) during bootstrap, and loggers
obtained before that use structlog's defaults.

Functions:
    get_logger: Convenience function for getting loggers
    get_performance_logger: Convenience function for performance loggers
    configure_logging: Configure logging system globally

Example:
    >>> from omnidb.logging import get_logger, configure_logging
    >>> configure_logging(level="INFO", format="json")
    >>> logger = get_logger(__name__)
    >>> logger.info("Registry ready", engines=7)
"""

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, MutableMapping, Optional

import structlog

from ..config.models import LoggingConfig
from ..core.redaction import mask_mapping
from .performance import PerformanceLogger
from .structured import StructuredLogger


@dataclass
class LoggerConfig:
    """Configuration for the logging system.

    Attributes:
        level: Log level
        format: Log format (json, text)
        console_output: Enable console output on stderr
    """

    level: str = "INFO"
    format: str = "json"
    console_output: bool = True


def redact_event(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking credentials in every event."""
    return mask_mapping(event_dict)


class LoggerFactory:
    """Factory for creating and configuring OmniDB loggers.

    Example:
        >>> factory = LoggerFactory()
        >>> factory.configure_from_config(LoggingConfig(level="DEBUG", format="text"))
        >>> logger = factory.get_logger("omnidb.registry")
        >>> perf_logger = factory.get_performance_logger("connector.mysql")
    """

    def __init__(self, config: Optional[LoggerConfig] = None) -> None:
        self.config = config or LoggerConfig()
        self.initialized = False
        self._loggers: Dict[str, StructuredLogger] = {}
        self._performance_loggers: Dict[str, PerformanceLogger] = {}

    def configure_from_config(self, logging_config: LoggingConfig) -> None:
        """Configure factory from a LoggingConfig instance."""
        self.config = LoggerConfig(
            level=logging_config.level,
            format=logging_config.format,
            console_output=logging_config.console_output,
        )
        self._configure_logging_system()

    def configure_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Configure factory from a dictionary, ignoring unknown keys."""
        for key in ("level", "format", "console_output"):
            if key in config_dict:
                setattr(self.config, key, config_dict[key])
        self._configure_logging_system()

    def _configure_logging_system(self) -> None:
        level = getattr(logging, self.config.level.upper(), None)
        if not isinstance(level, int):
            raise ValueError(f"Invalid log level: {self.config.level}")

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        if self.config.console_output:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(handler)

        structlog.configure(
            processors=self.build_processors(),
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )
        self.initialized = True

    def build_processors(self) -> List[Any]:
        """Return the structlog processor chain for the current format."""
        processors: List[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_event,
        ]
        if self.config.format.lower() == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))
        return processors

    def get_logger(self, name: str) -> StructuredLogger:
        """Get or create a structured logger."""
        if name not in self._loggers:
            self._loggers[name] = StructuredLogger(name)
        return self._loggers[name]

    def get_performance_logger(self, name: str, *, auto_log: bool = True) -> PerformanceLogger:
        """Get or create a performance logger."""
        cache_key = f"{name}_{auto_log}"
        if cache_key not in self._performance_loggers:
            self._performance_loggers[cache_key] = PerformanceLogger(
                name=name,
                auto_log=auto_log,
                logger=self.get_logger(f"perf.{name}"),
            )
        return self._performance_loggers[cache_key]

    def shutdown(self) -> None:
        """Drop cached loggers and return structlog to its defaults."""
        self._loggers.clear()
        self._performance_loggers.clear()
        if self.initialized:
            structlog.reset_defaults()
        self.initialized = False

    def __repr__(self) -> str:
        return (
            f"LoggerFactory("
            f"level={self.config.level!r}, "
            f"format={self.config.format!r}, "
            f"initialized={self.initialized})"
        )


# Global logger factory instance
_global_factory = LoggerFactory()


def configure_logging(
    *,
    level: str = "INFO",
    format: str = "json",
    console_output: bool = True,
) -> None:
    """Configure OmniDB logging globally.

    Example:
        >>> configure_logging(level="DEBUG", format="text")
    """
    _global_factory.configure_from_dict(
        {"level": level, "format": format, "console_output": console_output}
    )


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger using the global factory.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Connector registered", engine="mysql")
    """
    return _global_factory.get_logger(name)


def get_performance_logger(name: str, *, auto_log: bool = True) -> PerformanceLogger:
    """Get or create a performance logger using the global factory."""
    return _global_factory.get_performance_logger(name, auto_log=auto_log)


def get_factory() -> LoggerFactory:
    return _global_factory
