"""OmniDB - Multi-engine database access layer.

OmniDB exposes one asynchronous contract for connecting to, querying and
browsing relational, analytical and key-value databases. Outer layers (HTTP
handlers, CLIs) talk to a single service facade and receive structured
errors regardless of the engine behind a configuration.

Modules:
    core: Error model, engine catalogue and validation helpers
    config: Connection profiles and settings files
    logging: Structured logging framework
    database: Connectors, pools, registry and service facade

Example:
    Basic usage of OmniDB components:

    >>> from omnidb.config import OmniDBSettings, StaticProfileStore
    >>> from omnidb.database import create_service
    >>> from omnidb.logging import get_factory
    >>>
    >>> settings = OmniDBSettings.from_file("omnidb.yaml")
    >>> get_factory().configure_from_config(settings.logging)
    >>> service = create_service(StaticProfileStore.from_settings(settings), settings=settings)
    >>>
    >>> result = await service.execute_query("orders-db", "SELECT id FROM orders")
    >>> await service.shutdown()
"""

from . import core, config, logging, database

__version__ = "0.1.0"
__title__ = "OmniDB"
__description__ = "Multi-engine database access layer"
__author__ = "OmniDB Team"
__license__ = "MIT"

__all__ = [
    "core",
    "config",
    "logging",
    "database",
    "__version__",
    "__title__",
    "__description__",
    "__author__",
    "__license__",
]
