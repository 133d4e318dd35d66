# src/omnidb/database/factory.py
"""Construction of the registry and the service facade.

Example:
    >>> store = StaticProfileStore.from_file("omnidb.yaml")
    >>> service = create_service(store)
    >>> await service.list_databases("orders-db")
"""

from typing import Iterable, Optional, Type

from ..config.models import OmniDBSettings, PoolConfig
from ..core.protocols import ProfileResolver
from ..logging import get_logger
from .base import BaseConnector
from .connectors import BUILTIN_CONNECTORS
from .lifecycle import ConnectionLifecycleManager
from .registry import ConnectorRegistry
from .service import DatabaseService

logger = get_logger("omnidb.factory")


def create_default_registry(
    pool_config: Optional[PoolConfig] = None,
    connector_classes: Iterable[Type[BaseConnector]] = BUILTIN_CONNECTORS,
) -> ConnectorRegistry:
    """Build a registry holding one instance of every built-in connector."""
    registry = ConnectorRegistry()
    for connector_class in connector_classes:
        connector = connector_class(pool_config)
        registry.register(connector.supported_engine(), connector)

    logger.info(
        "Connector registry created",
        engines=sorted(engine.code for engine in registry.supported_engines()),
        unimplemented=sorted(engine.code for engine in registry.unimplemented_engines()),
    )
    return registry


def create_service(
    store: ProfileResolver,
    *,
    settings: Optional[OmniDBSettings] = None,
    registry: Optional[ConnectorRegistry] = None,
) -> DatabaseService:
    """Wire registry, lifecycle manager and facade around a configuration store."""
    if registry is None:
        registry = create_default_registry(settings.pool if settings is not None else None)
    lifecycle = ConnectionLifecycleManager(registry)
    return DatabaseService(store, registry, lifecycle)
