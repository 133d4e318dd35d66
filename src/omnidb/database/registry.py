# src/omnidb/database/registry.py
"""Connector registry.

One registry instance is built at startup (see :mod:`omnidb.database.factory`)
and handed to every consumer. There is no module-level registry.
"""

import asyncio
from typing import Dict, List, Optional, Set, Union

from ..config.models import ConnectionProfile
from ..core.engines import EngineType
from ..core.exceptions import Operation, StructuredError
from ..core.redaction import redact_secrets
from ..logging import get_logger
from .base import BaseConnector

EngineRef = Union[EngineType, str]

SMOKE_TEST_TIMEOUT_MS = 5000


class ConnectorRegistry:
    """Maps engine types to connector instances.

    Example:
        >>> registry = ConnectorRegistry()
        >>> registry.register(EngineType.MYSQL, MySQLConnector())
        >>> registry.resolve("mysql")
        MySQLConnector(engine='mysql')
    """

    def __init__(self) -> None:
        self.logger = get_logger("omnidb.registry")
        self._connectors: Dict[EngineType, BaseConnector] = {}

    def register(self, engine: EngineRef, connector: BaseConnector) -> None:
        """Bind a connector to an engine, replacing any previous binding.

        Raises:
            StructuredError: VALIDATION if the connector serves a different engine
        """
        engine = EngineType.from_code(engine)
        if not isinstance(connector, BaseConnector):
            raise StructuredError.validation(
                f"Connector must extend BaseConnector, got {type(connector).__name__}",
                operation=Operation.RESOLVE_CONNECTOR,
            )
        if connector.supported_engine() is not engine:
            raise StructuredError.validation(
                f"{type(connector).__name__} serves {connector.supported_engine().code}, not {engine.code}",
                operation=Operation.RESOLVE_CONNECTOR,
            )

        existing = self._connectors.get(engine)
        if existing is not None and existing is not connector:
            self.logger.warning(
                "Overriding existing connector registration",
                engine=engine.code,
                existing_class=type(existing).__name__,
                new_class=type(connector).__name__,
            )

        self._connectors[engine] = connector
        self.logger.debug("Connector registered", engine=engine.code, class_name=type(connector).__name__)

    def unregister(self, engine: EngineRef) -> Optional[BaseConnector]:
        """Remove a binding and return the connector that was bound, if any."""
        engine = EngineType.from_code(engine)
        connector = self._connectors.pop(engine, None)
        if connector is not None:
            self.logger.info("Connector unregistered", engine=engine.code)
        return connector

    def resolve(self, engine: EngineRef) -> BaseConnector:
        """Return the connector for an engine or engine code.

        Raises:
            StructuredError: VALIDATION for an unknown code,
                UNSUPPORTED_ENGINE when no connector is registered
        """
        engine = EngineType.from_code(engine, operation=Operation.RESOLVE_CONNECTOR)
        connector = self._connectors.get(engine)
        if connector is None:
            raise StructuredError.unsupported_engine(
                f"No connector registered for engine: {engine.code}",
                operation=Operation.RESOLVE_CONNECTOR,
                context={"registered_engines": sorted(e.code for e in self._connectors)},
            )
        return connector

    def supported_engines(self) -> Set[EngineType]:
        return set(self._connectors)

    def is_supported(self, engine: EngineRef) -> bool:
        """True if a working connector is registered for the engine."""
        try:
            engine = EngineType.from_code(engine)
        except StructuredError:
            return False
        connector = self._connectors.get(engine)
        return connector is not None and connector.implemented

    def unimplemented_engines(self) -> List[EngineType]:
        """Known engines without a registered connector or with a placeholder one."""
        return [engine for engine in EngineType if not self.is_supported(engine)]

    def list_connectors(self) -> List[Dict[str, object]]:
        """Metadata for every registered connector."""
        return [
            {
                "engine": engine.code,
                "display_name": engine.display_name,
                "default_port": engine.default_port,
                "class_name": type(connector).__name__,
                "implemented": connector.implemented,
            }
            for engine, connector in sorted(self._connectors.items(), key=lambda item: item[0].code)
        ]

    async def _smoke_test(self, engine: EngineType, connector: BaseConnector, host: str) -> bool:
        profile = ConnectionProfile(
            id=f"smoke-{engine.code}",
            name=f"{engine.display_name} smoke test",
            engine_type=engine,
            host=host,
            timeout_ms=SMOKE_TEST_TIMEOUT_MS,
            query_timeout_ms=SMOKE_TEST_TIMEOUT_MS,
        )
        try:
            return await connector.test_connection(profile)
        except Exception as e:
            self.logger.warning("Smoke test raised", engine=engine.code,
                                error=redact_secrets(e), error_type=type(e).__name__)
            return False

    async def smoke_test_all(self, host: str = "localhost") -> Dict[EngineType, bool]:
        """Probe every registered connector against ``host`` on its default port.

        One connector failing never affects the others.
        """
        engines = list(self._connectors.items())
        results = await asyncio.gather(
            *(self._smoke_test(engine, connector, host) for engine, connector in engines)
        )
        outcome = {engine: result for (engine, _), result in zip(engines, results)}
        self.logger.info("Smoke test finished",
                         passed=sorted(e.code for e, ok in outcome.items() if ok),
                         failed=sorted(e.code for e, ok in outcome.items() if not ok))
        return outcome

    async def shutdown_all(self) -> None:
        """Shut every connector down, then clear the registry."""
        for engine, connector in list(self._connectors.items()):
            try:
                await connector.shutdown()
            except Exception as e:
                self.logger.warning("Connector shutdown failed", engine=engine.code, error=redact_secrets(e))
        self._connectors.clear()
        self.logger.info("Registry cleared")

    def __len__(self) -> int:
        return len(self._connectors)

    def __contains__(self, engine: object) -> bool:
        if isinstance(engine, (EngineType, str)):
            try:
                return EngineType.from_code(engine) in self._connectors
            except StructuredError:
                return False
        return False
