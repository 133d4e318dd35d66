"""OmniDB configuration.

Modules:
    models: pydantic models for profiles, pools, logging and settings files
    store: Read-only profile store

Example:
    >>> from omnidb.config import OmniDBSettings, StaticProfileStore
    >>> settings = OmniDBSettings.from_file("omnidb.yaml")
    >>> store = StaticProfileStore.from_settings(settings)
"""

from .models import (
    BaseConfig,
    ConnectionProfile,
    LoggingConfig,
    OmniDBSettings,
    PoolConfig,
)
from .store import StaticProfileStore

__all__ = [
    "BaseConfig",
    "ConnectionProfile",
    "LoggingConfig",
    "OmniDBSettings",
    "PoolConfig",
    "StaticProfileStore",
]
