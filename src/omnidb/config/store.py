"""Read-only profile store.

``StaticProfileStore`` satisfies the ``ProfileResolver`` protocol from an
in-memory mapping, an :class:`OmniDBSettings` object or a YAML file. It is
the store used by tests and by deployments that keep profiles in a settings
file; anything backed by a database implements the same protocol elsewhere.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Union

from pydantic import ValidationError

from ..core.exceptions import Operation, StructuredError
from .models import ConnectionProfile, OmniDBSettings


class StaticProfileStore:
    """In-memory, read-only ``ProfileResolver``.

    Example:
        >>> store = StaticProfileStore.from_file("omnidb.yaml")
        >>> profile = await store.resolve_profile("orders")
    """

    def __init__(self, profiles: Iterable[ConnectionProfile] = ()) -> None:
        self._profiles: Dict[str, ConnectionProfile] = {}
        for profile in profiles:
            if profile.id in self._profiles:
                raise StructuredError.validation(
                    f"Duplicate profile id: {profile.id}",
                    operation=Operation.RESOLVE_PROFILE,
                )
            self._profiles[profile.id] = profile

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StaticProfileStore":
        """Build a store from ``{id: profile-dict}``."""
        try:
            settings = OmniDBSettings.model_validate({"profiles": dict(data)})
        except ValidationError as e:
            raise StructuredError.validation(
                f"Invalid profile configuration: {e}",
                operation=Operation.RESOLVE_PROFILE,
                cause=e,
            ) from e
        return cls(settings.profiles.values())

    @classmethod
    def from_settings(cls, settings: OmniDBSettings) -> "StaticProfileStore":
        return cls(settings.profiles.values())

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticProfileStore":
        """Build a store from the ``profiles`` section of a YAML settings file."""
        try:
            settings = OmniDBSettings.from_file(path)
        except ValidationError as e:
            raise StructuredError.validation(
                f"Invalid settings file {path}: {e}",
                operation=Operation.RESOLVE_PROFILE,
                cause=e,
            ) from e
        except OSError as e:
            raise StructuredError.not_found(
                f"Settings file not readable: {path}",
                operation=Operation.RESOLVE_PROFILE,
                cause=e,
            ) from e
        return cls.from_settings(settings)

    async def resolve_profile(self, config_id: Union[str, int]) -> ConnectionProfile:
        """Return the profile stored under ``config_id``.

        Raises:
            StructuredError: NOT_FOUND for unknown ids
        """
        key = str(config_id)
        profile = self._profiles.get(key)
        if profile is None:
            raise StructuredError.not_found(
                f"Unknown configuration id: {key}",
                operation=Operation.RESOLVE_PROFILE,
                context={"config_id": key},
            )
        return profile

    def ids(self) -> List[str]:
        return sorted(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, config_id: object) -> bool:
        return str(config_id) in self._profiles
