"""Unit tests for the static profile store."""

import pytest

from omnidb.config.models import ConnectionProfile, OmniDBSettings
from omnidb.config.store import StaticProfileStore
from omnidb.core.exceptions import ErrorKind, Operation, StructuredError
from omnidb.core.protocols import ProfileResolver


class TestStaticProfileStore:

    def test_satisfies_resolver_protocol(self):
        assert isinstance(StaticProfileStore(), ProfileResolver)

    @pytest.mark.asyncio
    async def test_resolve_by_string_and_int(self, make_profile):
        store = StaticProfileStore([make_profile(id="7")])

        assert (await store.resolve_profile("7")).id == "7"
        assert (await store.resolve_profile(7)).id == "7"

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self):
        store = StaticProfileStore()

        with pytest.raises(StructuredError) as exc_info:
            await store.resolve_profile("missing")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.operation is Operation.RESOLVE_PROFILE
        assert exc_info.value.context == {"config_id": "missing"}

    def test_duplicate_ids_rejected(self, make_profile):
        with pytest.raises(StructuredError) as exc_info:
            StaticProfileStore([make_profile(id="1"), make_profile("redis", id="1")])

        assert exc_info.value.kind is ErrorKind.VALIDATION

    def test_from_mapping(self):
        store = StaticProfileStore.from_mapping({
            "a": {"engine_type": "mysql", "host": "db-a"},
            "b": {"engine_type": "postgresql", "host": "db-b"},
        })

        assert store.ids() == ["a", "b"]
        assert len(store) == 2
        assert "a" in store

    def test_from_mapping_invalid_profile(self):
        with pytest.raises(StructuredError) as exc_info:
            StaticProfileStore.from_mapping({"a": {"engine_type": "nosuchdb", "host": "db"}})

        assert exc_info.value.kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_from_file(self, settings_file):
        store = StaticProfileStore.from_file(settings_file)

        profile = await store.resolve_profile("orders")
        assert isinstance(profile, ConnectionProfile)
        assert profile.host == "db.internal"

    def test_from_missing_file(self, temp_dir):
        with pytest.raises(StructuredError) as exc_info:
            StaticProfileStore.from_file(temp_dir / "absent.yaml")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_from_settings(self, sample_settings_data):
        settings = OmniDBSettings.model_validate(sample_settings_data)
        assert StaticProfileStore.from_settings(settings).ids() == ["cache", "orders"]
