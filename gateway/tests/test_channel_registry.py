"""
Channel Registry tests - tenant scoping, upsert and cache behaviour.
"""

import pytest

from gateway.models.entities.channels import ChannelConfig
from gateway.models.schemas.channels import ConnectionTestResult
from gateway.services.channel_registry import ChannelRegistry
from gateway.tests.conftest import OTHER_TENANT, TENANT


class TestSave:

    def test_insert_generates_id(self, registry):
        channel = registry.save(TENANT, {"type": "slack", "name": "Support", "authentication": {"botToken": "xoxb"}})

        assert channel.id
        assert channel.tenant_id == TENANT
        assert channel.type == "slack"
        assert channel.enabled is True
        assert channel.authentication == {"botToken": "xoxb"}

    def test_update_is_partial(self, registry, make_channel):
        channel = make_channel("whatsapp", configuration={"phoneNumberId": "PN1"})

        updated = registry.save(TENANT, {"id": channel.id, "enabled": False})

        assert updated.id == channel.id
        assert updated.enabled is False
        assert updated.configuration == {"phoneNumberId": "PN1"}

    def test_cross_tenant_update_refused(self, registry, make_channel, store):
        channel = make_channel("webchat", name="Mine")

        assert registry.save(OTHER_TENANT, {"id": channel.id, "name": "Hijacked"}) is None
        assert store.get_channel(channel.id).name == "Mine"
        assert store.get_channel(channel.id).tenant_id == TENANT

    def test_many_channels_of_one_type(self, registry, make_channel):
        make_channel("slack", name="A")
        make_channel("slack", name="B")
        make_channel("slack", tenant_id=OTHER_TENANT, name="C")

        names = sorted(c.name for c in registry.list_by_tenant(TENANT))
        assert names == ["A", "B"]


class TestDelete:

    def test_delete_scoped_to_tenant(self, registry, make_channel):
        channel = make_channel()

        assert registry.delete(OTHER_TENANT, channel.id) is False
        assert registry.get(channel.id) is not None

        assert registry.delete(TENANT, channel.id) is True
        assert registry.get(channel.id) is None

    def test_delete_unknown_is_false(self, registry):
        assert registry.delete(TENANT, "nope") is False


class TestCache:

    def test_get_is_served_from_cache(self, store, make_channel):
        channel = make_channel()
        registry = ChannelRegistry(store)
        first = registry.get(channel.id)

        # A write behind the registry's back is invisible until invalidated
        store.save_channel(TENANT, {"id": channel.id, "name": "Renamed"})
        assert registry.get(channel.id) is first

    def test_save_invalidates(self, registry, make_channel):
        channel = make_channel(name="Before")
        registry.get(channel.id)

        registry.save(TENANT, {"id": channel.id, "name": "After"})
        assert registry.get(channel.id).name == "After"

    def test_cache_is_bounded(self, store, make_channel):
        registry = ChannelRegistry(store, cache_size=1)
        a = make_channel(name="A")
        b = make_channel(name="B")

        registry.get(a.id)
        registry.get(b.id)
        assert list(registry._cache) == [b.id]

    def test_get_for_tenant(self, registry, make_channel):
        channel = make_channel()
        assert registry.get_for_tenant(TENANT, channel.id).id == channel.id
        assert registry.get_for_tenant(OTHER_TENANT, channel.id) is None


class TestRecordTestResult:

    def test_records_and_refreshes(self, registry, make_channel):
        channel = make_channel()
        registry.get(channel.id)

        recorded = registry.record_test_result(
            TENANT, channel.id, ConnectionTestResult(success=False, message="boom"),
        )

        assert recorded is True
        result = registry.get(channel.id).test_results
        assert result["status"] == "error"
        assert result["message"] == "boom"
        assert result["timestamp"]

    def test_other_tenant_not_recorded(self, registry, make_channel):
        channel = make_channel()
        assert registry.record_test_result(
            OTHER_TENANT, channel.id, ConnectionTestResult(success=True, message="ok"),
        ) is False
        assert registry.get(channel.id).test_results is None


class TestUnitOfWork:

    def test_error_inside_session_rolls_back(self, store, make_channel):
        channel = make_channel(name="Kept")

        with pytest.raises(RuntimeError):
            with store.session() as db:
                db.query(ChannelConfig).filter(ChannelConfig.id == channel.id).update({ChannelConfig.name: "Lost"})
                raise RuntimeError("abort")

        assert store.get_channel(channel.id).name == "Kept"
