"""Unit tests for docstore.db — engine registry and session scope."""

import pytest

from docstore.db import Base, EngineRegistry, StoreItem, session_scope


@pytest.fixture
def registry(tmp_path):
    reg = EngineRegistry()
    reg.register("test", f"sqlite:///{tmp_path / 'reg.db'}")
    Base.metadata.create_all(reg.get("test"))
    yield reg
    reg.dispose()


class TestEngineRegistry:
    def test_register_and_get(self, registry):
        assert registry.registered_names == ["test"]
        assert registry.get("test") is not None

    def test_unknown_name(self, registry):
        with pytest.raises(KeyError):
            registry.get("missing")
        with pytest.raises(KeyError):
            registry.get_session_factory("missing")

    def test_health_check(self, registry):
        assert registry.health_check("test") is True

    def test_reregister_replaces(self, registry, tmp_path):
        old = registry.get("test")
        registry.register("test", f"sqlite:///{tmp_path / 'other.db'}")
        assert registry.get("test") is not old

    def test_dispose_one(self, registry):
        registry.dispose("test")
        assert registry.registered_names == []


class TestSessionScope:
    def test_commits(self, registry):
        factory = registry.get_session_factory("test")
        with session_scope(factory) as session:
            session.add(StoreItem(table_name="t", item_key="k", data="{}", version=1))
        with session_scope(factory) as session:
            assert session.get(StoreItem, ("t", "k")).data == "{}"

    def test_rolls_back_on_error(self, registry):
        factory = registry.get_session_factory("test")
        with pytest.raises(RuntimeError):
            with session_scope(factory) as session:
                session.add(StoreItem(table_name="t", item_key="k", data="{}", version=1))
                session.flush()
                raise RuntimeError("boom")
        with session_scope(factory) as session:
            assert session.get(StoreItem, ("t", "k")) is None

    def test_repr(self):
        item = StoreItem(table_name="docs", item_key="readme", data="{}", version=3)
        assert "readme" in repr(item) and "version=3" in repr(item)
