"""
Tests for SqliteModelStore field access, validation and role lookups.
"""

import asyncio

import pytest

from stores import (
    FactoryNotFound,
    GameNotFound,
    InvalidValue,
    ModelType,
    StoreUnavailable,
    create_model_store,
)


class DictCache:
    """In-memory stand-in for infrastructure.redis.FieldCache."""

    def __init__(self):
        self.values = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, expire_seconds):
        self.values[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)


class GatedCache(DictCache):
    """Holds every `set` until released, like a slow cache round trip."""

    def __init__(self):
        super().__init__()
        self.setting = asyncio.Event()
        self.release = asyncio.Event()

    async def set(self, key, value, expire_seconds):
        self.setting.set()
        await self.release.wait()
        await super().set(key, value, expire_seconds)


async def test_add_to_field_refuses_to_go_negative(store, world):
    factory_id = world.factory_id
    assert await store.add_to_field(ModelType.FACTORY, factory_id, "in", 5) == 5
    with pytest.raises(InvalidValue):
        await store.add_to_field(ModelType.FACTORY, factory_id, "in", -6)
    assert await store.get_field(ModelType.FACTORY, factory_id, "in") == 5


async def test_add_to_field_needs_whole_goods(store, world):
    with pytest.raises(InvalidValue):
        await store.add_to_field(ModelType.FACTORY, world.factory_id, "in", 1.5)


async def test_invalid_values_are_rejected_before_writing(store, world):
    with pytest.raises(InvalidValue):
        await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 3, "out": -1})
    with pytest.raises(InvalidValue):
        await store.set_field(ModelType.FACTORY, world.factory_id, "level", 0)
    with pytest.raises(InvalidValue):
        await store.set_field(ModelType.FACTORY, world.factory_id, "team", "blue")
    with pytest.raises(InvalidValue):
        await store.get_field(ModelType.FACTORY, world.factory_id, "colour")
    assert await store.get_field(ModelType.FACTORY, world.factory_id, "in") == 0


async def test_missing_rows(store, world):
    with pytest.raises(FactoryNotFound):
        await store.get_field(ModelType.FACTORY, "missing", "in")
    with pytest.raises(FactoryNotFound):
        await store.add_to_field(ModelType.FACTORY, "missing", "in", 1)
    with pytest.raises(GameNotFound):
        await store.get_game("missing")
    assert await store.get_game_stage("missing") is None


async def test_get_returns_whole_document(store, world):
    doc = await store.get(ModelType.GAME_USER, world.game_users["sam"])
    assert doc["id"] == world.game_users["sam"]
    assert doc["spectator"] is True
    assert doc["team"] is None


async def test_user_state(store, world):
    assert await store.get_user_state("g1", "alice") == {
        "player": True, "special": False, "spectator": False, "requested": False,
    }
    assert await store.get_user_state("g1", "sam") == {
        "player": False, "special": False, "spectator": True, "requested": False,
    }
    assert await store.get_user_state("g1", "rita") == {
        "player": False, "special": False, "spectator": False, "requested": True,
    }
    assert await store.get_user_state("g1", "stranger") == {
        "player": False, "special": False, "spectator": False, "requested": False,
    }


async def test_team_queries(store, world):
    assert [u["user"] for u in await store.get_game_users_for_team("red")] == ["alice", "bob", "dave"]
    assert await store.get_factory_count_for_team("red") == 1
    assert [t["id"] for t in await store.get_teams_for_game("g1")] == ["blue", "red"]
    assert len(await store.get_game_users("g1", requested=False)) == 5


async def test_field_cache_is_read_and_invalidated(store, world):
    cache = DictCache()
    cached_store = create_model_store(store.db_path, cache=cache)
    await cached_store.init()
    try:
        assert await cached_store.get_field(ModelType.FACTORY, world.factory_id, "level") == 1
        assert cache.values

        await cached_store.set_field(ModelType.FACTORY, world.factory_id, "level", 3)
        assert cache.values == {}
        assert await cached_store.get_field(ModelType.FACTORY, world.factory_id, "level") == 3
    finally:
        await cached_store.close()


async def test_uninitialized_store_is_unavailable(tmp_path):
    store = create_model_store(str(tmp_path / "nothing.db"))
    with pytest.raises(StoreUnavailable):
        await store.get_game_stage("g1")


async def test_write_during_cache_fill_is_not_hidden(store, world):
    cache = GatedCache()
    cached_store = create_model_store(store.db_path, cache=cache)
    await cached_store.init()
    try:
        reading = asyncio.ensure_future(cached_store.get_field(ModelType.FACTORY, world.factory_id, "level"))
        await cache.setting.wait()

        assert await cached_store.add_to_field(ModelType.FACTORY, world.factory_id, "level", 1) == 2
        cache.release.set()

        assert await reading == 1
        assert cache.values == {}
        assert await cached_store.get_field(ModelType.FACTORY, world.factory_id, "level") == 2
    finally:
        await cached_store.close()
