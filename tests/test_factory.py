"""
Tests for LiveFactory: production ticks, visibility memory, data and destruction.
"""

import pytest

from live.factory import split_evenly
from realtime.packet_type import PacketType
from stores import FactoryNotFound, ModelType

from conftest import ORIGIN, north_of, set_balance


@pytest.mark.parametrize("total, count, expected", [
    (10, 3, [4, 4, 2]),
    (7, 3, [3, 3, 1]),
    (0, 3, [0, 0, 0]),
    (2, 3, [1, 1, 0]),
    (5, 0, []),
])
def test_split_evenly(total, count, expected):
    assert split_evenly(total, count) == expected


async def test_tick_consumes_inputs_until_short(store, game_config, manager, world):
    """Level 1 with 20 in per cycle and 10 out: 50 -> 30 -> 10, then the tick stalls."""
    game_config.factory.production_in_per_level = 20
    game_config.factory.production_out_factor = 10
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 50})
    game = await manager.get_game(world.game_id)
    factory = await game.factory_manager.get(world.factory_id)

    assert await factory.tick() is True
    assert await factory.get_contents() == (30, 10)
    assert await factory.tick() is True
    assert await factory.get_contents() == (10, 20)
    assert await factory.tick() is False
    assert await factory.get_contents() == (10, 20)


async def test_tick_pushes_data_to_viewers(store, dispatcher, game, world):
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 10})
    factory = await game.factory_manager.get(world.factory_id)

    assert await factory.tick()
    # team members see their factory wherever they are, the enemy has no location
    receivers = {s.user_id for s in dispatcher.sent if s.packet_type == PacketType.FACTORY_DATA}
    assert receivers == {"alice", "bob", "dave", "sam"}


async def test_update_visibility_state_pushes_only_on_change(dispatcher, game, world):
    carol = await game.get_user("carol")
    factory = await game.factory_manager.get(world.factory_id)

    await carol.update_location(north_of(ORIGIN, 3))
    assert len(dispatcher.packets(PacketType.FACTORY_DATA, user_id="carol")) == 1

    assert await factory.update_visibility_state(carol) is False
    assert len(dispatcher.packets(PacketType.FACTORY_DATA, user_id="carol")) == 1

    await carol.update_location(north_of(ORIGIN, 500))
    packets = dispatcher.packets(PacketType.FACTORY_DATA, user_id="carol")
    assert len(packets) == 2
    assert packets[-1]["data"] == {"visible": False}


async def test_remembered_range_uses_active_radius(game, world):
    alice = await game.get_user("alice")
    factory = await game.factory_manager.get(world.factory_id)

    assert factory.get_effective_range("alice", 1) == 12
    await alice.update_location(north_of(ORIGIN, 3))
    assert factory.is_remembered_in_range("alice")
    assert factory.get_effective_range("alice", 1) == 7


async def test_send_data_hides_internals_from_non_viewers(game, world):
    carol = await game.get_user("carol")
    factory = await game.factory_manager.get(world.factory_id)

    assert await factory.send_data(carol) == {"visible": False}


async def test_send_data_for_ally(game, world):
    alice = await game.get_user("alice")
    factory = await game.factory_manager.get(world.factory_id)
    await alice.update_location(ORIGIN)

    data = await factory.send_data(alice)
    assert data["name"] == "Red Lab"
    assert data["teamName"] == "Red"
    assert data["creatorName"] == "Alice"
    assert data["level"] == 1
    assert data["nextLevelCost"] == game.config.level_cost(2)
    assert data["productionIn"] == game.config.production_in(1)
    assert data["visible"] and data["ally"] and data["inRange"] and data["canModify"]


async def test_can_modify_needs_team_and_range(game, world):
    alice, carol = await game.get_user("alice"), await game.get_user("carol")
    factory = await game.factory_manager.get(world.factory_id)

    await alice.update_location(north_of(ORIGIN, 30))
    assert not await factory.can_modify(alice)
    await alice.update_location(north_of(ORIGIN, 2))
    assert await factory.can_modify(alice)

    await carol.update_location(north_of(ORIGIN, 2))
    assert await factory.is_user_in_range(carol)
    assert not await factory.can_modify(carol)


async def test_destroy_spreads_contents(store, dispatcher, game, world):
    """10 in and 7 out over three teammates: ceil shares capped by what is left."""
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 10, "out": 7})
    factory = await game.factory_manager.get(world.factory_id)

    shares = await factory.destroy(spread_contents=True)

    assert shares == {"alice": (4, 3), "bob": (4, 3), "dave": (2, 1)}
    for user_id, (goods_in, goods_out) in shares.items():
        values = await store.get_fields(ModelType.GAME_USER, world.game_users[user_id], ("in", "out"))
        assert values == {"in": goods_in, "out": goods_out}

    with pytest.raises(FactoryNotFound):
        await store.get_factory(world.factory_id)
    assert game.factory_manager.get_loaded(world.factory_id) is None
    assert factory.destroyed

    notified = {s.user_id for s in dispatcher.sent if s.packet_type == PacketType.FACTORY_DESTROYED}
    assert notified == {"alice", "bob", "dave", "carol", "sam"}


async def test_destroy_without_spreading_loses_contents(store, game, world):
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 10, "out": 7})
    factory = await game.factory_manager.get(world.factory_id)

    assert await factory.destroy(spread_contents=False) == {}
    values = await store.get_fields(ModelType.GAME_USER, world.game_users["alice"], ("in", "out"))
    assert values == {"in": 0, "out": 0}


async def test_destroyed_factory_no_longer_ticks(store, game, world):
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 10})
    factory = await game.factory_manager.get(world.factory_id)
    await factory.destroy()

    assert await factory.tick() is False


async def test_money_does_not_move_on_destroy(store, game, world):
    await set_balance(store, world.game_users["alice"], money=42)
    factory = await game.factory_manager.get(world.factory_id)
    await factory.destroy()

    assert await store.get_field(ModelType.GAME_USER, world.game_users["alice"], "money") == 42


async def test_is_visible_for(game, world):
    alice, carol, sam = [await game.get_user(u) for u in ("alice", "carol", "sam")]
    factory = await game.factory_manager.get(world.factory_id)

    assert await factory.is_visible_for(alice)
    assert await factory.is_visible_for(sam)
    assert not await factory.is_visible_for(None)

    assert not await factory.is_visible_for(carol)
    await carol.update_location(north_of(ORIGIN, 30))
    assert not await factory.is_visible_for(carol)
    await carol.update_location(north_of(ORIGIN, 5))
    assert await factory.is_visible_for(carol)
