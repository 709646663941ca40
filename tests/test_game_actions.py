"""
Tests for player actions: location, purchases, factory management and shops.
"""

import pytest
import pytest_asyncio

from realtime.packet_type import PacketType
from services import game_actions
from stores import ActionRejected, ModelType, Stage

from conftest import ORIGIN, north_of, set_balance


async def balance(store, world, user_id):
    return await store.get_fields(ModelType.GAME_USER, world.game_users[user_id], ("money", "in", "out", "strength"))


async def factory_values(store, factory_id):
    return await store.get_fields(ModelType.FACTORY, factory_id, ("level", "defence", "in", "out"))


# -------------------------------------------------
# Location
# -------------------------------------------------

async def test_update_location_stores_position_and_answers_snapshot(dispatcher, game, world):
    user = await game_actions.update_location(game.manager, world.game_id, "carol", north_of(ORIGIN, 3))

    assert user.location == north_of(ORIGIN, 3)
    assert user.has_recent_location()
    # entered the enemy factory's detection range
    assert len(dispatcher.packets(PacketType.FACTORY_DATA, user_id="carol")) == 1
    snapshots = dispatcher.packets(PacketType.GAME_LOCATIONS_UPDATE)
    assert len(snapshots) == 1
    assert snapshots[0]["game"] == world.game_id


@pytest.mark.parametrize("user_id", ["sam", "rita", "stranger"])
async def test_update_location_requires_player_role(game, world, user_id):
    with pytest.raises(ActionRejected):
        await game_actions.update_location(game.manager, world.game_id, user_id, ORIGIN)


async def test_update_location_requires_active_game(store, manager, world):
    lobby = await store.create_game("Lobby", stage=Stage.LOBBY)
    with pytest.raises(ActionRejected, match="isn't active"):
        await game_actions.update_location(manager, lobby, "alice", ORIGIN)


# -------------------------------------------------
# Strength
# -------------------------------------------------

async def test_buy_strength(store, dispatcher, game, world):
    offer = game.config.strength_upgrades(1)[0]

    bought = await game_actions.buy_strength(game.manager, world.game_id, "alice", 0, offer.cost, offer.value)

    assert bought == offer
    values = await balance(store, world, "alice")
    assert values["money"] == 500 - offer.cost
    assert values["strength"] == 1 + offer.value
    assert "Transaction succeed!" in dispatcher.messages(user_id="alice")
    assert dispatcher.packets(PacketType.GAME_DATA, user_id="alice")


async def test_buy_strength_with_stale_prices(store, game, world):
    offer = game.config.strength_upgrades(1)[0]
    with pytest.raises(ActionRejected, match="prices have changed"):
        await game_actions.buy_strength(game.manager, world.game_id, "alice", 0, offer.cost + 5, offer.value)
    with pytest.raises(ActionRejected, match="prices have changed"):
        await game_actions.buy_strength(game.manager, world.game_id, "alice", 99, offer.cost, offer.value)
    assert (await balance(store, world, "alice"))["money"] == 500


async def test_buy_strength_without_money(store, game, world):
    await set_balance(store, world.game_users["alice"], money=1)
    offer = game.config.strength_upgrades(1)[0]
    with pytest.raises(ActionRejected, match="enough money"):
        await game_actions.buy_strength(game.manager, world.game_id, "alice", 0, offer.cost, offer.value)


# -------------------------------------------------
# Factories
# -------------------------------------------------

async def test_build_factory(store, dispatcher, game, world):
    site = north_of(ORIGIN, 100)
    alice = await game.get_user("alice")
    await alice.update_location(site)
    cost = await game.calculate_factory_cost("red")

    factory = await game_actions.build_factory(game.manager, world.game_id, "alice", "  Second   Lab ")

    assert factory.location == site
    assert factory.team_id == "red"
    assert await factory.get_name() == "Second Lab"
    assert (await balance(store, world, "alice"))["money"] == 500 - cost
    assert dispatcher.packets(PacketType.FACTORY_BUILD_RESPONSE, user_id="alice") == [
        {"game": world.game_id, "factory": factory.factory_id}
    ]
    assert game.get_team_factory_count("red") == 2


@pytest.mark.parametrize("name", ["", "   ", "x" * 40, "Server", "<script>"])
async def test_build_factory_rejects_bad_names(game, world, name):
    with pytest.raises(ActionRejected, match="Invalid factory name"):
        await game_actions.build_factory(game.manager, world.game_id, "alice", name)


async def test_build_factory_needs_location(game, world):
    with pytest.raises(ActionRejected, match="location is unknown"):
        await game_actions.build_factory(game.manager, world.game_id, "bob", "Lab")


async def test_build_factory_needs_player(game, world):
    with pytest.raises(ActionRejected, match="must be a player"):
        await game_actions.build_factory(game.manager, world.game_id, "sam", "Lab")


async def test_build_factory_needs_money(store, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], money=5)
    with pytest.raises(ActionRejected, match="enough money"):
        await game_actions.build_factory(game.manager, world.game_id, "alice", "Lab")
    assert game.get_team_factory_count("red") == 1


async def test_deposit_and_withdraw(store, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], **{"in": 10})
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"out": 7})

    assert await game_actions.deposit_in(game.manager, world.factory_id, "alice", 4) == 4
    assert (await balance(store, world, "alice"))["in"] == 6
    assert (await factory_values(store, world.factory_id))["in"] == 4

    assert await game_actions.deposit_in(game.manager, world.factory_id, "alice", None, take_all=True) == 6
    assert (await balance(store, world, "alice"))["in"] == 0

    assert await game_actions.withdraw_out(game.manager, world.factory_id, "alice", None, take_all=True) == 7
    assert (await balance(store, world, "alice"))["out"] == 7
    assert (await factory_values(store, world.factory_id))["out"] == 0


async def test_deposit_refuses_more_than_available(store, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], **{"in": 3})

    with pytest.raises(ActionRejected):
        await game_actions.deposit_in(game.manager, world.factory_id, "alice", 4)
    with pytest.raises(ActionRejected):
        await game_actions.deposit_in(game.manager, world.factory_id, "alice", 0)
    assert (await balance(store, world, "alice"))["in"] == 3


async def test_deposit_needs_team_and_range(store, game, world):
    alice, carol = await game.get_user("alice"), await game.get_user("carol")
    await alice.update_location(north_of(ORIGIN, 100))
    await carol.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], **{"in": 3})
    await set_balance(store, world.game_users["carol"], **{"in": 3})

    with pytest.raises(ActionRejected, match="can't modify"):
        await game_actions.deposit_in(game.manager, world.factory_id, "alice", 1)
    with pytest.raises(ActionRejected, match="can't modify"):
        await game_actions.deposit_in(game.manager, world.factory_id, "carol", 1)


async def test_unknown_factory(game):
    with pytest.raises(ActionRejected, match="doesn't exist"):
        await game_actions.deposit_in(game.manager, "missing", "alice", 1)


async def test_buy_factory_level(store, dispatcher, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], money=1000)
    price = game.config.level_cost(2)

    with pytest.raises(ActionRejected, match="prices have changed"):
        await game_actions.buy_factory_level(game.manager, world.factory_id, "alice", price - 100)

    assert await game_actions.buy_factory_level(game.manager, world.factory_id, "alice", price) == 2
    assert (await balance(store, world, "alice"))["money"] == 1000 - price
    assert "Transaction succeed!" in dispatcher.messages(user_id="alice")


async def test_buy_factory_defence(store, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await set_balance(store, world.game_users["alice"], money=10000)
    offers = game.config.defence_upgrades(7)
    offer = offers[-1]

    defence = await game_actions.buy_factory_defence(
        game.manager, world.factory_id, "alice", len(offers) - 1, offer.cost, offer.value
    )

    assert defence == 7 + offer.value
    assert (await balance(store, world, "alice"))["money"] == 10000 - offer.cost


async def test_destroy_factory_keeping_contents(store, dispatcher, game, world):
    alice = await game.get_user("alice")
    await alice.update_location(ORIGIN)
    await store.set_fields(ModelType.FACTORY, world.factory_id, {"in": 10, "out": 7})

    shares = await game_actions.destroy_factory(game.manager, world.factory_id, "alice", True)

    assert shares == {"alice": (4, 3), "bob": (4, 3), "dave": (2, 1)}
    assert dispatcher.packets(PacketType.FACTORY_DESTROYED, user_id="carol")
    assert game.get_team_factory_count("red") == 0


async def test_destroy_factory_rules(game, world):
    carol = await game.get_user("carol")
    await carol.update_location(ORIGIN)
    with pytest.raises(ActionRejected, match="own team"):
        await game_actions.destroy_factory(game.manager, world.factory_id, "carol", False)

    # bob is far away: he may only demolish without taking the goods
    with pytest.raises(ActionRejected, match="in range"):
        await game_actions.destroy_factory(game.manager, world.factory_id, "bob", True)
    assert await game_actions.destroy_factory(game.manager, world.factory_id, "bob", False) == {}


# -------------------------------------------------
# Shops
# -------------------------------------------------

async def open_shop(game):
    alice, bob = await game.get_user("alice"), await game.get_user("bob")
    await alice.update_location(ORIGIN)
    await bob.update_location(north_of(ORIGIN, 5))
    assert await game.shop_manager.schedule_user(alice)
    return await game.shop_manager.promote("alice")


async def test_shop_sell_in(store, dispatcher, game, world):
    shop = await open_shop(game)
    expected_goods = round(100 / shop.in_sell_price)
    expected_paid = round(expected_goods * shop.in_sell_price)

    goods, paid = await game_actions.shop_sell_in(game.manager, shop.token, "bob", 100)

    assert (goods, paid) == (expected_goods, expected_paid)
    values = await balance(store, world, "bob")
    assert values["in"] == goods
    assert values["money"] == 500 - paid
    assert "Transaction succeed!" in dispatcher.messages(user_id="bob")


async def test_shop_sell_in_rejections(store, game, world):
    shop = await open_shop(game)

    with pytest.raises(ActionRejected, match="no nothin'"):
        await game_actions.shop_sell_in(game.manager, shop.token, "bob", 1)
    with pytest.raises(ActionRejected, match="this much money"):
        await game_actions.shop_sell_in(game.manager, shop.token, "bob", 501)
    with pytest.raises(ActionRejected, match="Couldn't find shop"):
        await game_actions.shop_sell_in(game.manager, "unknown", "bob", 100)
    # carol has no location and so is out of range
    with pytest.raises(ActionRejected, match="not in range"):
        await game_actions.shop_sell_in(game.manager, shop.token, "carol", 100)
    assert (await balance(store, world, "bob"))["money"] == 500


async def test_shop_sell_in_spending_everything(store, game, world):
    shop = await open_shop(game)

    goods, paid = await game_actions.shop_sell_in(game.manager, shop.token, "bob", None, take_all=True)

    assert paid <= 500
    assert (await balance(store, world, "bob"))["money"] == 500 - paid
    assert goods > 0


async def test_shop_buy_out(store, game, world):
    shop = await open_shop(game)
    await set_balance(store, world.game_users["bob"], out=5)

    goods, earned = await game_actions.shop_buy_out(game.manager, shop.token, "bob", None, take_all=True)

    assert goods == 5
    assert earned == round(5 * shop.out_buy_price)
    values = await balance(store, world, "bob")
    assert values["out"] == 0
    assert values["money"] == 500 + earned


# -------------------------------------------------
# Data requests
# -------------------------------------------------

async def test_request_game_info(dispatcher, manager, world):
    info = await game_actions.request_game_info(manager, world.game_id, "sam", "sid-9")
    assert info["stage"] == Stage.ACTIVE
    assert info["roles"]["spectator"] is True
    assert dispatcher.packets(PacketType.GAME_INFO, sids="sid-9") == [info]

    with pytest.raises(ActionRejected):
        await game_actions.request_game_info(manager, "missing", "sam")


async def test_request_factory_data(dispatcher, game, world):
    data = await game_actions.request_factory_data(game.manager, world.factory_id, "carol", "sid-3")
    assert data == {"visible": False}
    assert dispatcher.packets(PacketType.FACTORY_DATA, sids="sid-3")


async def test_request_game_data_for_outsider(game, world):
    with pytest.raises(ActionRejected):
        await game_actions.request_game_data(game.manager, world.game_id, "rita")


# -------------------------------------------------
# Stage changes
# -------------------------------------------------

@pytest_asyncio.fixture
async def lobby(store, world):
    """A second game in the lobby, created by alice, with alice and bob on one team."""
    game_id = await store.create_game("Uptown", stage=Stage.LOBBY, creator_user_id="alice", game_id="g2")
    green = await store.create_team(game_id, "Green", team_id="green")
    for user_id in ("alice", "bob"):
        await store.add_game_user(game_id, user_id, team_id=green, money=100)
    return game_id


async def test_start_and_finish_a_game(store, dispatcher, manager, lobby):
    dispatcher.connected = {"alice", "bob"}

    assert await game_actions.change_stage(manager, lobby, "alice", Stage.ACTIVE) == Stage.ACTIVE

    assert await store.get_game_stage(lobby) == Stage.ACTIVE
    assert manager.get_loaded_game(lobby) is not None
    changed = {"game": lobby, "gameName": "Uptown", "stage": 1}
    assert dispatcher.packets(PacketType.GAME_STAGE_CHANGED, user_id="alice") == [changed]
    assert dispatcher.packets(PacketType.GAME_STAGE_CHANGED, user_id="bob") == [changed]
    assert {p["game"] for p in dispatcher.packets(PacketType.GAME_DATA)} == {lobby}

    dispatcher.clear()
    await game_actions.change_stage(manager, lobby, "alice", Stage.FINISHED)

    assert manager.get_loaded_game(lobby) is None
    assert await manager.get_game(lobby) is None
    assert dispatcher.packets(PacketType.GAME_STAGE_CHANGED, user_id="bob") == [{**changed, "stage": 2}]
    assert dispatcher.packets(PacketType.GAME_DATA) == []


async def test_finished_game_stops_producing(store, manager, lobby):
    factory_id = await store.add_factory(lobby, "green", "alice", "Green Lab", ORIGIN, level=1, defence=7, in_amount=50)
    await game_actions.change_stage(manager, lobby, "alice", Stage.ACTIVE)
    assert await manager.tick() == 1

    await game_actions.change_stage(manager, lobby, "alice", Stage.FINISHED)

    assert await manager.tick() == 0
    goods_in = await store.get_field(ModelType.FACTORY, factory_id, "in")
    assert goods_in == 50 - manager.config_provider(lobby).production_in(1)


@pytest.mark.parametrize("user_id, stage, message", [
    ("bob", Stage.ACTIVE, "permission"),
    ("alice", Stage.LOBBY, "Failed to change game stage."),
    ("alice", 7, "Failed to change game stage."),
])
async def test_change_stage_rejections(store, manager, lobby, user_id, stage, message):
    with pytest.raises(ActionRejected, match=message):
        await game_actions.change_stage(manager, lobby, user_id, stage)
    assert await store.get_game_stage(lobby) == Stage.LOBBY


async def test_change_stage_to_current_stage(manager, lobby):
    await game_actions.change_stage(manager, lobby, "alice", Stage.ACTIVE)
    with pytest.raises(ActionRejected, match="already in this stage"):
        await game_actions.change_stage(manager, lobby, "alice", Stage.ACTIVE)


async def test_change_stage_of_unknown_game(manager, world):
    with pytest.raises(ActionRejected):
        await game_actions.change_stage(manager, "missing", "alice", Stage.ACTIVE)
