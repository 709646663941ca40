"""
Player actions against live games.

Each action validates, mutates through the store, then pushes fresh data
to the affected clients. Refusals a player should see are raised as
`ActionRejected`; anything else propagates to the caller.

These functions are called from the real-time packet handlers
(realtime/handlers) and operate on the GameManager, not on sockets.
"""
from __future__ import annotations

import logging
from typing import Optional

from live.factory import LiveFactory
from live.fanout import join, join_each
from live.game import LiveGame
from live.game_manager import GameManager
from live.shop import LiveShop
from live.user import LiveUser
from live.visibility import teams_match
from models.coordinate import Coordinate
from realtime.dispatcher import Sids, message_payload
from realtime.packet_type import PacketType
from stores import ActionRejected, FactoryNotFound, GameNotFound, InvalidValue, ModelType, Stage
from utils.validation import FACTORY_NAME_MAX_LENGTH, clean_name, is_valid_name

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Transaction succeed!"


# -------------------------------------------------
# Lookups
# -------------------------------------------------

async def require_game(manager: GameManager, game_id: str) -> LiveGame:
    game = await manager.get_game(game_id)
    if game is None:
        raise ActionRejected("This game isn't active.")
    return game


async def require_user(game: LiveGame, user_id: str) -> LiveUser:
    user = await game.get_user(user_id)
    if user is None:
        raise ActionRejected("You're not part of this game.")
    return user


async def require_factory(manager: GameManager, factory_id: str) -> tuple[LiveGame, LiveFactory]:
    try:
        record = await manager.store.get_factory(factory_id)
    except FactoryNotFound:
        raise ActionRejected("This factory doesn't exist anymore.")
    game = await require_game(manager, record["game"])
    factory = await game.factory_manager.get(factory_id)
    if factory is None or factory.destroyed:
        raise ActionRejected("This factory doesn't exist anymore.")
    return game, factory


async def require_modifiable(manager: GameManager, factory_id: str, user_id: str) -> tuple[LiveGame, LiveFactory, LiveUser]:
    game, factory = await require_factory(manager, factory_id)
    user = await require_user(game, user_id)
    if not await factory.can_modify(user):
        raise ActionRejected("You can't modify this factory, you're not in range or not on its team.")
    return game, factory, user


def require_shop(manager: GameManager, token: str) -> tuple[LiveGame, LiveShop]:
    game, shop = manager.find_shop(token)
    if shop is None:
        raise ActionRejected(
            "Couldn't find shop. The shop you're trying to trade with might not be available anymore."
        )
    return game, shop


# -------------------------------------------------
# Helpers
# -------------------------------------------------

async def toast(manager: GameManager, user_id: str, message: str) -> None:
    await manager.dispatcher.send_packet_user(
        PacketType.MESSAGE_RESPONSE, message_payload(message, toast=True), user_id
    )


async def charge(manager: GameManager, game_user_id: str, amount: float) -> None:
    """Take money from a game user; a concurrent spend that empties the balance is a refusal."""
    if amount <= 0:
        return
    try:
        await manager.store.add_to_field(ModelType.GAME_USER, game_user_id, "money", -amount)
    except InvalidValue:
        raise ActionRejected("You don't have enough money.")


async def take_goods(manager: GameManager, model: ModelType, model_id: str, field: str, amount: int) -> None:
    try:
        await manager.store.add_to_field(model, model_id, field, -amount)
    except InvalidValue:
        raise ActionRejected("You don't have this much goods available.")


def resolve_amount(amount: Optional[int], take_all: bool, available: float) -> float:
    requested = available if take_all else amount
    if requested is None or requested < 0:
        raise ActionRejected("Invalid amount.")
    if requested > available:
        raise ActionRejected("You don't have this much available.")
    if requested == 0:
        raise ActionRejected("You can't trade no nothin'.")
    return requested


def same_price(offered: float, actual: float) -> bool:
    return round(offered) == round(actual)


# -------------------------------------------------
# Location and data
# -------------------------------------------------

async def update_location(manager: GameManager, game_id: str, user_id: str, location: Coordinate) -> LiveUser:
    game = await require_game(manager, game_id)
    state = await game.get_user_state(user_id)
    if not (state["player"] or state["special"]):
        raise ActionRejected("Only players share their location in this game.")
    user = await require_user(game, user_id)

    await user.update_location(location)

    # the mover may have entered or left other users' ranges
    others = [u for u in game.user_manager.users if u is not user and u.has_recent_location()]
    await join_each(lambda u: u.update_location(), others)
    await manager.broadcast_location_data(game_id=game_id, user_id=user_id)
    return user


async def request_game_data(manager: GameManager, game_id: str, user_id: str, sids: Sids = None) -> dict:
    data = await manager.send_game_data(game_id, user_id, sids)
    if data is None:
        raise ActionRejected("This game isn't active, or you're not part of it.")
    return data


async def request_game_info(manager: GameManager, game_id: str, user_id: str, sids: Sids = None) -> dict:
    stage = await manager.store.get_game_stage(game_id)
    if stage is None:
        raise ActionRejected("This game doesn't exist.")
    roles = await manager.store.get_user_state(game_id, user_id)
    payload = {"game": game_id, "stage": stage, "roles": roles}
    await manager.dispatcher.send_packet(PacketType.GAME_INFO, payload, sids)
    return payload


async def change_stage(manager: GameManager, game_id: str, user_id: str, stage: int) -> int:
    """Move a game to ACTIVE or FINISHED, loading or unloading its live copy.

    Only the game's creator may do this. Every member is told with a
    GAME_STAGE_CHANGED; an activated game also resends everyone's dashboard.
    """
    if stage not in (Stage.ACTIVE, Stage.FINISHED):
        raise ActionRejected("Failed to change game stage.")
    try:
        record = await manager.store.get_game(game_id)
    except GameNotFound:
        raise ActionRejected("Failed to change game stage.")
    if record["creator"] != user_id:
        raise ActionRejected("You don't have permission to change the game stage.")
    if record["stage"] == stage:
        raise ActionRejected("Failed to change the game stage, the game is already in this stage.")

    await manager.store.set_field(ModelType.GAME, game_id, "stage", int(stage))
    logger.info(f"Game {game_id} moved from stage {record['stage']} to {int(stage)} by {user_id}")
    if stage == Stage.ACTIVE:
        await manager.load_game(game_id)
    else:
        manager.unload_game(game_id)

    payload = {"game": game_id, "gameName": record["name"], "stage": int(stage)}
    members = await manager.store.get_game_users(game_id)
    recipients = {m["user"] for m in members} | {user_id}
    await join_each(
        lambda uid: manager.dispatcher.send_packet_user(PacketType.GAME_STAGE_CHANGED, payload, uid),
        sorted(recipients),
    )
    if stage == Stage.ACTIVE:
        await manager.send_game_data_to_all(game_id)
    return int(stage)


async def request_factory_data(manager: GameManager, factory_id: str, user_id: str, sids: Sids = None) -> dict:
    game, factory = await require_factory(manager, factory_id)
    user = await require_user(game, user_id)
    return await factory.send_data(user, sids)


# -------------------------------------------------
# Player upgrades
# -------------------------------------------------

async def buy_strength(manager: GameManager, game_id: str, user_id: str, index: int, cost: float, strength: int):
    game = await require_game(manager, game_id)
    user = await require_user(game, user_id)
    game_user = await user.get_game_user()

    upgrades = game.config.strength_upgrades(game_user["strength"])
    if index >= len(upgrades) or not same_price(cost, upgrades[index].cost) or upgrades[index].value != strength:
        raise ActionRejected("Failed to buy upgrade, prices have changed.")
    offer = upgrades[index]
    if game_user["money"] < offer.cost:
        raise ActionRejected("Failed to buy upgrade, you don't have enough money.")

    await charge(manager, game_user["id"], offer.cost)
    await manager.store.add_to_field(ModelType.GAME_USER, game_user["id"], "strength", offer.value)

    await manager.send_game_data(game_id, user_id)
    await toast(manager, user_id, SUCCESS_MESSAGE)
    await join_each(
        lambda f: f.broadcast_data(),
        [f for f in game.factory_manager.factories if f.is_remembered_in_range(user_id)],
    )
    return offer


# -------------------------------------------------
# Factories
# -------------------------------------------------

async def build_factory(manager: GameManager, game_id: str, user_id: str, name: str) -> LiveFactory:
    if not is_valid_name(name, max_length=FACTORY_NAME_MAX_LENGTH):
        raise ActionRejected("Invalid factory name.")
    game = await require_game(manager, game_id)
    if await game.get_stage() != Stage.ACTIVE:
        raise ActionRejected("You can only build factories while the game is running.")
    state = await game.get_user_state(user_id)
    if not state["player"]:
        raise ActionRejected("You must be a player to build a factory.")
    user = await require_user(game, user_id)
    location = user.get_recent_location()
    if location is None:
        raise ActionRejected("Your location is unknown. Please make sure your GPS is enabled.")

    game_user = await user.get_game_user()
    cost = await game.calculate_factory_cost(game_user["team"])
    if game_user["money"] < cost:
        raise ActionRejected("You don't have enough money to build a factory.")

    await charge(manager, game_user["id"], cost)
    factory_config = game.config.factory
    try:
        factory_id = await manager.store.add_factory(
            game_id,
            game_user["team"],
            user_id,
            clean_name(name),
            location,
            level=factory_config.initial_level,
            defence=factory_config.initial_defence,
            in_amount=factory_config.initial_in,
            out_amount=factory_config.initial_out,
        )
    except Exception:
        if cost > 0:
            await manager.store.add_to_field(ModelType.GAME_USER, game_user["id"], "money", cost)
        raise

    factory = await game.factory_manager.get(factory_id)
    logger.info(f"{user_id} built factory {factory_id} in game {game_id} for {cost}")

    await manager.dispatcher.send_packet_user(
        PacketType.FACTORY_BUILD_RESPONSE, {"game": game_id, "factory": factory_id}, user_id
    )
    await join_each(factory.update_visibility_state, game.user_manager.users)
    await manager.send_game_data_to_all(game_id)
    return factory


async def deposit_in(manager: GameManager, factory_id: str, user_id: str, amount: Optional[int], take_all: bool = False) -> int:
    """Move `in` goods from the player into the factory."""
    game, factory, user = await require_modifiable(manager, factory_id, user_id)
    game_user = await user.get_game_user()
    moved = int(resolve_amount(amount, take_all, game_user["in"]))

    async with factory.lock:
        if factory.destroyed:
            raise ActionRejected("This factory doesn't exist anymore.")
        await take_goods(manager, ModelType.GAME_USER, game_user["id"], "in", moved)
        await manager.store.add_to_field(ModelType.FACTORY, factory_id, "in", moved)

    await join(factory.broadcast_data(), manager.send_game_data(game.game_id, user_id))
    return moved


async def withdraw_out(manager: GameManager, factory_id: str, user_id: str, amount: Optional[int], take_all: bool = False) -> int:
    """Move `out` goods from the factory to the player."""
    game, factory, user = await require_modifiable(manager, factory_id, user_id)
    game_user = await user.get_game_user()

    async with factory.lock:
        if factory.destroyed:
            raise ActionRejected("This factory doesn't exist anymore.")
        _, available = await factory.get_contents()
        moved = int(resolve_amount(amount, take_all, available))
        await take_goods(manager, ModelType.FACTORY, factory_id, "out", moved)
        await manager.store.add_to_field(ModelType.GAME_USER, game_user["id"], "out", moved)

    await join(factory.broadcast_data(), manager.send_game_data(game.game_id, user_id))
    return moved


async def buy_factory_level(manager: GameManager, factory_id: str, user_id: str, cost: float) -> int:
    game, factory, user = await require_modifiable(manager, factory_id, user_id)
    game_user = await user.get_game_user()
    level = await factory.get_level()
    price = factory.get_next_level_cost(level)
    if not same_price(cost, price):
        raise ActionRejected("Failed to upgrade, prices have changed.")
    if game_user["money"] < price:
        raise ActionRejected("Failed to upgrade, you don't have enough money.")

    await charge(manager, game_user["id"], price)
    async with factory.lock:
        new_level = await manager.store.add_to_field(ModelType.FACTORY, factory_id, "level", 1)

    await join(factory.broadcast_data(), manager.send_game_data(game.game_id, user_id))
    await toast(manager, user_id, SUCCESS_MESSAGE)
    return new_level


async def buy_factory_defence(manager: GameManager, factory_id: str, user_id: str, index: int, cost: float, defence: int) -> int:
    game, factory, user = await require_modifiable(manager, factory_id, user_id)
    game_user = await user.get_game_user()
    current = await manager.store.get_field(ModelType.FACTORY, factory_id, "defence")

    upgrades = factory.get_defence_upgrades(current)
    if index >= len(upgrades) or not same_price(cost, upgrades[index].cost) or upgrades[index].value != defence:
        raise ActionRejected("Failed to buy defence, prices have changed.")
    offer = upgrades[index]
    if game_user["money"] < offer.cost:
        raise ActionRejected("Failed to buy defence, you don't have enough money.")

    await charge(manager, game_user["id"], offer.cost)
    async with factory.lock:
        new_defence = await manager.store.add_to_field(ModelType.FACTORY, factory_id, "defence", offer.value)

    await join(factory.broadcast_data(), manager.send_game_data(game.game_id, user_id))
    await toast(manager, user_id, SUCCESS_MESSAGE)
    return new_defence


async def destroy_factory(manager: GameManager, factory_id: str, user_id: str, keep_contents: bool) -> dict[str, tuple[int, int]]:
    """Demolish a team factory; with `keep_contents` its goods are shared among the team."""
    game, factory = await require_factory(manager, factory_id)
    user = await require_user(game, user_id)
    if not teams_match(await user.get_team_id(), factory.team_id):
        raise ActionRejected("You can only destroy factories of your own team.")
    if keep_contents and not await factory.is_user_in_range(user):
        raise ActionRejected("You must be in range of the factory to take its goods.")

    shares = await factory.destroy(spread_contents=keep_contents)
    await manager.send_game_data_to_all(game.game_id)
    return shares


# -------------------------------------------------
# Shops
# -------------------------------------------------

async def _shop_customer(manager: GameManager, token: str, user_id: str):
    game, shop = require_shop(manager, token)
    user = await game.get_user(user_id)
    if user is None or not shop.is_user_in_range(user):
        raise ActionRejected("You're not in range of this shop.")
    return game, shop, user


async def shop_sell_in(manager: GameManager, token: str, user_id: str, amount: Optional[float], take_all: bool = False) -> tuple[int, int]:
    """The shop sells `in` goods; `amount` is the money the player wants to spend.

    Returns `(goods, paid)`.
    """
    game, shop, user = await _shop_customer(manager, token, user_id)
    game_user = await user.get_game_user()
    money = game_user["money"]

    spend = money if take_all else amount
    if spend is None or spend < 0:
        raise ActionRejected("Invalid amount.")
    if spend > money:
        raise ActionRejected("Failed to buy, you don't have this much money.")

    price = shop.in_sell_price
    goods = round(spend / price)
    while goods > 0 and round(goods * price) > money:
        goods -= 1
    if goods <= 0:
        raise ActionRejected("You can't buy no nothin'.")
    paid = round(goods * price)

    await charge(manager, game_user["id"], paid)
    await manager.store.add_to_field(ModelType.GAME_USER, game_user["id"], "in", goods)

    await manager.send_game_data(game.game_id, user_id)
    await toast(manager, user_id, SUCCESS_MESSAGE)
    return goods, paid


async def shop_buy_out(manager: GameManager, token: str, user_id: str, amount: Optional[int], take_all: bool = False) -> tuple[int, int]:
    """The shop buys the player's `out` goods. Returns `(goods, earned)`."""
    game, shop, user = await _shop_customer(manager, token, user_id)
    game_user = await user.get_game_user()
    goods = int(resolve_amount(amount, take_all, game_user["out"]))
    earned = round(goods * shop.out_buy_price)

    await take_goods(manager, ModelType.GAME_USER, game_user["id"], "out", goods)
    await manager.store.add_to_field(ModelType.GAME_USER, game_user["id"], "money", earned)

    await manager.send_game_data(game.game_id, user_id)
    await toast(manager, user_id, SUCCESS_MESSAGE)
    return goods, earned
