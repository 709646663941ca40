from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from realtime.dispatcher import PacketDispatcher, Sids
from realtime.packet_type import PacketType
from services.game_config import GameConfig, default_config_for_game
from stores import ModelStore, Stage
from .fanout import join, join_each
from .game import LiveGame
from .registry import LiveRegistry
from .shop_manager import ShopUserSelector
from .user import LiveUser
from .visibility import compute_player_visibility, teams_match

logger = logging.getLogger(__name__)

TICK_JOB_ID = "live-game-tick"
LOCATION_JOB_ID = "live-location-broadcast"


class GameManager(LiveRegistry[LiveGame]):
    """Every active game loaded in this process.

    Only this class adds or removes games; `games` hands out a copy.
    """

    def __init__(
        self,
        store: ModelStore,
        dispatcher: PacketDispatcher,
        *,
        config_provider: Callable[[str], GameConfig] = default_config_for_game,
        start_workers: bool = True,
        shop_selector: Optional[ShopUserSelector] = None,
    ):
        super().__init__()
        self.store = store
        self.dispatcher = dispatcher
        self.config_provider = config_provider
        self.start_workers = start_workers
        self.shop_selector = shop_selector

    @property
    def games(self) -> list[LiveGame]:
        return self.snapshot()

    # -------------------------------------------------
    # Registry
    # -------------------------------------------------

    async def get_game(self, game_id: str) -> Optional[LiveGame]:
        """Return the live game, loading it if the stored game is active; None otherwise."""
        if not game_id:
            return None

        async def load_game() -> Optional[LiveGame]:
            stage = await self.store.get_game_stage(game_id)
            if stage != Stage.ACTIVE:
                return None
            game = LiveGame(game_id, self, self.config_provider(game_id))
            await game.load()
            logger.info(f"Loaded live game {game_id}")
            return game

        return await self._get_or_load(game_id, load_game)

    def get_loaded_game(self, game_id: str) -> Optional[LiveGame]:
        return self.get_loaded(game_id)

    async def load(self) -> int:
        """(Re)load every active game. Returns how many are loaded."""
        self.unload()
        game_ids = await self.store.get_games_with_stage(Stage.ACTIVE)
        await join_each(self.get_game, game_ids)
        return len(self)

    async def load_game(self, game_id: str) -> Optional[LiveGame]:
        """Drop any loaded copy of the game and load it again (e.g. after a stage change)."""
        self.unload_game(game_id)
        return await self.get_game(game_id)

    def unload_game(self, game_id: str) -> bool:
        game = self._remove(game_id)
        if game is None:
            return False
        game.unload()
        logger.info(f"Unloaded live game {game_id}")
        return True

    def unload(self) -> None:
        for game in self._clear():
            game.unload()

    async def drop_inactive_games(self) -> list[str]:
        """Unload every loaded game whose stored stage is no longer active.

        A stage that can't be read keeps the game loaded; the error is logged.
        """
        games = self.games
        stages = await asyncio.gather(*(self.store.get_game_stage(g.game_id) for g in games), return_exceptions=True)
        dropped = []
        for game, stage in zip(games, stages):
            if isinstance(stage, BaseException):
                logger.error(f"Reading the stage of game {game.game_id} failed: {stage!r}")
            elif stage != Stage.ACTIVE and self.get_loaded(game.game_id) is game:
                self.unload_game(game.game_id)
                dropped.append(game.game_id)
        return dropped

    def find_shop(self, token: str):
        """Return `(game, shop)` for a shop token across all loaded games."""
        for game in self.games:
            shop = game.shop_manager.get(token)
            if shop is not None:
                return game, shop
        return None, None

    # -------------------------------------------------
    # Loops
    # -------------------------------------------------

    async def tick(self) -> int:
        """Run one production cycle on every loaded factory. Returns how many produced."""
        await self.drop_inactive_games()
        factories = [f for game in self.games for f in game.factory_manager.factories]
        results = await asyncio.gather(*(f.tick() for f in factories), return_exceptions=True)
        produced = 0
        for factory, result in zip(factories, results):
            if isinstance(result, BaseException):
                logger.error(f"Tick failed for factory {factory.factory_id} in game {factory.game.game_id}: {result!r}")
            elif result:
                produced += 1
        return produced

    async def broadcast_location_data(
        self,
        game_id: Optional[str] = None,
        user_id: Optional[str] = None,
        sids: Sids = None,
    ) -> int:
        """Push a GAME_LOCATIONS_UPDATE to every (or the given) user of every (or the given) game.

        Returns how many snapshots were sent; failures are logged per user.
        """
        if game_id is None:
            await self.drop_inactive_games()
        games = self.games if game_id is None else [g for g in [self.get_loaded(game_id)] if g is not None]
        targets = []
        for game in games:
            users = game.user_manager.users
            if user_id is not None:
                users = [u for u in users if u.user_id == user_id]
            targets.extend((game, u) for u in users)

        async def send(game: LiveGame, user: LiveUser) -> bool:
            payload = {"game": game.game_id, **await self.build_location_data(game, user)}
            if sids is None:
                await self.dispatcher.send_packet_user(PacketType.GAME_LOCATIONS_UPDATE, payload, user.user_id)
            else:
                await self.dispatcher.send_packet(PacketType.GAME_LOCATIONS_UPDATE, payload, sids)
            return True

        results = await asyncio.gather(*(send(g, u) for g, u in targets), return_exceptions=True)
        sent = 0
        for (game, user), result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(f"Location broadcast failed for {user.user_id} in game {game.game_id}: {result!r}")
            else:
                sent += 1
        return sent

    async def build_location_data(self, game: LiveGame, viewer: LiveUser) -> dict:
        state, viewer_team = await join(viewer.get_user_state(), viewer.get_team_id())

        async def user_entry(other: LiveUser) -> Optional[dict]:
            if not other.has_location():
                return None
            shop = game.shop_manager.get_shop_by_user(other)
            shop_in_range = shop.is_user_in_range(viewer) if shop is not None else False
            other_team = await other.get_team_id()
            if not compute_player_visibility(
                viewer.user_id, state, viewer_team, other.user_id, other_team,
                other_is_dealer=shop is not None, dealer_in_range=shop_in_range,
            ):
                return None
            return {
                "user": other.user_id,
                "userName": await other.get_name(),
                "location": other.location.to_document(),
                "ally": teams_match(viewer_team, other_team),
                "isShop": shop is not None,
                "shop": None if shop is None else {"token": shop.token, "inRange": shop_in_range, "range": shop.range},
            }

        async def factory_entry(factory) -> Optional[dict]:
            visibility = await factory.get_visibility_state(viewer)
            if not visibility.visible:
                return None
            name, level = await join(factory.get_name(), factory.get_level())
            return {
                "factory": factory.factory_id,
                "ally": visibility.ally,
                "inRange": visibility.in_range,
                "name": name,
                "location": factory.location.to_document(),
                "range": factory.get_effective_range(viewer.user_id, level),
            }

        users, factories = await join(
            join_each(user_entry, game.user_manager.users),
            join_each(factory_entry, game.factory_manager.factories),
        )
        return {
            "users": [u for u in users if u is not None],
            "factories": [f for f in factories if f is not None],
        }

    # -------------------------------------------------
    # Game data
    # -------------------------------------------------

    async def build_game_data(self, game: LiveGame, viewer: LiveUser) -> dict:
        game_user, state, stage = await join(viewer.get_game_user(), viewer.get_user_state(), game.get_stage())
        team_id = game_user["team"]

        cost, standings, visible = await join(
            game.calculate_factory_cost(team_id),
            game.get_team_money(),
            game.factory_manager.get_visible_factories(viewer),
        )
        shops = [s for s in game.shop_manager.shops if s.is_user_in_range(viewer)]
        shop_data = await join_each(lambda s: s.to_game_data(), shops)
        factory_names = await join_each(lambda pair: pair[0].get_name(), visible)

        return {
            "stage": stage,
            "roles": state,
            "factory": {
                "canBuild": bool(state["player"] and team_id is not None and game_user["money"] >= cost),
                "cost": cost,
            },
            "balance": {"money": game_user["money"], "in": game_user["in"], "out": game_user["out"]},
            "strength": {
                "value": game_user["strength"],
                "upgrades": [u.to_dict() for u in game.config.strength_upgrades(game_user["strength"])],
            },
            "shops": shop_data,
            "factories": [{"id": f.factory_id, "name": n} for (f, _), n in zip(visible, factory_names)],
            "standings": [{**s, "ally": teams_match(team_id, s["id"])} for s in standings],
        }

    async def send_game_data(self, game_id: str, user_id: str, sids: Sids = None) -> Optional[dict]:
        """Send the user's dashboard. Returns the data, or None if game or user isn't live."""
        game = await self.get_game(game_id)
        if game is None:
            return None
        user = await game.get_user(user_id)
        if user is None:
            return None

        data = await self.build_game_data(game, user)
        payload = {"game": game_id, "data": data}
        if sids is None:
            await self.dispatcher.send_packet_user(PacketType.GAME_DATA, payload, user_id)
        else:
            await self.dispatcher.send_packet(PacketType.GAME_DATA, payload, sids)
        return data

    async def send_game_data_to_all(self, game_id: str) -> int:
        """Send dashboards to every connected user of the game; failures are logged per user."""
        game = self.get_loaded(game_id)
        if game is None:
            return 0
        users = [u for u in game.user_manager.users if self.dispatcher.is_user_connected(u.user_id)]
        results = await asyncio.gather(*(self.send_game_data(game_id, u.user_id) for u in users), return_exceptions=True)
        for user, result in zip(users, results):
            if isinstance(result, BaseException):
                logger.error(f"Sending game data to {user.user_id} in game {game_id} failed: {result!r}")
        return sum(1 for r in results if not isinstance(r, BaseException))

    # -------------------------------------------------
    # Scheduling
    # -------------------------------------------------

    def schedule(self, scheduler, *, tick_interval: float, location_interval: float) -> None:
        """Install the production tick and location broadcast jobs on an APScheduler scheduler."""
        scheduler.add_job(
            self.tick, "interval", seconds=tick_interval,
            id=TICK_JOB_ID, max_instances=1, coalesce=True, replace_existing=True,
        )
        scheduler.add_job(
            self.broadcast_location_data, "interval", seconds=location_interval,
            id=LOCATION_JOB_ID, max_instances=1, coalesce=True, replace_existing=True,
        )
