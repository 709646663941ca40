from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from models.domain_models import UserState
from services.game_config import GameConfig
from stores import ModelType
from .factory_manager import FactoryManager
from .fanout import join, join_each
from .shop_manager import ShopManager
from .user import LiveUser
from .user_manager import UserManager

if TYPE_CHECKING:
    from .game_manager import GameManager

logger = logging.getLogger(__name__)


class LiveGame:
    """One active game: its three managers plus a few team-level lookups."""

    def __init__(self, game_id: str, manager: GameManager, config: GameConfig):
        self.game_id = game_id
        self.manager = manager
        self.store = manager.store
        self.dispatcher = manager.dispatcher
        self.config = config
        self.user_manager = UserManager(self)
        self.factory_manager = FactoryManager(self)
        self.shop_manager = ShopManager(self, selector=manager.shop_selector)

    def __repr__(self) -> str:
        return f"<LiveGame {self.game_id}>"

    async def load(self) -> None:
        await join(
            self.user_manager.load(),
            self.factory_manager.load(),
            self.shop_manager.load(start_worker=self.manager.start_workers),
        )

    def unload(self) -> None:
        self.shop_manager.unload()
        self.factory_manager.unload()
        self.user_manager.unload()

    def get_config(self) -> GameConfig:
        return self.config

    async def get_user(self, user_id: str) -> Optional[LiveUser]:
        return await self.user_manager.get(user_id)

    async def get_user_state(self, user_id: str) -> UserState:
        return await self.store.get_user_state(self.game_id, user_id)

    async def get_name(self) -> str:
        return await self.store.get_field(ModelType.GAME, self.game_id, "name")

    async def get_stage(self) -> int:
        return await self.store.get_field(ModelType.GAME, self.game_id, "stage")

    def get_team_factory_count(self, team_id: str) -> int:
        return self.factory_manager.get_team_factory_count(team_id)

    async def calculate_factory_cost(self, team_id: Optional[str]) -> int:
        """Price of the team's next factory, from its own and its enemies' factory counts."""
        if team_id is None:
            return 0
        teams = await self.store.get_teams_for_game(self.game_id)
        enemies = [t["id"] for t in teams if t["id"] != team_id]
        ally_count = self.get_team_factory_count(team_id)
        enemy_average = (
            sum(self.get_team_factory_count(t) for t in enemies) / len(enemies) if enemies else 0
        )
        return self.config.factory.build_cost(ally_count, enemy_average, self.config.player.initial_money)

    async def get_team_money(self) -> list[dict]:
        """Team standings `[{id, name, money}]`, richest first."""
        teams = await self.store.get_teams_for_game(self.game_id)
        members = await join_each(lambda t: self.store.get_game_users_for_team(t["id"]), teams)
        standings = [
            {"id": team["id"], "name": team["name"], "money": round(sum(m["money"] for m in team_members))}
            for team, team_members in zip(teams, members)
        ]
        standings.sort(key=lambda s: s["money"], reverse=True)
        return standings
