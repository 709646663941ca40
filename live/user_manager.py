from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .fanout import join_each
from .registry import LiveRegistry
from .user import LiveUser

if TYPE_CHECKING:
    from .game import LiveGame

logger = logging.getLogger(__name__)


class UserManager(LiveRegistry[LiveUser]):
    """Live users of one game, keyed by user id."""

    def __init__(self, game: LiveGame):
        super().__init__()
        self.game = game

    @property
    def users(self) -> list[LiveUser]:
        return self.snapshot()

    def get_team_users(self, team_id: str) -> list[LiveUser]:
        return [u for u in self.snapshot() if u.team_id == team_id]

    async def get(self, user_id: str) -> Optional[LiveUser]:
        """Return the live user, creating it if `user_id` is a non-requested member of the game."""
        if not user_id:
            return None

        async def load_user() -> Optional[LiveUser]:
            game_user = await self.game.store.get_game_user(self.game.game_id, user_id)
            if game_user is None or game_user["requested"]:
                return None
            user = LiveUser(user_id, self.game)
            await user.load()
            return user

        return await self._get_or_load(user_id, load_user)

    async def load(self) -> None:
        records = await self.game.store.get_game_users(self.game.game_id, requested=False)
        users = [LiveUser(r["user"], self.game) for r in records]
        await join_each(lambda u: u.load(), users)

        # carry positions over so a reload doesn't blank the map
        for user in users:
            previous = self.get_loaded(user.user_id)
            if previous is not None:
                user.location, user.location_time = previous.location, previous.location_time
        self._replace({u.user_id: u for u in users})
        logger.info(f"Loaded {len(users)} users for game {self.game.game_id}")

    def unload(self) -> None:
        for user in self._clear():
            user.unload()
