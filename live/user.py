from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from models.coordinate import Coordinate
from models.domain_models import GameUserRecord, UserState
from stores import GameUserNotFound
from utils.time import now_utc
from .fanout import join_each

if TYPE_CHECKING:
    from .game import LiveGame

logger = logging.getLogger(__name__)


class LiveUser:
    """A game member as seen by the running game: last position and team."""

    def __init__(self, user_id: str, game: LiveGame):
        self.user_id = user_id
        self.game = game
        self.location: Optional[Coordinate] = None
        self.location_time: Optional[datetime] = None
        self.team_id: Optional[str] = None
        self._team_loaded = False

    def __repr__(self) -> str:
        return f"<LiveUser {self.user_id} game={self.game.game_id} team={self.team_id}>"

    async def load(self) -> None:
        await self.refresh_team()

    def unload(self) -> None:
        self.location = None
        self.location_time = None

    async def refresh_team(self) -> Optional[str]:
        game_user = await self.game.store.get_game_user(self.game.game_id, self.user_id)
        self.team_id = game_user["team"] if game_user else None
        self._team_loaded = True
        return self.team_id

    async def get_team_id(self) -> Optional[str]:
        if not self._team_loaded:
            await self.refresh_team()
        return self.team_id

    async def get_name(self) -> str:
        return (await self.game.store.get_user(self.user_id))["name"]

    async def get_user_state(self) -> UserState:
        return await self.game.store.get_user_state(self.game.game_id, self.user_id)

    async def get_game_user(self) -> GameUserRecord:
        game_user = await self.game.store.get_game_user(self.game.game_id, self.user_id)
        if game_user is None:
            raise GameUserNotFound(f"User {self.user_id} is not part of game {self.game.game_id}")
        return game_user

    # -------------------------------------------------
    # Location
    # -------------------------------------------------

    def has_location(self) -> bool:
        return self.location is not None

    def has_recent_location(self, now: Optional[datetime] = None) -> bool:
        if self.location is None or self.location_time is None:
            return False
        window = timedelta(seconds=self.game.config.location_freshness)
        return (now or now_utc()) - self.location_time <= window

    def get_recent_location(self) -> Optional[Coordinate]:
        """The last location, or None once it has gone stale."""
        return self.location if self.has_recent_location() else None

    async def update_location(self, location: Optional[Coordinate] = None, *, at: Optional[datetime] = None) -> int:
        """Store a new position (if given) and re-check every factory for this user.

        Returns how many factories pushed fresh data because their
        visibility or range flipped.
        """
        if location is not None:
            self.location = location
            self.location_time = at or now_utc()

        changed = await join_each(
            lambda factory: factory.update_visibility_state(self),
            self.game.factory_manager.factories,
        )
        return sum(1 for c in changed if c)
