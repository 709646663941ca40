from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from stores import FactoryNotFound
from .factory import LiveFactory
from .fanout import join
from .registry import LiveRegistry
from .visibility import VisibilityState

if TYPE_CHECKING:
    from .game import LiveGame
    from .user import LiveUser

logger = logging.getLogger(__name__)


class FactoryManager(LiveRegistry[LiveFactory]):
    """Live factories of one game, keyed by factory id."""

    def __init__(self, game: LiveGame):
        super().__init__()
        self.game = game

    @property
    def factories(self) -> list[LiveFactory]:
        return self.snapshot()

    def get_team_factory_count(self, team_id: str) -> int:
        return sum(1 for f in self.snapshot() if f.team_id == team_id)

    async def get(self, factory_id: str) -> Optional[LiveFactory]:
        """Return the live factory, loading it if it exists and belongs to this game."""
        if not factory_id:
            return None

        async def load_factory() -> Optional[LiveFactory]:
            try:
                record = await self.game.store.get_factory(factory_id)
            except FactoryNotFound:
                return None
            if record["game"] != self.game.game_id:
                return None
            return LiveFactory.from_record(record, self.game)

        return await self._get_or_load(factory_id, load_factory)

    async def get_visible_factories(self, user: LiveUser) -> list[tuple[LiveFactory, VisibilityState]]:
        factories = self.factories
        states = await join(*(f.get_visibility_state(user) for f in factories))
        return [(f, s) for f, s in zip(factories, states) if s.visible]

    def remove(self, factory_id: str) -> Optional[LiveFactory]:
        return self._remove(factory_id)

    async def load(self) -> None:
        records = await self.game.store.get_factories_for_game(self.game.game_id)
        for old in self._clear():
            old.unload()
        self._replace({r["id"]: LiveFactory.from_record(r, self.game) for r in records})
        logger.info(f"Loaded {len(records)} factories for game {self.game.game_id}")

    def unload(self) -> None:
        for factory in self._clear():
            factory.unload()
