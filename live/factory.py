from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Optional

from models.coordinate import Coordinate
from models.domain_models import FactoryRecord
from realtime.dispatcher import Sids
from realtime.packet_type import PacketType
from services.game_config import Upgrade
from stores import ModelType
from .fanout import join, join_each
from .visibility import HIDDEN, VisibilityState, compute_factory_visibility

if TYPE_CHECKING:
    from .game import LiveGame
    from .user import LiveUser

logger = logging.getLogger(__name__)

DATA_FIELDS = ("name", "level", "defence", "in", "out", "creator")


def split_evenly(total: int, count: int) -> list[int]:
    """Shares of `total` for `count` receivers: ceil(total/count) each, capped by what is left."""
    if count <= 0 or total <= 0:
        return [0] * max(count, 0)
    share = math.ceil(total / count)
    shares = []
    remaining = total
    for _ in range(count):
        give = min(share, remaining)
        shares.append(give)
        remaining -= give
    return shares


def _toggle(memory: set[str], key: str, present: bool) -> None:
    if present:
        memory.add(key)
    else:
        memory.discard(key)


class LiveFactory:
    """A persisted factory while its game is loaded.

    Holds the per-viewer visibility and range memory so data is only pushed
    to a viewer when one of the two flags flips. Every mutation of the
    factory's buffers goes through `lock`.
    """

    def __init__(self, factory_id: str, game: LiveGame, *, team_id: str, location: Coordinate):
        self.factory_id = factory_id
        self.game = game
        self.team_id = team_id
        self.location = location
        self.lock = asyncio.Lock()
        self.destroyed = False
        self._visible_memory: set[str] = set()
        self._range_memory: set[str] = set()

    @classmethod
    def from_record(cls, record: FactoryRecord, game: LiveGame) -> LiveFactory:
        location = Coordinate(record["latitude"], record["longitude"])
        return cls(record["id"], game, team_id=record["team"], location=location)

    def __repr__(self) -> str:
        return f"<LiveFactory {self.factory_id} team={self.team_id}>"

    @property
    def store(self):
        return self.game.store

    # -------------------------------------------------
    # Balance lookups
    # -------------------------------------------------

    def get_production_in(self, level: int) -> int:
        return self.game.config.production_in(level)

    def get_production_out(self, level: int) -> int:
        return self.game.config.production_out(level)

    def get_next_level_cost(self, level: int) -> int:
        return self.game.config.level_cost(level + 1)

    def get_defence_upgrades(self, defence: int) -> list[Upgrade]:
        return self.game.config.defence_upgrades(defence)

    def get_range(self, level: int) -> float:
        return self.game.config.factory.get_range(level)

    def get_active_range(self, level: int) -> float:
        return self.game.config.factory.get_active_range(level)

    # -------------------------------------------------
    # Stored fields
    # -------------------------------------------------

    async def get_level(self) -> int:
        return await self.store.get_field(ModelType.FACTORY, self.factory_id, "level")

    async def get_name(self) -> str:
        return await self.store.get_field(ModelType.FACTORY, self.factory_id, "name")

    async def get_contents(self) -> tuple[int, int]:
        values = await self.store.get_fields(ModelType.FACTORY, self.factory_id, ("in", "out"))
        return values["in"], values["out"]

    # -------------------------------------------------
    # Visibility
    # -------------------------------------------------

    def is_remembered_visible(self, user_id: str) -> bool:
        return user_id in self._visible_memory

    def is_remembered_in_range(self, user_id: str) -> bool:
        return user_id in self._range_memory

    def get_effective_range(self, user_id: str, level: int) -> float:
        if self.is_remembered_in_range(user_id):
            return self.get_active_range(level)
        return self.get_range(level)

    async def get_visibility_state(self, user: Optional[LiveUser]) -> VisibilityState:
        if user is None:
            return HIDDEN
        state, viewer_team, level = await join(user.get_user_state(), user.get_team_id(), self.get_level())
        return compute_factory_visibility(
            state,
            viewer_team,
            user.get_recent_location(),
            self.team_id,
            self.location,
            remembered_in_range=self.is_remembered_in_range(user.user_id),
            base_range=self.get_range(level),
            active_range=self.get_active_range(level),
        )

    async def is_visible_for(self, user: Optional[LiveUser]) -> bool:
        return (await self.get_visibility_state(user)).visible

    async def is_user_in_range(self, user: Optional[LiveUser]) -> bool:
        return (await self.get_visibility_state(user)).in_range

    async def can_modify(self, user: Optional[LiveUser]) -> bool:
        state = await self.get_visibility_state(user)
        return state.ally and state.in_range

    async def update_visibility_state(self, user: LiveUser) -> bool:
        """Recompute the viewer's flags and push data only if one of them flipped."""
        state = await self.get_visibility_state(user)
        user_id = user.user_id
        changed = (
            self.is_remembered_visible(user_id) != state.visible
            or self.is_remembered_in_range(user_id) != state.in_range
        )
        _toggle(self._visible_memory, user_id, state.visible)
        _toggle(self._range_memory, user_id, state.in_range)

        if changed:
            await self.send_data(user, state=state)
        return changed

    # -------------------------------------------------
    # Data
    # -------------------------------------------------

    async def get_data(self, state: VisibilityState) -> dict:
        if not state.visible:
            return {"visible": False}

        doc = await self.store.get_fields(ModelType.FACTORY, self.factory_id, DATA_FIELDS)
        creator_name, team = await join(self._creator_name(doc["creator"]), self.store.get_team(self.team_id))
        level = doc["level"]
        return {
            "name": doc["name"],
            "level": level,
            "defence": doc["defence"],
            "in": doc["in"],
            "out": doc["out"],
            "creatorName": creator_name,
            "teamName": team["name"],
            "productionIn": self.get_production_in(level),
            "productionOut": self.get_production_out(level),
            "defenceUpgrades": [u.to_dict() for u in self.get_defence_upgrades(doc["defence"])],
            "nextLevelCost": self.get_next_level_cost(level),
            "visible": True,
            "ally": state.ally,
            "inRange": state.in_range,
            "canModify": state.ally and state.in_range,
        }

    async def _creator_name(self, creator_id: Optional[str]) -> Optional[str]:
        if creator_id is None:
            return None
        return (await self.store.get_user(creator_id))["name"]

    async def send_data(self, user: LiveUser, sids: Sids = None, *, state: Optional[VisibilityState] = None) -> dict:
        """Send FACTORY_DATA to the viewer; non-visible factories only reveal `{visible: False}`."""
        if state is None:
            state = await self.get_visibility_state(user)
        data = await self.get_data(state)
        payload = {"factory": self.factory_id, "game": self.game.game_id, "data": data}

        dispatcher = self.game.dispatcher
        if sids is None:
            await dispatcher.send_packet_user(PacketType.FACTORY_DATA, payload, user.user_id)
        else:
            await dispatcher.send_packet(PacketType.FACTORY_DATA, payload, sids)
        return data

    async def broadcast_data(self) -> int:
        """Send fresh data to every loaded user who can see this factory."""
        async def send_if_visible(user: LiveUser) -> bool:
            state = await self.get_visibility_state(user)
            if not state.visible:
                return False
            await self.send_data(user, state=state)
            return True

        sent = await join_each(send_if_visible, self.game.user_manager.users)
        return sum(1 for s in sent if s)

    # -------------------------------------------------
    # Simulation
    # -------------------------------------------------

    async def tick(self) -> bool:
        """Run one production cycle. Returns False when the input buffer is short."""
        async with self.lock:
            if self.destroyed:
                return False
            values = await self.store.get_fields(ModelType.FACTORY, self.factory_id, ("in", "out", "level"))
            level = values["level"]
            production_in = self.get_production_in(level)
            if values["in"] < production_in:
                return False
            await self.store.set_fields(ModelType.FACTORY, self.factory_id, {
                "in": values["in"] - production_in,
                "out": values["out"] + self.get_production_out(level),
            })

        await self.broadcast_data()
        return True

    async def spread_contents(self) -> dict[str, tuple[int, int]]:
        """Move the stored goods to the team's members and zero the factory.

        Caller must hold `lock`. Returns `{user_id: (in, out)}` as handed out;
        with no members the goods are lost.
        """
        (goods_in, goods_out), members = await join(
            self.get_contents(),
            self.store.get_game_users_for_team(self.team_id),
        )
        await self.store.set_fields(ModelType.FACTORY, self.factory_id, {"in": 0, "out": 0})

        in_shares = split_evenly(goods_in, len(members))
        out_shares = split_evenly(goods_out, len(members))

        async def give(member, share_in: int, share_out: int):
            if share_in:
                await self.store.add_to_field(ModelType.GAME_USER, member["id"], "in", share_in)
            if share_out:
                await self.store.add_to_field(ModelType.GAME_USER, member["id"], "out", share_out)

        await join(*(give(m, i, o) for m, i, o in zip(members, in_shares, out_shares)))
        return {m["user"]: (i, o) for m, i, o in zip(members, in_shares, out_shares)}

    async def destroy(self, *, spread_contents: bool = True) -> dict[str, tuple[int, int]]:
        """Remove the factory from storage and from the game, telling every client.

        Returns the goods each teammate received.
        """
        async with self.lock:
            if self.destroyed:
                return {}
            if spread_contents:
                shares = await self.spread_contents()
            else:
                shares = {}
                await self.store.set_fields(ModelType.FACTORY, self.factory_id, {"in": 0, "out": 0})
            await self.store.delete_factory(self.factory_id)
            self.destroyed = True

        self.game.factory_manager.remove(self.factory_id)
        self.unload()

        payload = {"factory": self.factory_id, "game": self.game.game_id}
        await join_each(
            lambda user: self.game.dispatcher.send_packet_user(PacketType.FACTORY_DESTROYED, payload, user.user_id),
            self.game.user_manager.users,
        )
        logger.info(f"Factory {self.factory_id} destroyed in game {self.game.game_id}, shares: {shares}")
        return shares

    def unload(self) -> None:
        self._visible_memory.clear()
        self._range_memory.clear()
