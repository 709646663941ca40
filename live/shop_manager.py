from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from realtime.dispatcher import message_payload
from realtime.packet_type import PacketType
from .shop import LiveShop, ShopState, current_task_or_none

if TYPE_CHECKING:
    from .game import LiveGame
    from .user import LiveUser

logger = logging.getLogger(__name__)

ShopUserSelector = Callable[[Sequence["LiveUser"]], Optional["LiveUser"]]


def first_candidate(candidates: Sequence[LiveUser]) -> Optional[LiveUser]:
    return candidates[0] if candidates else None


@dataclass
class PendingDealer:
    user: LiveUser
    team_id: Optional[str]
    handle: asyncio.TimerHandle
    replaces: Optional[LiveShop] = None


class ShopManager:
    """Active shops of one game (by token) plus dealers waiting to be promoted."""

    def __init__(self, game: LiveGame, *, selector: Optional[ShopUserSelector] = None):
        self.game = game
        self.selector = selector or first_candidate
        self._shops: dict[str, LiveShop] = {}
        self._scheduled: dict[str, PendingDealer] = {}
        self._tasks: set[asyncio.Task] = set()
        self._worker_task: Optional[asyncio.Task] = None
        self._loaded = False

    @property
    def shops(self) -> list[LiveShop]:
        return list(self._shops.values())

    @property
    def scheduled_user_ids(self) -> list[str]:
        return list(self._scheduled)

    def get(self, token: str) -> Optional[LiveShop]:
        shop = self._shops.get(token)
        return shop if shop is not None and shop.is_live else None

    def get_shop_by_user(self, user: LiveUser) -> Optional[LiveShop]:
        for shop in self._shops.values():
            if shop.is_dealer(user) and shop.is_live:
                return shop
        return None

    def is_shop_user(self, user: LiveUser) -> bool:
        return self.get_shop_by_user(user) is not None

    def is_scheduled_user(self, user: LiveUser) -> bool:
        return user.user_id in self._scheduled

    async def get_team_shop_count(self, team_id: str, *, include_scheduled: bool = True) -> int:
        count = 0
        for shop in self.shops:
            # a handed-off shop is already counted through its pending successor
            if shop.is_live and shop.state != ShopState.HANDED_OFF and await shop.user.get_team_id() == team_id:
                count += 1
        if include_scheduled:
            count += sum(1 for p in self._scheduled.values() if p.team_id == team_id)
        return count

    # -------------------------------------------------
    # Dealer selection
    # -------------------------------------------------

    async def find_new_shop_users(self, team_id: str) -> list[LiveUser]:
        """Teammates with a recent location who are not (about to be) dealers."""
        candidates = []
        for user in self.game.user_manager.users:
            if await user.get_team_id() != team_id:
                continue
            if self.is_shop_user(user) or self.is_scheduled_user(user):
                continue
            if not user.has_recent_location():
                continue
            candidates.append(user)
        return candidates

    async def find_new_shop_user(self, team_id: str) -> Optional[LiveUser]:
        candidates = await self.find_new_shop_users(team_id)
        return self.selector(candidates) if candidates else None

    async def schedule_user(self, user: LiveUser, *, replaces: Optional[LiveShop] = None) -> bool:
        """Promote `user` to dealer after the alert period. Returns False if already pending or a dealer."""
        if not self._loaded or self.is_shop_user(user) or self.is_scheduled_user(user):
            return False

        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.game.config.shop.alert_time, self._spawn_promotion, user.user_id)
        self._scheduled[user.user_id] = PendingDealer(user, await user.get_team_id(), handle, replaces)

        await self.game.dispatcher.send_packet_user(
            PacketType.MESSAGE_RESPONSE,
            message_payload(
                "You're getting increasingly interested in the salesman job. You might become a dealer soon.",
                dialog=True,
            ),
            user.user_id,
        )
        return True

    def _spawn_promotion(self, user_id: str) -> None:
        task = asyncio.ensure_future(self.promote(user_id))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Dealer promotion failed in game {self.game.game_id}", exc_info=task.exception())

    async def promote(self, user_id: str) -> Optional[LiveShop]:
        pending = self._scheduled.pop(user_id, None)
        if pending is None or not self._loaded:
            return None
        pending.handle.cancel()

        if pending.replaces is not None and pending.replaces.is_live:
            self.remove_shop(pending.replaces)
            await self.game.dispatcher.send_packet_user(
                PacketType.MESSAGE_RESPONSE,
                message_payload("You're no longer a dealer", toast=True),
                pending.replaces.user.user_id,
            )

        shop = LiveShop(pending.user, self)
        shop.load()
        self._shops[shop.token] = shop

        await self.game.dispatcher.send_packet_user(
            PacketType.MESSAGE_RESPONSE,
            message_payload(
                "You became a dealer. You're now visible on the map for everyone, also for enemy players.",
                toast=True,
            ),
            user_id,
        )
        await self.game.manager.send_game_data_to_all(self.game.game_id)
        return shop

    def remove_shop(self, shop: LiveShop) -> None:
        if self._shops.get(shop.token) is shop:
            del self._shops[shop.token]
        shop.unload()

    # -------------------------------------------------
    # Worker
    # -------------------------------------------------

    async def worker(self) -> int:
        """Top every team up to its preferred number of dealers. Returns how many were scheduled."""
        scheduled = 0
        shop_config = self.game.config.shop
        for team in await self.game.store.get_teams_for_game(self.game.game_id):
            team_id = team["id"]
            active = [u for u in self.game.user_manager.get_team_users(team_id) if u.has_recent_location()]
            delta = shop_config.shops_for_players(len(active)) - await self.get_team_shop_count(team_id)
            for _ in range(max(delta, 0)):
                user = await self.find_new_shop_user(team_id)
                if user is None:
                    break
                if await self.schedule_user(user):
                    scheduled += 1
        return scheduled

    async def _run_worker(self) -> None:
        interval = self.game.config.shop_worker_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.worker()
            except Exception:
                logger.exception(f"Shop worker failed for game {self.game.game_id}")

    # -------------------------------------------------
    # Lifecycle
    # -------------------------------------------------

    async def load(self, *, start_worker: bool = True) -> None:
        """Start from an empty set of shops; dealers are not persisted."""
        self.unload()
        self._loaded = True
        if start_worker:
            self._worker_task = asyncio.create_task(self._run_worker())

    def unload(self) -> None:
        self._loaded = False
        if self._worker_task is not None:
            self._worker_task.cancel()
            self._worker_task = None
        for pending in self._scheduled.values():
            pending.handle.cancel()
        self._scheduled.clear()
        current = current_task_or_none()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        for shop in list(self._shops.values()):
            shop.unload()
        self._shops.clear()
