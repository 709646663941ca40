from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from realtime.dispatcher import message_payload
from realtime.packet_type import PacketType
from utils.time import now_utc
from .visibility import VisibilityState, compute_shop_visibility, teams_match

if TYPE_CHECKING:
    from .shop_manager import ShopManager
    from .user import LiveUser

logger = logging.getLogger(__name__)


class ShopState(str, Enum):
    UNLOADED = "unloaded"
    ACTIVE = "active"
    HANDED_OFF = "handed_off"
    EXPIRING = "expiring"
    REMOVED = "removed"


LIVE_STATES = (ShopState.ACTIVE, ShopState.HANDED_OFF, ShopState.EXPIRING)


def current_task_or_none() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class LiveShop:
    """A player acting as a roaming dealer for a limited time.

    `load` assigns the token and prices and arms two timers:
    - alert, at `lifetime - alert_time`: look for a teammate to take over
    - expiry, at `lifetime`: drop the shop (cancelled when a successor is found,
      the successor's promotion removes this shop instead)

    Timer callbacks are no-ops once the shop left the live states.
    """

    def __init__(self, user: LiveUser, manager: ShopManager):
        self.user = user
        self.manager = manager
        self.state = ShopState.UNLOADED
        self.token: Optional[str] = None
        self.in_sell_price: Optional[float] = None
        self.out_buy_price: Optional[float] = None
        self.range: Optional[float] = None
        self.created_at: Optional[datetime] = None
        self.lifetime: Optional[float] = None
        self.alert_time: Optional[float] = None
        self._expire_handle: Optional[asyncio.TimerHandle] = None
        self._alert_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"<LiveShop {self.token} dealer={self.user.user_id} {self.state.value}>"

    @property
    def game(self):
        return self.manager.game

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    def load(self) -> None:
        config = self.game.config
        self.token = secrets.token_hex(16)
        self.in_sell_price = config.shop.random_in_sell_price(config.rng)
        self.out_buy_price = config.shop.random_out_buy_price(config.rng)
        self.range = config.shop.range
        self.lifetime = config.shop.random_lifetime(config.rng)
        self.alert_time = min(config.shop.alert_time, self.lifetime)
        self.created_at = now_utc()

        loop = asyncio.get_running_loop()
        self._alert_handle = loop.call_later(self.lifetime - self.alert_time, self._spawn, self._on_alert)
        self._expire_handle = loop.call_later(self.lifetime, self._spawn, self._on_expire)
        self.state = ShopState.ACTIVE
        logger.info(f"Shop {self.token} opened for {self.user.user_id} in game {self.game.game_id} ({self.lifetime:.0f}s)")

    def unload(self) -> None:
        self.state = ShopState.REMOVED
        for handle in (self._alert_handle, self._expire_handle):
            if handle is not None:
                handle.cancel()
        self._alert_handle = self._expire_handle = None
        current = current_task_or_none()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    def remaining_lifetime(self, now: Optional[datetime] = None) -> float:
        if self.created_at is None or self.lifetime is None:
            return 0.0
        return self.lifetime - ((now or now_utc()) - self.created_at).total_seconds()

    # -------------------------------------------------
    # Timers
    # -------------------------------------------------

    def _spawn(self, callback: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Shop {self.token} timer failed", exc_info=task.exception())

    async def _notify_dealer(self, message: str, *, dialog: bool = False, toast: bool = True) -> None:
        await self.game.dispatcher.send_packet_user(
            PacketType.MESSAGE_RESPONSE,
            message_payload(message, dialog=dialog, toast=toast),
            self.user.user_id,
        )

    async def _on_alert(self) -> None:
        if self.state != ShopState.ACTIVE:
            return
        team_id = await self.user.get_team_id()
        successor = await self.manager.find_new_shop_user(team_id) if team_id else None
        if not self.is_live:
            return

        if successor is not None and await self.manager.schedule_user(successor, replaces=self):
            if not self.is_live:
                return
            self.state = ShopState.HANDED_OFF
            if self._expire_handle is not None:
                self._expire_handle.cancel()
                self._expire_handle = None
            await self._notify_dealer("Your dealer ability will be given to another player soon...")
        else:
            self.state = ShopState.EXPIRING
            await self._notify_dealer("You will lose your dealer ability soon...")

    async def _on_expire(self) -> None:
        if not self.is_live:
            return
        self.manager.remove_shop(self)
        await self._notify_dealer("You're no longer a dealer")
        await self.game.manager.send_game_data_to_all(self.game.game_id)

    # -------------------------------------------------
    # Range
    # -------------------------------------------------

    def is_dealer(self, user: LiveUser) -> bool:
        return user.user_id == self.user.user_id

    def is_user_in_range(self, user: LiveUser) -> bool:
        return compute_shop_visibility(
            user.user_id,
            self.user.user_id,
            user.get_recent_location(),
            self.user.get_recent_location(),
            self.range if self.range is not None else self.game.config.shop.range,
        )

    async def get_visibility_state(self, user: LiveUser) -> VisibilityState:
        viewer_team, dealer_team = await user.get_team_id(), await self.user.get_team_id()
        ally = teams_match(viewer_team, dealer_team)
        in_range = self.is_user_in_range(user)
        return VisibilityState(visible=ally or in_range, ally=ally, in_range=in_range)

    async def to_game_data(self) -> dict:
        return {
            "token": self.token,
            "name": await self.user.get_name(),
            "inSellPrice": self.in_sell_price,
            "outBuyPrice": self.out_buy_price,
        }
