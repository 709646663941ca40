"""In-memory runtime of active games.

GameManager -> LiveGame -> {UserManager, FactoryManager, ShopManager}
-> {LiveUser, LiveFactory, LiveShop}. Visibility rules live in
`live.visibility`, the concurrent join helper in `live.fanout`.
"""

from .fanout import join, join_each
from .visibility import (
    VisibilityState,
    compute_factory_visibility,
    compute_shop_visibility,
    compute_player_visibility,
)
from .user import LiveUser
from .factory import LiveFactory, split_evenly
from .shop import LiveShop, ShopState
from .user_manager import UserManager
from .factory_manager import FactoryManager
from .shop_manager import ShopManager, first_candidate
from .game import LiveGame
from .game_manager import GameManager

__all__ = [
    "join",
    "join_each",
    "VisibilityState",
    "compute_factory_visibility",
    "compute_shop_visibility",
    "compute_player_visibility",
    "LiveUser",
    "LiveFactory",
    "split_evenly",
    "LiveShop",
    "ShopState",
    "UserManager",
    "FactoryManager",
    "ShopManager",
    "first_candidate",
    "LiveGame",
    "GameManager",
]
