"""Data models used by the application.

Split into:
- `api_models`: Pydantic models for inbound packets and HTTP responses
- `domain_models`: typed dicts returned by stores and consumed by the live engine
- `coordinate`: the immutable geographic value type
"""

from . import api_models, domain_models
from .coordinate import Coordinate

from .api_models import (
	PacketModel,
	LocationModel,
	AuthRequest,
	LocationUpdatePacket,
	GameDataRequest,
	GameInfoRequest,
	PlayerStrengthBuyPacket,
	FactoryBuildRequest,
	FactoryDataRequest,
	FactoryTransferPacket,
	FactoryLevelBuyPacket,
	FactoryDefenceBuyPacket,
	FactoryDestroyPacket,
	ShopTransactionPacket,
	LoadedGameStatus,
	StatusResponse,
)

from .domain_models import (
	UserRecord,
	GameRecord,
	TeamRecord,
	GameUserRecord,
	FactoryRecord,
	UserState,
	NO_ROLE,
)

__all__ = [
	# submodules
	"api_models",
	"domain_models",
	# values
	"Coordinate",
	# api models
	"PacketModel",
	"LocationModel",
	"AuthRequest",
	"LocationUpdatePacket",
	"GameDataRequest",
	"GameInfoRequest",
	"PlayerStrengthBuyPacket",
	"FactoryBuildRequest",
	"FactoryDataRequest",
	"FactoryTransferPacket",
	"FactoryLevelBuyPacket",
	"FactoryDefenceBuyPacket",
	"FactoryDestroyPacket",
	"ShopTransactionPacket",
	"LoadedGameStatus",
	"StatusResponse",
	# domain models
	"UserRecord",
	"GameRecord",
	"TeamRecord",
	"GameUserRecord",
	"FactoryRecord",
	"UserState",
	"NO_ROLE",
]
