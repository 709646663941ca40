"""Pydantic models for inbound real-time packets and HTTP responses.

Keep transport concerns (validation, field aliases) here and keep
business/domain types in `models.domain_models`.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PacketModel(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LocationModel(BaseModel):
	latitude: float = Field(ge=-90, le=90)
	longitude: float = Field(ge=-180, le=180)


class AuthRequest(PacketModel):
	session: str = ""


class GamePacket(PacketModel):
	game: str = Field(min_length=1)


class LocationUpdatePacket(GamePacket):
	location: LocationModel


class GameDataRequest(GamePacket):
	pass


class GameInfoRequest(GamePacket):
	pass


class GameStageChangePacket(GamePacket):
	stage: int


class PlayerStrengthBuyPacket(GamePacket):
	index: int = Field(ge=0)
	cost: float
	strength: int


class FactoryBuildRequest(GamePacket):
	name: str


class FactoryPacket(PacketModel):
	factory: str = Field(min_length=1)


class FactoryDataRequest(FactoryPacket):
	game: str | None = None


class AmountPacketMixin(BaseModel):
	"""`amount` or `all: true`; one of them is required."""
	amount: int | None = None
	all: bool = False

	@model_validator(mode="after")
	def _amount_or_all(self):
		if not self.all and self.amount is None:
			raise ValueError("either 'amount' or 'all' is required")
		return self


class FactoryTransferPacket(FactoryPacket, AmountPacketMixin):
	pass


class FactoryLevelBuyPacket(FactoryPacket):
	cost: float


class FactoryDefenceBuyPacket(FactoryPacket):
	index: int = Field(ge=0)
	cost: float
	defence: int


class FactoryDestroyPacket(FactoryPacket):
	keep_contents: bool = Field(default=False, alias="keepContents")


class ShopTransactionPacket(PacketModel, AmountPacketMixin):
	shop: str = Field(min_length=1)


class LoadedGameStatus(BaseModel):
	game: str
	users: int
	factories: int
	shops: int


class StatusResponse(BaseModel):
	status: str = "ok"
	games: list[LoadedGameStatus]
