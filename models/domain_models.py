"""Domain-level typed models used by the live engine and stores.

Prefer `TypedDict` for lightweight structural typing that maps directly to
the rows stored in the database.
"""
from __future__ import annotations

from typing import TypedDict


class UserRecord(TypedDict):
	id: str
	name: str


class GameRecord(TypedDict):
	id: str
	name: str
	stage: int
	creator: str | None


class TeamRecord(TypedDict):
	id: str
	game: str
	name: str


GameUserRecord = TypedDict("GameUserRecord", {
	"id": str,
	"game": str,
	"user": str,
	"team": str | None,
	"spectator": bool,
	"special": bool,
	"requested": bool,
	"money": float,
	"in": int,
	"out": int,
	"strength": int,
})


FactoryRecord = TypedDict("FactoryRecord", {
	"id": str,
	"game": str,
	"team": str,
	"creator": str | None,
	"name": str,
	"latitude": float,
	"longitude": float,
	"level": int,
	"defence": int,
	"in": int,
	"out": int,
	"created_at": str,
})


class UserState(TypedDict):
	"""Per-user-per-game role record; the authority for visibility role gating."""
	player: bool
	special: bool
	spectator: bool
	requested: bool


NO_ROLE: UserState = {"player": False, "special": False, "spectator": False, "requested": False}


__all__ = [
	"UserRecord",
	"GameRecord",
	"TeamRecord",
	"GameUserRecord",
	"FactoryRecord",
	"UserState",
	"NO_ROLE",
]
