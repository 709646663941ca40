from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from models.coordinate import Coordinate
from models.domain_models import (
    FactoryRecord,
    GameRecord,
    GameUserRecord,
    TeamRecord,
    UserRecord,
    UserState,
)


class ModelType(str, Enum):
    GAME = "game"
    GAME_USER = "game_user"
    FACTORY = "factory"


class Stage(int, Enum):
    LOBBY = 0
    ACTIVE = 1
    FINISHED = 2


# =========================
# ModelStore Interface
# =========================

class ModelStore(ABC):
    """
    Key/value access to the persisted game world.

    The live engine reads and writes single fields through `get_field` /
    `set_field` and only uses the collection queries to (re)load its
    in-memory wrappers.

    Invariants:
    - Buffers (`in`, `out`), `money` and `strength` are never negative
    - A factory's `level` is at least 1
    - A factory's `team` never changes after creation
    - Values are validated before any write is attempted
    """

    @abstractmethod
    async def init(self) -> None:
        """Open connections. Call this after construction."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    # -------------------------------------------------
    # Generic field access
    # -------------------------------------------------

    @abstractmethod
    async def get(self, model: ModelType, model_id: str) -> dict:
        """Return the whole persisted document.

        Raises:
            InvalidReference: If no such document exists.
        """

    @abstractmethod
    async def get_field(self, model: ModelType, model_id: str, field: str) -> Any:
        """Return one field of a document.

        Raises:
            InvalidReference: If no such document exists.
            InvalidValue: If the field is unknown for this model.
        """

    @abstractmethod
    async def get_fields(self, model: ModelType, model_id: str, fields: Iterable[str]) -> dict:
        """Return several fields of a document in one read.

        Raises:
            InvalidReference: If no such document exists.
            InvalidValue: If a field is unknown for this model.
        """

    @abstractmethod
    async def set_field(self, model: ModelType, model_id: str, field: str, value: Any) -> None:
        """
        Raises:
            InvalidValue: If the field is unknown or the value breaks an invariant.
            InvalidReference: If no such document exists.
        """

    @abstractmethod
    async def set_fields(self, model: ModelType, model_id: str, values: Mapping[str, Any]) -> None:
        """Write several fields atomically.

        Raises:
            InvalidValue: If a field is unknown or a value breaks an invariant.
            InvalidReference: If no such document exists.
        """

    @abstractmethod
    async def add_to_field(self, model: ModelType, model_id: str, field: str, delta: float) -> Any:
        """Atomically add `delta` to a numeric field and return the new value.

        Raises:
            InvalidValue: If the result would break the field's invariant
                (e.g. go below zero); nothing is written in that case.
            InvalidReference: If no such document exists.
        """

    # -------------------------------------------------
    # Games, users, teams
    # -------------------------------------------------

    @abstractmethod
    async def get_game(self, game_id: str) -> GameRecord:
        """
        Raises:
            GameNotFound: If the game does not exist.
        """

    @abstractmethod
    async def get_game_stage(self, game_id: str) -> Optional[int]:
        """Return the game's stage, or None if the game does not exist."""

    @abstractmethod
    async def get_games_with_stage(self, stage: int) -> list[str]:
        """Return ids of every game at `stage`."""

    @abstractmethod
    async def get_user(self, user_id: str) -> UserRecord:
        """
        Raises:
            UserNotFound: If the user does not exist.
        """

    @abstractmethod
    async def is_valid_user_id(self, user_id: str) -> bool:
        """Return True if a user with this id exists."""

    @abstractmethod
    async def get_team(self, team_id: str) -> TeamRecord:
        """
        Raises:
            TeamNotFound: If the team does not exist.
        """

    @abstractmethod
    async def get_teams_for_game(self, game_id: str) -> list[TeamRecord]:
        """Return the game's teams ordered by name."""

    # -------------------------------------------------
    # Game users
    # -------------------------------------------------

    @abstractmethod
    async def get_game_user(self, game_id: str, user_id: str) -> Optional[GameUserRecord]:
        """Return the user's membership record in the game, or None."""

    @abstractmethod
    async def get_game_users(self, game_id: str, *, requested: Optional[bool] = None) -> list[GameUserRecord]:
        """Return the game's members, optionally filtered by the requested flag."""

    @abstractmethod
    async def get_game_users_for_team(self, team_id: str) -> list[GameUserRecord]:
        """Return the team's non-requested members in join order."""

    @abstractmethod
    async def get_user_state(self, game_id: str, user_id: str) -> UserState:
        """Return the user's role flags in the game; all False for non-members."""

    # -------------------------------------------------
    # Factories
    # -------------------------------------------------

    @abstractmethod
    async def get_factory(self, factory_id: str) -> FactoryRecord:
        """
        Raises:
            FactoryNotFound: If the factory does not exist.
        """

    @abstractmethod
    async def get_factories_for_game(self, game_id: str) -> list[FactoryRecord]:
        """Return every factory of the game."""

    @abstractmethod
    async def get_factory_count_for_team(self, team_id: str) -> int:
        """Return how many factories the team owns."""

    @abstractmethod
    async def add_factory(
        self,
        game_id: str,
        team_id: str,
        creator_user_id: Optional[str],
        name: str,
        location: Coordinate,
        *,
        level: int,
        defence: int,
        in_amount: int = 0,
        out_amount: int = 0,
    ) -> str:
        """Create a factory and return its id.

        Raises:
            TeamNotFound: If the team is not part of the game.
            InvalidValue: If level/defence/buffers break an invariant.
        """

    @abstractmethod
    async def delete_factory(self, factory_id: str) -> None:
        """
        Raises:
            FactoryNotFound: If the factory does not exist.
        """

    # -------------------------------------------------
    # Setup
    # -------------------------------------------------

    @abstractmethod
    async def create_user(self, name: str, *, user_id: Optional[str] = None) -> str:
        """Create a user and return its id."""

    @abstractmethod
    async def create_game(self, name: str, *, stage: int = Stage.LOBBY, creator_user_id: Optional[str] = None,
                          game_id: Optional[str] = None) -> str:
        """Create a game and return its id."""

    @abstractmethod
    async def create_team(self, game_id: str, name: str, *, team_id: Optional[str] = None) -> str:
        """
        Raises:
            GameNotFound: If the game does not exist.
        """

    @abstractmethod
    async def add_game_user(
        self,
        game_id: str,
        user_id: str,
        *,
        team_id: Optional[str] = None,
        spectator: bool = False,
        special: bool = False,
        requested: bool = False,
        money: float = 0,
        strength: int = 1,
    ) -> str:
        """Add a user to a game and return the membership id.

        Raises:
            GameNotFound: If the game does not exist.
            UserNotFound: If the user does not exist.
            TeamNotFound: If `team_id` is not a team of this game.
        """
