import json
import logging
import sqlite3
import uuid
from typing import Any, Callable, Iterable, Mapping, Optional

import aiosqlite

from db.connections import connect
from models.coordinate import Coordinate
from models.domain_models import (
    FactoryRecord,
    GameRecord,
    GameUserRecord,
    NO_ROLE,
    TeamRecord,
    UserRecord,
    UserState,
)
from utils.time import now_utc, to_iso
from .exceptions import (
    FactoryNotFound,
    GameNotFound,
    GameUserNotFound,
    InvalidReference,
    InvalidValue,
    StoreUnavailable,
    TeamNotFound,
    UnexpectedResult,
    UserNotFound,
)
from .model_store import ModelStore, ModelType, Stage

logger = logging.getLogger(__name__)


def _non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def _number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _optional_str(value: Any) -> bool:
    return value is None or isinstance(value, str)


def _flag(value: Any) -> bool:
    return isinstance(value, bool)


class _Field:
    __slots__ = ("column", "validator", "writable", "minimum", "is_flag")

    def __init__(self, column: str, validator: Callable[[Any], bool], *, writable: bool = True,
                 minimum: Optional[float] = None, is_flag: bool = False):
        self.column = column
        self.validator = validator
        self.writable = writable
        self.minimum = minimum
        self.is_flag = is_flag


# model -> (table, primary key, not-found exception, fields)
_MODELS: dict[ModelType, tuple[str, str, type[InvalidReference], dict[str, _Field]]] = {
    ModelType.GAME: ("games", "game_id", GameNotFound, {
        "name": _Field("name", _non_empty_str),
        "stage": _Field("stage", lambda v: v in (Stage.LOBBY, Stage.ACTIVE, Stage.FINISHED) and not isinstance(v, bool)),
        "creator": _Field("creator_user_id", _optional_str, writable=False),
    }),
    ModelType.GAME_USER: ("game_users", "game_user_id", GameUserNotFound, {
        "game": _Field("game_id", _non_empty_str, writable=False),
        "user": _Field("user_id", _non_empty_str, writable=False),
        "team": _Field("team_id", _optional_str),
        "spectator": _Field("is_spectator", _flag, is_flag=True),
        "special": _Field("is_special", _flag, is_flag=True),
        "requested": _Field("is_requested", _flag, is_flag=True),
        "money": _Field("money", _non_negative_number, minimum=0),
        "in": _Field("in_amount", _non_negative_int, minimum=0),
        "out": _Field("out_amount", _non_negative_int, minimum=0),
        "strength": _Field("strength", _non_negative_int, minimum=0),
    }),
    ModelType.FACTORY: ("factories", "factory_id", FactoryNotFound, {
        "game": _Field("game_id", _non_empty_str, writable=False),
        "team": _Field("team_id", _non_empty_str, writable=False),
        "creator": _Field("creator_user_id", _optional_str, writable=False),
        "name": _Field("name", _non_empty_str),
        "latitude": _Field("latitude", _number, writable=False),
        "longitude": _Field("longitude", _number, writable=False),
        "level": _Field("level", _positive_int, minimum=1),
        "defence": _Field("defence", _non_negative_int, minimum=0),
        "in": _Field("in_amount", _non_negative_int, minimum=0),
        "out": _Field("out_amount", _non_negative_int, minimum=0),
        "created_at": _Field("created_at", _non_empty_str, writable=False),
    }),
}


def _new_id() -> str:
    return uuid.uuid4().hex


class SqliteModelStore(ModelStore):

    def __init__(self, db_path: str, *, cache=None, cache_expire: int = 30):
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None
        # Optional infrastructure.redis.FieldCache consulted by get_field
        self.cache = cache
        self.cache_expire = cache_expire
        # cache key -> writes seen; a read that overlaps a write doesn't keep its value cached
        self._write_generations: dict[str, int] = {}
        logger.info(f"[STORE] SqliteModelStore initialized with db_path: {db_path}")

    async def init(self):
        """Open the database connection. Call this after construction."""
        if self.db is not None:
            return
        self.db = await connect(self.db_path)
        logger.info(f"[STORE] Database connection established to {self.db_path}")

        async with self.db.execute("SELECT name FROM sqlite_master WHERE type='table'") as cursor:
            tables = await cursor.fetchall()
        if not tables:
            logger.error("[STORE] ✗ No tables found! Database may be empty or uninitialized")
            raise RuntimeError(f"Database at {self.db_path} has no tables - run scripts/init_sqlite.py first")

    async def close(self):
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None

    # -------------------------------------------------
    # Low-level helpers
    # -------------------------------------------------

    async def _execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        if self.db is None:
            raise StoreUnavailable("Store not initialized; call init() first")
        try:
            return await self.db.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise InvalidValue(str(e)) from e
        except sqlite3.OperationalError as e:
            logger.error(f"[STORE] Operational error on {sql.split()[0]}: {e}")
            raise StoreUnavailable(str(e)) from e

    async def _fetchone(self, sql: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        cursor = await self._execute(sql, params)
        try:
            return await cursor.fetchone()
        finally:
            await cursor.close()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        cursor = await self._execute(sql, params)
        try:
            return list(await cursor.fetchall())
        finally:
            await cursor.close()

    @staticmethod
    def _resolve(model: ModelType, fields: Iterable[str], *, for_write: bool = False):
        table, pk, not_found, known = _MODELS[model]
        resolved = {}
        for name in fields:
            field_def = known.get(name)
            if field_def is None:
                raise InvalidValue(f"Unknown field {name!r} for {model.value}")
            if for_write and not field_def.writable:
                raise InvalidValue(f"Field {name!r} of {model.value} is read-only")
            resolved[name] = field_def
        return table, pk, not_found, resolved

    @staticmethod
    def _decode(field_def: _Field, raw: Any) -> Any:
        if field_def.is_flag:
            return bool(raw)
        return raw

    def _cache_key(self, model: ModelType, model_id: str, field: str) -> str:
        return f"field:{model.value}:{model_id}:{field}"

    async def _invalidate(self, model: ModelType, model_id: str, fields: Iterable[str]) -> None:
        if self.cache is None:
            return
        keys = [self._cache_key(model, model_id, f) for f in fields]
        for key in keys:
            self._write_generations[key] = self._write_generations.get(key, 0) + 1
        await self.cache.delete(*keys)

    # -------------------------------------------------
    # Generic field access
    # -------------------------------------------------

    async def get(self, model: ModelType, model_id: str) -> dict:
        _, _, _, known = _MODELS[model]
        doc = await self.get_fields(model, model_id, known.keys())
        doc["id"] = model_id
        return doc

    async def get_field(self, model: ModelType, model_id: str, field: str) -> Any:
        if self.cache is None:
            return (await self.get_fields(model, model_id, [field]))[field]

        key = self._cache_key(model, model_id, field)
        cached = await self.cache.get(key)
        if cached is not None:
            return json.loads(cached)

        generation = self._write_generations.get(key, 0)
        value = (await self.get_fields(model, model_id, [field]))[field]
        if self._write_generations.get(key, 0) != generation:
            return value

        await self.cache.set(key, json.dumps(value), self.cache_expire)
        if self._write_generations.get(key, 0) != generation:
            # a write invalidated the key while this value was being stored
            await self.cache.delete(key)
        return value

    async def get_fields(self, model: ModelType, model_id: str, fields: Iterable[str]) -> dict:
        table, pk, not_found, resolved = self._resolve(model, list(fields))
        columns = ", ".join(field_def.column for field_def in resolved.values())
        row = await self._fetchone(f"SELECT {columns} FROM {table} WHERE {pk} = ?", (model_id,))
        if row is None:
            raise not_found(f"{model.value} {model_id} not found")
        return {name: self._decode(field_def, row[field_def.column]) for name, field_def in resolved.items()}

    async def set_field(self, model: ModelType, model_id: str, field: str, value: Any) -> None:
        await self.set_fields(model, model_id, {field: value})

    async def set_fields(self, model: ModelType, model_id: str, values: Mapping[str, Any]) -> None:
        if not values:
            return
        table, pk, not_found, resolved = self._resolve(model, values.keys(), for_write=True)
        for name, field_def in resolved.items():
            if not field_def.validator(values[name]):
                raise InvalidValue(f"Invalid value {values[name]!r} for {model.value}.{name}")

        assignments = ", ".join(f"{field_def.column} = ?" for field_def in resolved.values())
        params = tuple(int(values[n]) if field_def.is_flag else values[n] for n, field_def in resolved.items())
        cursor = await self._execute(f"UPDATE {table} SET {assignments} WHERE {pk} = ?", params + (model_id,))
        if cursor.rowcount == 0:
            raise not_found(f"{model.value} {model_id} not found")
        await self._invalidate(model, model_id, resolved.keys())

    async def add_to_field(self, model: ModelType, model_id: str, field: str, delta: float) -> Any:
        table, pk, not_found, resolved = self._resolve(model, [field], for_write=True)
        field_def = resolved[field]
        if field_def.minimum is None:
            raise InvalidValue(f"Field {model.value}.{field} is not numeric")
        if isinstance(delta, bool) or not isinstance(delta, (int, float)):
            raise InvalidValue(f"Invalid delta {delta!r} for {model.value}.{field}")
        if field_def.validator is _non_negative_int or field_def.validator is _positive_int:
            if not isinstance(delta, int):
                raise InvalidValue(f"Field {model.value}.{field} only takes whole amounts")

        col = field_def.column
        cursor = await self._execute(
            f"UPDATE {table} SET {col} = {col} + ? WHERE {pk} = ? AND {col} + ? >= ?",
            (delta, model_id, delta, field_def.minimum),
        )
        if cursor.rowcount == 0:
            row = await self._fetchone(f"SELECT {col} FROM {table} WHERE {pk} = ?", (model_id,))
            if row is None:
                raise not_found(f"{model.value} {model_id} not found")
            raise InvalidValue(f"{model.value}.{field} cannot go below {field_def.minimum} (is {row[col]}, delta {delta})")
        await self._invalidate(model, model_id, [field])

        row = await self._fetchone(f"SELECT {col} FROM {table} WHERE {pk} = ?", (model_id,))
        if row is None:
            raise UnexpectedResult(f"{model.value} {model_id} vanished during update")
        return row[col]

    # -------------------------------------------------
    # Games, users, teams
    # -------------------------------------------------

    @staticmethod
    def _game_row(row) -> GameRecord:
        return {"id": row["game_id"], "name": row["name"], "stage": row["stage"], "creator": row["creator_user_id"]}

    @staticmethod
    def _team_row(row) -> TeamRecord:
        return {"id": row["team_id"], "game": row["game_id"], "name": row["name"]}

    async def get_game(self, game_id: str) -> GameRecord:
        row = await self._fetchone("SELECT * FROM games WHERE game_id = ?", (game_id,))
        if row is None:
            raise GameNotFound(f"Game {game_id} not found")
        return self._game_row(row)

    async def get_game_stage(self, game_id: str) -> Optional[int]:
        row = await self._fetchone("SELECT stage FROM games WHERE game_id = ?", (game_id,))
        return None if row is None else row["stage"]

    async def get_games_with_stage(self, stage: int) -> list[str]:
        rows = await self._fetchall("SELECT game_id FROM games WHERE stage = ? ORDER BY created_at", (int(stage),))
        return [r["game_id"] for r in rows]

    async def get_user(self, user_id: str) -> UserRecord:
        row = await self._fetchone("SELECT user_id, name FROM users WHERE user_id = ?", (user_id,))
        if row is None:
            raise UserNotFound(f"User {user_id} not found")
        return {"id": row["user_id"], "name": row["name"]}

    async def is_valid_user_id(self, user_id: str) -> bool:
        if not user_id:
            return False
        row = await self._fetchone("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
        return row is not None

    async def get_team(self, team_id: str) -> TeamRecord:
        row = await self._fetchone("SELECT * FROM teams WHERE team_id = ?", (team_id,))
        if row is None:
            raise TeamNotFound(f"Team {team_id} not found")
        return self._team_row(row)

    async def get_teams_for_game(self, game_id: str) -> list[TeamRecord]:
        rows = await self._fetchall("SELECT * FROM teams WHERE game_id = ? ORDER BY name", (game_id,))
        return [self._team_row(r) for r in rows]

    # -------------------------------------------------
    # Game users
    # -------------------------------------------------

    @staticmethod
    def _game_user_row(row) -> GameUserRecord:
        return {
            "id": row["game_user_id"],
            "game": row["game_id"],
            "user": row["user_id"],
            "team": row["team_id"],
            "spectator": bool(row["is_spectator"]),
            "special": bool(row["is_special"]),
            "requested": bool(row["is_requested"]),
            "money": row["money"],
            "in": row["in_amount"],
            "out": row["out_amount"],
            "strength": row["strength"],
        }

    async def get_game_user(self, game_id: str, user_id: str) -> Optional[GameUserRecord]:
        row = await self._fetchone(
            "SELECT * FROM game_users WHERE game_id = ? AND user_id = ?", (game_id, user_id)
        )
        return None if row is None else self._game_user_row(row)

    async def get_game_users(self, game_id: str, *, requested: Optional[bool] = None) -> list[GameUserRecord]:
        if requested is None:
            rows = await self._fetchall("SELECT * FROM game_users WHERE game_id = ? ORDER BY rowid", (game_id,))
        else:
            rows = await self._fetchall(
                "SELECT * FROM game_users WHERE game_id = ? AND is_requested = ? ORDER BY rowid",
                (game_id, int(requested)),
            )
        return [self._game_user_row(r) for r in rows]

    async def get_game_users_for_team(self, team_id: str) -> list[GameUserRecord]:
        rows = await self._fetchall(
            "SELECT * FROM game_users WHERE team_id = ? AND is_requested = 0 ORDER BY rowid", (team_id,)
        )
        return [self._game_user_row(r) for r in rows]

    async def get_user_state(self, game_id: str, user_id: str) -> UserState:
        game_user = await self.get_game_user(game_id, user_id)
        if game_user is None:
            return dict(NO_ROLE)
        if game_user["requested"]:
            return {"player": False, "special": False, "spectator": False, "requested": True}
        return {
            "player": game_user["team"] is not None,
            "special": game_user["special"],
            "spectator": game_user["spectator"],
            "requested": False,
        }

    # -------------------------------------------------
    # Factories
    # -------------------------------------------------

    @staticmethod
    def _factory_row(row) -> FactoryRecord:
        return {
            "id": row["factory_id"],
            "game": row["game_id"],
            "team": row["team_id"],
            "creator": row["creator_user_id"],
            "name": row["name"],
            "latitude": row["latitude"],
            "longitude": row["longitude"],
            "level": row["level"],
            "defence": row["defence"],
            "in": row["in_amount"],
            "out": row["out_amount"],
            "created_at": row["created_at"],
        }

    async def get_factory(self, factory_id: str) -> FactoryRecord:
        row = await self._fetchone("SELECT * FROM factories WHERE factory_id = ?", (factory_id,))
        if row is None:
            raise FactoryNotFound(f"Factory {factory_id} not found")
        return self._factory_row(row)

    async def get_factories_for_game(self, game_id: str) -> list[FactoryRecord]:
        rows = await self._fetchall("SELECT * FROM factories WHERE game_id = ? ORDER BY rowid", (game_id,))
        return [self._factory_row(r) for r in rows]

    async def get_factory_count_for_team(self, team_id: str) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS n FROM factories WHERE team_id = ?", (team_id,))
        return row["n"] if row else 0

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
        team = await self.get_team(team_id)
        if team["game"] != game_id:
            raise TeamNotFound(f"Team {team_id} is not part of game {game_id}")
        if not _non_empty_str(name):
            raise InvalidValue("Factory name must not be empty")
        if not _positive_int(level):
            raise InvalidValue(f"Invalid factory level {level!r}")
        for label, value in (("defence", defence), ("in", in_amount), ("out", out_amount)):
            if not _non_negative_int(value):
                raise InvalidValue(f"Invalid factory {label} {value!r}")

        factory_id = _new_id()
        await self._execute(
            """
            INSERT INTO factories (
                factory_id, game_id, team_id, creator_user_id, name, latitude, longitude,
                level, defence, in_amount, out_amount, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (factory_id, game_id, team_id, creator_user_id, name.strip(), location.latitude,
             location.longitude, level, defence, in_amount, out_amount, to_iso(now_utc())),
        )
        logger.info(f"[STORE] Created factory {factory_id} for team {team_id} in game {game_id}")
        return factory_id

    async def delete_factory(self, factory_id: str) -> None:
        cursor = await self._execute("DELETE FROM factories WHERE factory_id = ?", (factory_id,))
        if cursor.rowcount == 0:
            raise FactoryNotFound(f"Factory {factory_id} not found")
        await self._invalidate(ModelType.FACTORY, factory_id, _MODELS[ModelType.FACTORY][3].keys())
        logger.info(f"[STORE] Deleted factory {factory_id}")

    # -------------------------------------------------
    # Setup
    # -------------------------------------------------

    async def create_user(self, name: str, *, user_id: Optional[str] = None) -> str:
        if not _non_empty_str(name):
            raise InvalidValue("User name must not be empty")
        user_id = user_id or _new_id()
        await self._execute(
            "INSERT INTO users (user_id, name, created_at) VALUES (?, ?, ?)",
            (user_id, name.strip(), to_iso(now_utc())),
        )
        return user_id

    async def create_game(self, name: str, *, stage: int = Stage.LOBBY, creator_user_id: Optional[str] = None,
                          game_id: Optional[str] = None) -> str:
        if not _non_empty_str(name):
            raise InvalidValue("Game name must not be empty")
        game_id = game_id or _new_id()
        await self._execute(
            "INSERT INTO games (game_id, name, stage, creator_user_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (game_id, name.strip(), int(stage), creator_user_id, to_iso(now_utc())),
        )
        logger.info(f"[STORE] Created game {game_id} at stage {int(stage)}")
        return game_id

    async def create_team(self, game_id: str, name: str, *, team_id: Optional[str] = None) -> str:
        if await self.get_game_stage(game_id) is None:
            raise GameNotFound(f"Game {game_id} not found")
        team_id = team_id or _new_id()
        await self._execute(
            "INSERT INTO teams (team_id, game_id, name) VALUES (?, ?, ?)",
            (team_id, game_id, name.strip()),
        )
        return team_id

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
        if await self.get_game_stage(game_id) is None:
            raise GameNotFound(f"Game {game_id} not found")
        if not await self.is_valid_user_id(user_id):
            raise UserNotFound(f"User {user_id} not found")
        if team_id is not None:
            team = await self.get_team(team_id)
            if team["game"] != game_id:
                raise TeamNotFound(f"Team {team_id} is not part of game {game_id}")
        if not _non_negative_number(money) or not _non_negative_int(strength):
            raise InvalidValue("Money and strength must be non-negative")

        game_user_id = _new_id()
        await self._execute(
            """
            INSERT INTO game_users (
                game_user_id, game_id, user_id, team_id, is_spectator, is_special,
                is_requested, money, strength
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (game_user_id, game_id, user_id, team_id, int(spectator), int(special),
             int(requested), money, strength),
        )
        return game_user_id
