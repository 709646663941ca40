"""
Pytest fixtures for the live game engine.

Every test gets its own SQLite database under `tmp_path`, seeded with one
active game ("g1") holding two teams, and a GameManager that pushes into
a recording dispatcher instead of Socket.IO.
"""

import random
from types import SimpleNamespace
from typing import NamedTuple, Optional

import pytest
import pytest_asyncio

from db import init_db
from live import GameManager
from models.coordinate import Coordinate
from realtime.packet_type import PacketType
from services.game_config import GameConfig
from stores import ModelType, Stage, create_model_store

# Meters per degree of latitude on the haversine sphere (6371000 * pi / 180)
METERS_PER_DEGREE_LATITUDE = 111194.93

ORIGIN = Coordinate(52.0, 5.0)


def north_of(coordinate: Coordinate, meters: float) -> Coordinate:
    return Coordinate(coordinate.latitude + meters / METERS_PER_DEGREE_LATITUDE, coordinate.longitude)


class Sent(NamedTuple):
    packet_type: PacketType
    payload: dict
    sids: object = None
    user_id: Optional[str] = None


class RecordingDispatcher:
    """Collects outbound packets; `connected` decides who counts as online."""

    def __init__(self):
        self.sent: list[Sent] = []
        self.connected: set[str] = set()

    async def send_packet(self, packet_type, payload, sids):
        self.sent.append(Sent(packet_type, payload, sids=sids))

    async def send_packet_user(self, packet_type, payload, user_id):
        self.sent.append(Sent(packet_type, payload, user_id=user_id))

    def is_user_connected(self, user_id):
        return user_id in self.connected

    def get_user_sids(self, user_id):
        return [f"sid-{user_id}"] if user_id in self.connected else []

    def packets(self, packet_type, *, user_id=None, sids=None) -> list[dict]:
        return [
            s.payload for s in self.sent
            if s.packet_type == packet_type
            and (user_id is None or s.user_id == user_id)
            and (sids is None or s.sids == sids)
        ]

    def messages(self, *, user_id=None, sids=None) -> list[str]:
        return [p["message"] for p in self.packets(PacketType.MESSAGE_RESPONSE, user_id=user_id, sids=sids)]

    def clear(self):
        self.sent.clear()


@pytest_asyncio.fixture
async def store(tmp_path):
    db_path = str(tmp_path / "territory.db")
    await init_db(db_path)
    store = create_model_store(db_path)
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def game_config():
    return GameConfig(rng=random.Random(7))


@pytest_asyncio.fixture
async def world(store):
    """One active game: team red (alice, bob, dave), team blue (carol),
    a spectator (sam), a pending join request (rita) and a red factory at ORIGIN."""
    game_id = await store.create_game("Downtown", stage=Stage.ACTIVE, game_id="g1")
    red = await store.create_team(game_id, "Red", team_id="red")
    blue = await store.create_team(game_id, "Blue", team_id="blue")

    game_users = {}
    for user_id, team, extra in (
        ("alice", red, {}),
        ("bob", red, {}),
        ("dave", red, {}),
        ("carol", blue, {}),
        ("sam", None, {"spectator": True}),
        ("rita", None, {"requested": True}),
    ):
        await store.create_user(user_id.title(), user_id=user_id)
        game_users[user_id] = await store.add_game_user(game_id, user_id, team_id=team, money=500, **extra)

    factory_id = await store.add_factory(game_id, red, "alice", "Red Lab", ORIGIN, level=1, defence=7)
    return SimpleNamespace(game_id=game_id, red=red, blue=blue, game_users=game_users, factory_id=factory_id)


@pytest_asyncio.fixture
async def manager(store, dispatcher, game_config):
    manager = GameManager(store, dispatcher, config_provider=lambda game_id: game_config, start_workers=False)
    yield manager
    manager.unload()


@pytest_asyncio.fixture
async def game(manager, world):
    game = await manager.get_game(world.game_id)
    assert game is not None
    return game


async def set_balance(store, game_user_id, **values):
    """Overwrite money/in/out/strength of a game user."""
    await store.set_fields(ModelType.GAME_USER, game_user_id, values)
