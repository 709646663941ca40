"""
Tests for the HTTP status endpoint.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from routes import status_router


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(status_router)
    return app


async def request_status(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.get("/api/status")


async def test_status_before_games_load(app):
    response = await request_status(app)
    assert response.status_code == 503


async def test_status_lists_loaded_games(app, manager, game, world):
    app.state.game_manager = manager

    response = await request_status(app)

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "games": [{"game": world.game_id, "users": 5, "factories": 1, "shops": 0}],
    }
