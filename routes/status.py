from fastapi import APIRouter, Depends, HTTPException, Request

from models import LoadedGameStatus, StatusResponse

router = APIRouter()


def get_game_manager(request: Request):
	manager = getattr(request.app.state, "game_manager", None)
	if manager is None:
		raise HTTPException(status_code=503, detail="Live games are not loaded yet")
	return manager


@router.get("/api/status", response_model=StatusResponse)
async def get_status(manager = Depends(get_game_manager)):
	"""Loaded games with how many users, factories and shops each holds in memory."""
	games = [
		LoadedGameStatus(
			game=game.game_id,
			users=len(game.user_manager.users),
			factories=len(game.factory_manager.factories),
			shops=len(game.shop_manager.shops),
		)
		for game in manager.games
	]
	return StatusResponse(games=games)
