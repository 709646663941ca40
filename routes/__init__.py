"""HTTP route modules (FastAPI routers) for the application.

Submodules expose an `APIRouter` named `router`; this file re-exports them
so callers can do:

	from routes import status_router
	app.include_router(status_router)
"""

from .status import router as status_router, get_game_manager

__all__ = [
	"status_router",
	"get_game_manager",
]
