import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import timezone

import config
from db import ensure_db
from infrastructure.redis import FieldCache, SessionLookup, init_default_redis, close_default_redis
from live import GameManager
from realtime.handlers import register_handlers
from realtime.server import RealTime
from routes import status_router
from stores import init_stores, close_stores

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Sessions are attached once Redis is up in the lifespan.
realtime = RealTime(None)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_db(config.DB_PATH)
    redis_client = await init_default_redis(config.REDIS_URL)
    store = await init_stores(config.DB_PATH, cache=FieldCache(redis_client))
    realtime.sessions = SessionLookup(redis_client)

    manager = GameManager(store, realtime)
    register_handlers(realtime.processor, manager, realtime.authenticate)
    loaded = await manager.load()
    logger.info(f"Loaded {loaded} active games")

    # --- Scheduler setup ---
    scheduler = AsyncIOScheduler(timezone=timezone(config.SCHEDULER_TIMEZONE))
    manager.schedule(
        scheduler,
        tick_interval=config.TICK_INTERVAL_SECONDS,
        location_interval=config.LOCATION_UPDATE_INTERVAL_SECONDS,
    )
    scheduler.start()
    app.state.game_manager = manager

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        manager.unload()
        await close_stores()
        await close_default_redis()


# --- FastAPI setup ---
app = FastAPI(lifespan=lifespan)

# --- Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# --- Register routes ---
app.include_router(status_router)

# Socket.IO and HTTP on one ASGI app; run with `uvicorn main:asgi_app`.
asgi_app = realtime.asgi_app(app)
