import os
from pathlib import Path

# Path to the SQLite database file used by stores. Can be overridden
# using the TERRITORY_DB_PATH environment variable.
DB_PATH = os.environ.get("TERRITORY_DB_PATH", str(Path(__file__).parent / "data" / "territory.db"))

REDIS_URL = os.environ.get("TERRITORY_REDIS_URL", "redis://localhost:6379/0")

# Seconds a cached persisted field stays in Redis before it is re-read.
CACHE_EXPIRE_SECONDS = int(os.environ.get("TERRITORY_CACHE_EXPIRE", "30"))

# Global loops
TICK_INTERVAL_SECONDS = float(os.environ.get("TERRITORY_TICK_INTERVAL", "5"))
LOCATION_UPDATE_INTERVAL_SECONDS = float(os.environ.get("TERRITORY_LOCATION_UPDATE_INTERVAL", "10"))
SHOP_WORKER_INTERVAL_SECONDS = float(os.environ.get("TERRITORY_SHOP_WORKER_INTERVAL", "10"))

# A location older than this no longer counts for range checks.
LOCATION_FRESHNESS_SECONDS = float(os.environ.get("TERRITORY_LOCATION_FRESHNESS", "120"))

SCHEDULER_TIMEZONE = os.environ.get("TERRITORY_SCHEDULER_TIMEZONE", "UTC")

CORS_ORIGINS = [o.strip() for o in os.environ.get("TERRITORY_CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

SOCKETIO_PATH = os.environ.get("TERRITORY_SOCKETIO_PATH", "socket.io")

LOG_LEVEL = os.environ.get("TERRITORY_LOG_LEVEL", "INFO")
