# Abstractions
from .model_store import ModelStore, ModelType, Stage

# Exceptions
from .exceptions import (
    StoreError,
    StoreUnavailable,
    UnexpectedResult,
    InvalidReference,
    GameNotFound,
    UserNotFound,
    GameUserNotFound,
    TeamNotFound,
    FactoryNotFound,
    InvalidValue,
    ActionRejected,
)

# Concrete implementation is private; only the abstract interface is exported.
from .sqlite_model_store import SqliteModelStore as _SqliteModelStore

__all__ = [
    # Abstractions
    "ModelStore",
    "ModelType",
    "Stage",
    # Exceptions
    "StoreError",
    "StoreUnavailable",
    "UnexpectedResult",
    "InvalidReference",
    "GameNotFound",
    "UserNotFound",
    "GameUserNotFound",
    "TeamNotFound",
    "FactoryNotFound",
    "InvalidValue",
    "ActionRejected",
    # Runtime
    "init_stores",
    "close_stores",
    "get_model_store",
    "create_model_store",
]


# Runtime singletons and initialization helpers
from typing import Optional
import config

model_store: Optional[ModelStore] = None


def create_model_store(db_path: str, *, cache=None, cache_expire: int = config.CACHE_EXPIRE_SECONDS) -> ModelStore:
    """Create (but do not init) a store. Await `init()` before use."""
    return _SqliteModelStore(db_path, cache=cache, cache_expire=cache_expire)


async def init_stores(db_path: str, *, cache=None) -> ModelStore:
    """Initialize the module-level store singleton for this process.

    Safe to call multiple times; initialization is idempotent.
    """
    global model_store
    if model_store is None:
        store = create_model_store(db_path, cache=cache)
        await store.init()
        model_store = store
    return model_store


async def close_stores() -> None:
    global model_store
    if model_store is not None:
        await model_store.close()
        model_store = None


def get_model_store() -> ModelStore:
    if model_store is None:
        raise RuntimeError("Model store not initialized; call init_stores() first")
    return model_store
