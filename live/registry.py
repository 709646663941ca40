import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class LiveRegistry(Generic[T]):
    """Id -> live entity mapping with idempotent get-or-create.

    Concurrent `_get_or_load` calls for the same id share one loader run.
    `_clear` bumps a generation counter so a load that finishes after an
    unload is not inserted into the fresh mapping.
    """

    def __init__(self):
        self._entries: dict[str, T] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_loaded(self, key: str) -> Optional[T]:
        return self._entries.get(key)

    def snapshot(self) -> list[T]:
        return list(self._entries.values())

    async def _get_or_load(self, key: str, loader: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load_entry(key, loader, self._generation))
            self._pending[key] = pending
        return await asyncio.shield(pending)

    async def _load_entry(self, key: str, loader, generation: int) -> Optional[T]:
        try:
            entry = await loader()
            if entry is not None and generation == self._generation:
                self._entries[key] = entry
            return entry
        finally:
            if self._pending.get(key) is not None and generation == self._generation:
                self._pending.pop(key, None)

    def _replace(self, entries: dict[str, T]) -> None:
        self._generation += 1
        self._pending.clear()
        self._entries = dict(entries)

    def _remove(self, key: str) -> Optional[T]:
        return self._entries.pop(key, None)

    def _clear(self) -> list[T]:
        removed = list(self._entries.values())
        self._replace({})
        return removed
