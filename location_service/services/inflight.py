from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class InFlightRegistry(Generic[T]):
    """Coalesces concurrent work by key.

    The first caller for a key starts the task; everyone arriving while it
    runs gets the same task back. The key is released when the task finishes,
    so the next call starts fresh work.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, "asyncio.Task[T]"] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, key: str) -> "Optional[asyncio.Task[T]]":
        return self._tasks.get(key)

    def get_or_start(self, key: str, factory: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        task = self._tasks.get(key)
        if task is not None:
            return task

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda done, k=key: self._release(k, done))
        return task

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        # shield: a cancelled waiter must not cancel the shared work
        return await asyncio.shield(self.get_or_start(key, factory))

    def _release(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
