from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Generic, TypeVar

T = TypeVar("T")


class InFlightRegistry(Generic[T]):
    """Shares one pending computation between concurrent identical requests.

    The task is registered before the caller first suspends, so a second
    caller arriving while the first is still running always finds it.
    Entries are dropped as soon as the task settles, successfully or not.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda done, key=key: self._discard(key, done))
        # Shielded so one caller going away does not cancel work others await.
        return await asyncio.shield(task)

    def _discard(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    def clear(self) -> None:
        self._pending.clear()


__all__ = ["InFlightRegistry"]
