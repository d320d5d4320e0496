"""Single-flight helper - collapse concurrent identical calls into one task."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one instance of an async operation at a time.

    Callers arriving while an operation is in flight await the same task and
    receive the same outcome. The slot is released once the task finishes,
    whatever the result, so the next call starts a fresh attempt. A caller
    that is cancelled stops waiting but never cancels the shared task.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        if self._task is None:
            self._task = asyncio.ensure_future(factory())
            self._task.add_done_callback(self._release)
        return await asyncio.shield(self._task)

    def _release(self, task: asyncio.Task[T]) -> None:
        if self._task is task:
            self._task = None
        # Mark the exception retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
