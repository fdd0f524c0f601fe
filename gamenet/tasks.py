"""Handles on coroutines scheduled on the running event loop."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Generator
from typing import Any, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Strong references to fire-and-forget tasks; the event loop keeps only weak ones.
_background: set[Task[Any]] = set()


class Task(Generic[T]):
    """A coroutine scheduled at once on the event loop running in this thread.

    The task is awaitable, and its outcome can be read with :meth:`get`
    once it has finished.
    """

    def __init__(self, coro: Coroutine[Any, Any, T]) -> None:
        if not asyncio.iscoroutine(coro):
            raise TypeError(f"expected a coroutine, got {type(coro).__name__}")
        self._loop = asyncio.get_running_loop()
        self._future: asyncio.Task[T] = self._loop.create_task(coro)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The event loop the task runs on."""
        return self._loop

    def done(self) -> bool:
        """Whether the coroutine has finished, by returning or by raising."""
        return self._future.done()

    def get(self) -> T:
        """Return the coroutine's result, or raise the exception it raised."""
        if not self._future.done():
            raise RuntimeError("task has not finished")
        return self._future.result()

    def cancel(self) -> bool:
        """Ask the coroutine to stop; returns False if it had already finished."""
        return self._future.cancel()

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()


def _forget(task: Task[Any], future: asyncio.Future[Any]) -> None:
    _background.discard(task)
    if not future.cancelled() and future.exception() is not None:
        logger.error("spawned task failed", exc_info=future.exception())


def spawn(coro: Coroutine[Any, Any, T]) -> Task[T]:
    """Start a coroutine without waiting for it and return its task."""
    task = Task(coro)
    _background.add(task)
    task._future.add_done_callback(lambda future: _forget(task, future))
    return task


def wait(task: Task[T]) -> T:
    """Block the calling thread until the task has finished and return its result.

    The task must run on an event loop in another thread; waiting from the
    task's own loop could never finish and raises RuntimeError.
    """
    if task.done():
        return task.get()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is task.loop:
        raise RuntimeError("cannot wait for a task from its own event loop")
    finished = threading.Event()
    task.loop.call_soon_threadsafe(
        task._future.add_done_callback, lambda _future: finished.set()
    )
    finished.wait()
    return task.get()