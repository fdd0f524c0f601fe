"""The per-thread event loop that drives every coroutine of a worker."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Reactor:
    """One event loop per thread: initialise it, run it, stop it, close it."""

    IO_URING_QUEUE_SIZE = 4096
    BUF_RING_SIZE = 1024
    BUF_SIZE = 8192
    BUF_GROUP_ID = 1

    _local = threading.local()

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def get_instance(cls) -> Reactor:
        """Return the reactor belonging to the calling thread."""
        instance = getattr(cls._local, "instance", None)
        if instance is None:
            instance = cls()
            cls._local.instance = instance
        return instance

    def is_initialized(self) -> bool:
        """Whether :meth:`queue_init` has created the loop."""
        return self._loop is not None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The underlying event loop."""
        if self._loop is None:
            raise RuntimeError("reactor is not initialised")
        return self._loop

    def queue_init(self) -> None:
        """Create the event loop."""
        if self._loop is not None:
            raise RuntimeError("reactor already initialised")
        self._loop = asyncio.new_event_loop()
        logger.info("Reactor initialised with queue size %d", self.IO_URING_QUEUE_SIZE)

    def event_loop(self) -> None:
        """Run the loop in the calling thread until :meth:`stop` is called."""
        loop = self.loop
        logger.info("Starting event loop")
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            asyncio.set_event_loop(None)

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule a coroutine on the loop from any thread."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        """Make :meth:`event_loop` return; safe to call from any thread."""
        loop = self.loop
        loop.call_soon_threadsafe(loop.stop)

    def close(self) -> None:
        """Cancel whatever is still pending and close the loop."""
        loop = self._loop
        if loop is None:
            return
        if loop.is_running():
            raise RuntimeError("cannot close a running reactor")
        # Let callbacks already queued create their tasks so they can be cancelled.
        loop.run_until_complete(asyncio.sleep(0))
        pending = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        self._loop = None