"""A fixed pool of receive buffers handed out by id, in ring order."""

from __future__ import annotations

import errno
import logging
import threading
from collections import deque

logger = logging.getLogger(__name__)


class BufferRing:
    """Provided receive buffers, one pool per thread.

    Free buffer ids wait in a ring. A receive selects the id at the head of
    the ring, the reader borrows that buffer, and returning it puts the id
    back at the tail.
    """

    IO_BUFFER_SIZE = 4096
    NUM_IO_BUFFERS = 256
    BUF_RING_SIZE = 256
    BUF_SIZE = 4096

    _local = threading.local()

    def __init__(self) -> None:
        self._buffers: list[bytearray] = []
        self._ring: deque[int] = deque()
        self._in_ring: set[int] = set()
        self._borrowed: set[int] = set()

    @classmethod
    def get_instance(cls) -> BufferRing:
        """Return the buffer ring belonging to the calling thread."""
        instance = getattr(cls._local, "instance", None)
        if instance is None:
            instance = cls()
            cls._local.instance = instance
        return instance

    def register_buf_ring(self) -> None:
        """Allocate every buffer and place all of them in the ring."""
        if self.is_initialized():
            raise RuntimeError("buffer ring already registered")
        self._buffers = [bytearray(self.BUF_SIZE) for _ in range(self.BUF_RING_SIZE)]
        self._ring = deque(range(self.BUF_RING_SIZE))
        self._in_ring = set(self._ring)
        self._borrowed = set()

    def is_initialized(self) -> bool:
        """Whether the buffers have been registered."""
        return bool(self._buffers)

    def _check(self, buf_id: int) -> None:
        if not self.is_initialized():
            raise RuntimeError("buffer ring is not registered")
        if not 0 <= buf_id < len(self._buffers):
            raise IndexError(f"buffer id {buf_id} out of range")

    def select_buf(self) -> int:
        """Take the id at the head of the ring for an incoming receive."""
        if not self.is_initialized():
            raise RuntimeError("buffer ring is not registered")
        if not self._ring:
            raise OSError(errno.ENOBUFS, "no buffer available in the ring")
        buf_id = self._ring.popleft()
        self._in_ring.discard(buf_id)
        return buf_id

    def borrow_buf(self, buf_id: int) -> bytearray:
        """Mark a buffer as borrowed and return it."""
        self._check(buf_id)
        self._borrowed.add(buf_id)
        return self._buffers[buf_id]

    def return_buf(self, buf_id: int) -> None:
        """Give a buffer back and put its id at the tail of the ring."""
        self._check(buf_id)
        if buf_id in self._in_ring:
            raise ValueError(f"buffer {buf_id} is already in the ring")
        self._borrowed.discard(buf_id)
        self._ring.append(buf_id)
        self._in_ring.add(buf_id)

    @property
    def borrowed(self) -> frozenset[int]:
        """Ids of the buffers currently borrowed."""
        return frozenset(self._borrowed)

    def __len__(self) -> int:
        return len(self._ring)

    def close(self) -> None:
        """Release every buffer; the ring may then be registered again."""
        if not self.is_initialized():
            return
        self._buffers = []
        self._ring.clear()
        self._in_ring.clear()
        self._borrowed.clear()
        logger.info("BufferRing destroyed successfully")