"""Non-blocking stream sockets driven by the running event loop."""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any

from .buffer_ring import BufferRing

logger = logging.getLogger(__name__)

SOCKET_LISTEN_QUEUE_SIZE = 128
DEFAULT_PORT = 8080


@dataclass(frozen=True)
class Received:
    """The outcome of one receive: the ring buffer used and the bytes read.

    A size of zero means the peer closed the connection; the buffer has
    then already gone back to the ring.
    """

    buf_id: int
    size: int


class _Descriptor:
    """An owned socket that is closed exactly once."""

    def __init__(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        self._sock: socket.socket | None = sock

    @property
    def closed(self) -> bool:
        """Whether the socket has been closed."""
        return self._sock is None

    @property
    def socket(self) -> socket.socket:
        """The underlying socket object."""
        if self._sock is None:
            raise ValueError("socket is closed")
        return self._sock

    def _release(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._release()


class SocketClient(_Descriptor):
    """A connected stream socket that receives into provided ring buffers."""

    def __init__(
        self,
        sock: socket.socket,
        ring: BufferRing | None = None,
        address: Any = None,
    ) -> None:
        super().__init__(sock)
        self._ring = ring
        self.address = address

    @property
    def ring(self) -> BufferRing:
        """The buffer ring receives are read into."""
        return self._ring if self._ring is not None else BufferRing.get_instance()

    def fileno(self) -> int:
        """The socket's file descriptor."""
        return self.socket.fileno()

    def close(self) -> None:
        """Close the socket; closing again does nothing."""
        self._release()

    async def recv(self) -> Received:
        """Receive into the buffer at the head of the ring.

        The buffer stays borrowed until the caller returns it to the ring,
        unless the peer closed the connection. Errors raise OSError.
        """
        sock = self.socket
        ring = self.ring
        buf_id = ring.select_buf()
        buffer = ring.borrow_buf(buf_id)
        try:
            size = await asyncio.get_running_loop().sock_recv_into(sock, buffer)
        except BaseException:
            ring.return_buf(buf_id)
            raise
        if size == 0:
            ring.return_buf(buf_id)
        return Received(buf_id, size)

    async def send(self, data: bytes | bytearray | memoryview) -> int:
        """Send all of ``data`` and return the number of bytes sent."""
        sock = self.socket
        await asyncio.get_running_loop().sock_sendall(sock, data)
        return len(memoryview(data).cast("B"))


class SocketServer(_Descriptor):
    """A bound listening socket that hands out connected clients."""

    def __init__(self, sock: socket.socket, ring: BufferRing | None = None) -> None:
        super().__init__(sock)
        self._ring = ring

    def fileno(self) -> int:
        """The socket's file descriptor."""
        return self.socket.fileno()

    def close(self) -> None:
        """Close the socket; closing again does nothing."""
        self._release()

    def listen(self, backlog: int = SOCKET_LISTEN_QUEUE_SIZE) -> None:
        """Start listening for connections."""
        self.socket.listen(backlog)

    async def accept(self) -> SocketClient:
        """Wait for the next connection and return it as a client."""
        sock = self.socket
        conn, address = await asyncio.get_running_loop().sock_accept(sock)
        return SocketClient(conn, ring=self._ring, address=address)


def bind(host: str | None = None, port: int = DEFAULT_PORT) -> SocketServer:
    """Bind a stream socket to the first usable address for host and port.

    Each resolved address is tried in turn; the socket reuses both address
    and port so several workers can share one port. Raises OSError if no
    address could be bound.
    """
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port {port} out of range")
    infos = socket.getaddrinfo(
        host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    )
    last_error: OSError | None = None
    for family, sock_type, proto, _canonname, address in infos:
        try:
            sock = socket.socket(family, sock_type, proto)
        except OSError as error:
            last_error = error
            continue
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(address)
        except OSError as error:
            sock.close()
            last_error = error
            continue
        return SocketServer(sock)
    if last_error is not None:
        raise last_error
    raise OSError(f"no address to bind for {host!r}:{port}")