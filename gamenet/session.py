"""Sessions that split a byte stream into packets, and the echo handler."""

from __future__ import annotations

import enum
import logging
import struct
import weakref
from collections import deque
from dataclasses import dataclass
from typing import Any, ClassVar

from .buffer_ring import BufferRing
from .sockets import SocketClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PacketHeader:
    """The four-byte header before every packet: total size, then packet id."""

    size: int
    id: int

    _FORMAT: ClassVar[struct.Struct] = struct.Struct("<HH")
    SIZE: ClassVar[int] = 4

    def __post_init__(self) -> None:
        for name in ("size", "id"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"packet {name} {value} out of range")

    def pack(self) -> bytes:
        """Encode the header."""
        return self._FORMAT.pack(self.size, self.id)

    @classmethod
    def unpack(cls, data: bytes | bytearray | memoryview) -> PacketHeader:
        """Decode the header at the start of ``data``."""
        if len(data) < cls.SIZE:
            raise ValueError(f"need {cls.SIZE} bytes for a header, got {len(data)}")
        size, packet_id = cls._FORMAT.unpack_from(data)
        return cls(size, packet_id)


class PacketType(enum.IntEnum):
    """Packet ids the game understands."""

    WELCOME = 1
    PLAYER_MOVE = 2
    CHAT = 3


class Session:
    """One connection's state; subclasses override the event hooks."""

    RECV_BUFFER_SIZE = 4096

    def __init__(self, client: SocketClient | None = None) -> None:
        self.socket = client
        self.connected = False
        self.bytes_sent = 0
        self.send_queue: deque[bytes] = deque()
        self._service: weakref.ref[Any] | None = None

    @property
    def service(self) -> Any:
        """The service owning this session, if it still exists."""
        return self._service() if self._service is not None else None

    @service.setter
    def service(self, service: Any) -> None:
        self._service = weakref.ref(service) if service is not None else None

    def on_connected(self) -> None:
        """Mark the session connected."""
        self.connected = True

    def on_disconnected(self) -> None:
        """Mark the session disconnected."""
        self.connected = False

    def on_recv(self, data: bytes) -> None:
        """Called with every chunk of bytes received."""

    def on_send(self, num_bytes: int) -> None:
        """Count bytes that have been sent."""
        if num_bytes < 0:
            raise ValueError(f"negative byte count: {num_bytes}")
        self.bytes_sent += num_bytes


class PacketSession(Session):
    """A session that reassembles the byte stream into whole packets."""

    def __init__(self, client: SocketClient | None = None) -> None:
        super().__init__(client)
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received that do not yet make a whole packet."""
        return bytes(self._pending)

    def on_recv(self, data: bytes) -> None:
        """Buffer ``data`` and deliver every packet now complete."""
        self._pending += data
        processed = self._process_packets()
        del self._pending[:processed]

    def _process_packets(self) -> int:
        processed = 0
        while processed + PacketHeader.SIZE <= len(self._pending):
            header = PacketHeader.unpack(memoryview(self._pending)[processed:])
            if header.size < PacketHeader.SIZE:
                raise ValueError(f"invalid packet size: {header.size}")
            if processed + header.size > len(self._pending):
                break
            packet = bytes(self._pending[processed : processed + header.size])
            self.on_recv_packet(packet)
            processed += header.size
        return processed

    def on_recv_packet(self, packet: bytes) -> None:
        """Called with each whole packet, header included."""


class GameSession(PacketSession):
    """A game client session that greets the client and dispatches packets."""

    def __init__(self, client: SocketClient | None = None) -> None:
        super().__init__(client)
        self.received: list[tuple[int, bytes]] = []
        logger.info("GameSession created")

    def on_connected(self) -> None:
        """Queue the welcome packet for the new client."""
        super().on_connected()
        logger.info("Game client connected")
        welcome = PacketHeader(PacketHeader.SIZE, PacketType.WELCOME).pack()
        self.send_queue.append(welcome)
        logger.info("Welcome packet prepared (size: %d)", len(welcome))

    def on_disconnected(self) -> None:
        """Drop what was still queued for the client and mark it gone."""
        super().on_disconnected()
        self.send_queue.clear()
        logger.info("Game client disconnected")

    def on_recv_packet(self, packet: bytes) -> None:
        """Split off the header and hand the payload to the game."""
        if len(packet) < PacketHeader.SIZE:
            logger.error("Invalid packet size: %d", len(packet))
            return
        header = PacketHeader.unpack(packet)
        logger.info("Received packet - ID: %d, Size: %d", header.id, header.size)
        self.handle_game_packet(header.id, packet[PacketHeader.SIZE :])

    def handle_game_packet(self, packet_id: int, payload: bytes) -> None:
        """Handle one game packet; the default records it in ``received``."""
        self.received.append((packet_id, bytes(payload)))


def handle_packet(data: bytes | bytearray | memoryview) -> PacketHeader | None:
    """Log what a received chunk holds and return its header.

    Returns None when the chunk is too short for a header.
    """
    if len(data) < PacketHeader.SIZE:
        logger.error("Invalid packet size: %d", len(data))
        return None
    header = PacketHeader.unpack(data)
    logger.info(
        "Processing packet - ID: %d, Size: %d, Data len: %d",
        header.id,
        header.size,
        len(data),
    )
    try:
        kind = PacketType(header.id)
    except ValueError:
        logger.info("Unknown packet type: %d", header.id)
        return header
    messages = {
        PacketType.WELCOME: "Received welcome response",
        PacketType.PLAYER_MOVE: "Received player move",
        PacketType.CHAT: "Received chat message",
    }
    logger.info(messages[kind])
    return header


async def _process_session_loop(client: SocketClient) -> None:
    ring: BufferRing = client.ring
    while True:
        try:
            received = await client.recv()
        except OSError as error:
            logger.info("Client disconnected: %s", error)
            break
        if received.size == 0:
            logger.info("Client disconnected")
            break
        buffer = ring.borrow_buf(received.buf_id)
        try:
            view = memoryview(buffer)[: received.size]
            handle_packet(view)
            try:
                await client.send(view)
            except OSError as error:
                logger.error("Send error: %s", error)
                break
            finally:
                view.release()
        finally:
            ring.return_buf(received.buf_id)
    logger.info("Session ended")


async def handle_client(client: SocketClient) -> None:
    """Serve one client: echo back everything it sends until it disconnects."""
    try:
        await _process_session_loop(client)
    except Exception:
        logger.exception("Error in handle_client")
    finally:
        client.close()