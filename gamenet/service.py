"""Services that own a set of sessions, on the accepting or connecting side."""

from __future__ import annotations

import abc
import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .session import Session
from .sockets import SocketServer, bind

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class ServiceType(enum.Enum):
    """Which side of a connection a service stands on."""

    SERVER = "server"
    CLIENT = "client"


@dataclass(frozen=True)
class NetAddress:
    """A host name or address and a port."""

    host: str
    port: int

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port {self.port} out of range")


class Service(abc.ABC):
    """Keeps the sessions of one service and creates new ones from a factory."""

    def __init__(
        self,
        service_type: ServiceType,
        address: NetAddress,
        factory: SessionFactory | None,
        max_session_count: int,
    ) -> None:
        self._type = service_type
        self._address = address
        self._factory = factory
        self._max_session_count = max_session_count
        self._sessions: dict[Session, None] = {}
        self._lock = threading.Lock()

    @property
    def service_type(self) -> ServiceType:
        return self._type

    @property
    def address(self) -> NetAddress:
        return self._address

    @property
    def max_session_count(self) -> int:
        return self._max_session_count

    @property
    def session_count(self) -> int:
        """How many sessions the service holds."""
        with self._lock:
            return len(self._sessions)

    @property
    def sessions(self) -> tuple[Session, ...]:
        """The sessions the service holds, in the order they were added."""
        with self._lock:
            return tuple(self._sessions)

    def can_start(self) -> bool:
        """Whether the service has a session factory to start with."""
        return self._factory is not None

    @abc.abstractmethod
    def start(self) -> bool:
        """Start the service; return False if it cannot start."""

    def close_service(self) -> None:
        """Drop every session."""
        with self._lock:
            for _session in self._sessions:
                logger.info("Session disconnecting (service closing)")
            self._sessions.clear()

    def broadcast(self, data: bytes | bytearray | memoryview) -> int:
        """Queue ``data`` for sending on every session; return how many got it."""
        payload = bytes(data)
        with self._lock:
            for session in self._sessions:
                session.send_queue.append(payload)
                logger.info("Broadcasting data to session (size: %d)", len(payload))
            return len(self._sessions)

    def create_session(self) -> Session:
        """Make a new session from the factory, owned by this service."""
        if self._factory is None:
            raise RuntimeError("service has no session factory")
        session = self._factory()
        session.service = self
        return session

    def add_session(self, session: Session) -> None:
        """Start holding ``session``."""
        with self._lock:
            self._sessions[session] = None
            count = len(self._sessions)
        logger.info("Session added. Total sessions: %d", count)

    def release_session(self, session: Session) -> None:
        """Stop holding ``session``; unknown sessions are ignored."""
        with self._lock:
            if session not in self._sessions:
                return
            del self._sessions[session]
            count = len(self._sessions)
        logger.info("Session released. Total sessions: %d", count)


class ServerService(Service):
    """A service that listens on its address for incoming sessions."""

    def __init__(
        self,
        address: NetAddress,
        factory: SessionFactory | None,
        max_session_count: int,
    ) -> None:
        super().__init__(ServiceType.SERVER, address, factory, max_session_count)
        self._listener: SocketServer | None = None

    @property
    def listener(self) -> SocketServer | None:
        """The listening socket, while the service runs."""
        return self._listener

    def start(self) -> bool:
        """Bind and listen on the service address."""
        if not self.can_start():
            return False
        try:
            listener = bind(self.address.host, self.address.port)
        except (OSError, ValueError) as error:
            logger.error("Failed to create listener socket: %s", error)
            return False
        try:
            listener.listen()
        except OSError as error:
            listener.close()
            logger.error("Failed to bind and listen: %s", error)
            return False
        if self._listener is not None:
            self._listener.close()
        self._listener = listener
        logger.info("Server started on %s:%d", self.address.host, self.address.port)
        return True

    def close_service(self) -> None:
        """Close the listener and drop every session."""
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        super().close_service()


class ClientService(Service):
    """A service that opens its full number of sessions towards a target."""

    def __init__(
        self,
        target_address: NetAddress,
        factory: SessionFactory | None,
        max_session_count: int,
    ) -> None:
        super().__init__(ServiceType.CLIENT, target_address, factory, max_session_count)

    def start(self) -> bool:
        """Create and hold as many sessions as the service allows."""
        if not self.can_start():
            return False
        for _ in range(self.max_session_count):
            self.add_session(self.create_session())
        logger.info(
            "Client service started with %d connections", self.max_session_count
        )
        return True