"""Worker threads that each accept and serve clients, and the command."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Any

from .buffer_ring import BufferRing
from .reactor import Reactor
from .session import handle_client as _serve_client
from .sockets import DEFAULT_PORT, SocketClient, SocketServer, bind
from .tasks import spawn

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_WORKERS = 4


class Worker:
    """One thread's server: its own loop, buffer ring and listening socket."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reactor: Reactor | None = None
        self._ring: BufferRing | None = None
        self._server: SocketServer | None = None
        self._stopped = False
        self.ready = threading.Event()

    @property
    def address(self) -> Any:
        """The address the worker listens on."""
        with self._lock:
            server = self._server
        if server is None:
            raise RuntimeError("worker is not listening")
        return server.socket.getsockname()

    def init(self, host: str | None, port: int) -> None:
        """Set up the loop, buffers and listener in the calling thread."""
        try:
            reactor = Reactor.get_instance()
            reactor.queue_init()
            with self._lock:
                self._reactor = reactor
                if self._stopped:
                    reactor.stop()
            ring = BufferRing.get_instance()
            ring.register_buf_ring()
            self._ring = ring
            server = bind(host, port)
            with self._lock:
                self._server = server
            server.listen()
            reactor.submit(self.accept_clients())
        except BaseException:
            self._cleanup()
            raise
        finally:
            self.ready.set()
        logger.info("Worker initialized on %s:%s", host, port)

    def run(self) -> None:
        """Run the loop until :meth:`stop`, then release everything."""
        with self._lock:
            reactor = self._reactor
        if reactor is None:
            raise RuntimeError("worker is not initialised")
        try:
            reactor.event_loop()
        finally:
            self._cleanup()

    async def accept_clients(self) -> None:
        """Accept clients for ever, serving each in its own task."""
        server = self._server
        if server is None:
            return
        while True:
            try:
                client = await server.accept()
            except OSError as error:
                logger.error("Failed to accept client: %s", error)
                continue
            spawn(self.handle_client(client))

    async def handle_client(self, client: SocketClient) -> None:
        """Serve one client until it disconnects."""
        try:
            await _serve_client(client)
        except Exception:
            logger.exception("Error handling client")

    def stop(self) -> None:
        """Make :meth:`run` return; safe to call from any thread."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            if self._reactor is not None:
                self._reactor.stop()

    def _cleanup(self) -> None:
        with self._lock:
            reactor, server, ring = self._reactor, self._server, self._ring
            self._reactor = self._server = self._ring = None
        if reactor is not None:
            reactor.close()
        if server is not None:
            server.close()
        if ring is not None:
            ring.close()


class GameServer:
    """Runs a number of workers, each in its own thread on the same port."""

    def __init__(self, worker_count: int) -> None:
        if worker_count < 0:
            raise ValueError(f"worker count {worker_count} is negative")
        self.worker_count = worker_count
        self._lock = threading.Lock()
        self._running = False
        self._workers: list[Worker] = []
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def workers(self) -> tuple[Worker, ...]:
        with self._lock:
            return tuple(self._workers)

    def start(self, host: str | None, port: int) -> bool:
        """Start the worker threads; return False if already running."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            logger.info("Starting game server on %s:%s", host, port)
            for index in range(self.worker_count):
                worker = Worker()
                thread = threading.Thread(
                    target=self._worker_thread,
                    args=(worker, host, port),
                    name=f"gamenet-worker-{index}",
                    daemon=True,
                )
                self._workers.append(worker)
                self._threads.append(thread)
                thread.start()
        logger.info("Game server started with %d workers", self.worker_count)
        return True

    def stop(self) -> None:
        """Stop every worker and wait for its thread to end."""
        with self._lock:
            self._running = False
            workers, threads = self._workers, self._threads
            self._workers, self._threads = [], []
        for worker in workers:
            worker.stop()
        for thread in threads:
            thread.join()
        logger.info("Game server stopped")

    def wait_for_shutdown(self) -> None:
        """Block until every worker thread has ended."""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join()

    def __enter__(self) -> GameServer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @staticmethod
    def _worker_thread(worker: Worker, host: str | None, port: int) -> None:
        try:
            worker.init(host, port)
        except Exception:
            logger.exception("Failed to initialise worker")
            return
        worker.run()


def _port(text: str) -> int:
    value = int(text)
    if not 0 <= value <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"port {value} out of range")
    return value


def _positive(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError("at least one worker is needed")
    return value


def main(argv: list[str] | None = None) -> int:
    """Run the game server until SIGINT or SIGTERM."""
    parser = argparse.ArgumentParser(prog="gamenet", description="Run the game server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=_port, default=DEFAULT_PORT)
    parser.add_argument("--workers", type=_positive, default=DEFAULT_WORKERS)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(threadName)s %(message)s")

    shutdown = threading.Event()

    def on_signal(signum: int, _frame: Any) -> None:
        print(f"\nShutdown signal received ({signum})", flush=True)
        shutdown.set()

    previous = {
        sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        print("=== Game Server Starting ===", flush=True)
        server = GameServer(args.workers)
        try:
            if not server.start(args.host, args.port):
                print("Failed to start game server", file=sys.stderr)
                return 1
            print("Game server is running. Press Ctrl+C to stop.", flush=True)
            while not shutdown.wait(0.1):
                pass
            print("Shutting down server...", flush=True)
        finally:
            server.stop()
        print("=== Game Server Stopped ===", flush=True)
    except Exception as error:
        print(f"Server error: {error}", file=sys.stderr)
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0