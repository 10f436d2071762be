"""
MatchmakingServer: the front door clients connect to first.

A client says HELLO, matchmaking picks the least loaded backing server (or
asks LocalServers for a new one) and answers with a REDIRECT to it.
"""

import socketserver
import threading
import time
from dataclasses import dataclass

import structlog

from . import protocol
from .exceptions import HarnessError, ReadinessError
from .server_manager import LocalServers

logger = structlog.get_logger(__name__)


@dataclass
class MatchmakingParams:
    """Construction parameters for MatchmakingServer."""

    port: int
    game_server: LocalServers
    host: str = "127.0.0.1"
    poll_interval: float = 0.05
    ready_timeout: float = 10.0


class _MatchmakingHandler(socketserver.StreamRequestHandler):
    server: "_MatchmakingTCPServer"

    def handle(self) -> None:
        owner = self.server.owner
        try:
            command, args = protocol.decode(self.rfile.readline(protocol.MAX_LINE_BYTES))
        except protocol.ProtocolError as e:
            logger.warning("bad matchmaking handshake", error=str(e))
            return

        if command != protocol.HELLO or len(args) != 1:
            self.wfile.write(protocol.encode(protocol.ERROR, "expected-hello"))
            return

        try:
            host, port = owner.assign_server(args[0])
        except HarnessError as e:
            logger.error("unable to assign server", conn_id=args[0], error=str(e))
            self.wfile.write(protocol.encode(protocol.ERROR, "no-server"))
            return

        self.wfile.write(protocol.encode(protocol.REDIRECT, host, port))


class _MatchmakingTCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address: tuple[str, int], owner: "MatchmakingServer"):
        self.owner = owner
        super().__init__(address, _MatchmakingHandler)


class MatchmakingServer:
    """Matchmaking listener. Construction is pure; ``run`` binds and serves."""

    def __init__(self, params: MatchmakingParams):
        self.params = params
        self.error: Exception | None = None
        self._ready = threading.Event()
        self._closing = threading.Event()
        self._stopped = threading.Event()
        self._assign_lock = threading.Lock()

    @property
    def port(self) -> int:
        return self.params.port

    def run(self, cancel: threading.Event | None = None) -> None:
        """
        Bind and serve until ``cancel`` is set or ``close`` is called.

        Intended to run on a background thread. A bind failure is recorded
        and surfaced by ``wait_for_ready``.
        """
        try:
            server = _MatchmakingTCPServer((self.params.host, self.params.port), self)
        except OSError as e:
            self.error = e
            logger.error("matchmaking failed to bind", port=self.params.port, error=str(e))
            self._stopped.set()
            return

        server.timeout = self.params.poll_interval
        logger.info("matchmaking listening", port=self.params.port)
        self._ready.set()
        try:
            while not self._closing.is_set() and not (cancel is not None and cancel.is_set()):
                server.handle_request()
        finally:
            server.server_close()
            self._stopped.set()
            logger.info("matchmaking stopped", port=self.params.port)

    def wait_for_ready(self, cancel: threading.Event | None = None) -> None:
        """
        Block until the listener accepts connections.

        Raises:
            ReadinessError: On bind failure, cancellation or timeout
        """
        deadline = time.monotonic() + self.params.ready_timeout
        while not self._ready.wait(self.params.poll_interval):
            if self.error is not None:
                raise ReadinessError(f"Matchmaking failed to start: {self.error}", "matchmaking")
            if cancel is not None and cancel.is_set():
                raise ReadinessError("Cancelled while waiting for matchmaking", "matchmaking")
            if time.monotonic() >= deadline:
                raise ReadinessError(
                    f"Matchmaking not ready after {self.params.ready_timeout}s", "matchmaking"
                )

    def assign_server(self, conn_id: str) -> tuple[str, int]:
        """Pick (or create) a backing server for ``conn_id``."""
        manager = self.params.game_server
        with self._assign_lock:
            config = manager.get_best_server()
            if config is None:
                server_id = manager.create_server(self._closing)
                manager.wait_for_ready(self._closing, server_id)
                config = manager.store.get_by_id(server_id)
                if config is None:
                    raise HarnessError(f"Created server {server_id} has no config")
        logger.info("assigned server", conn_id=conn_id, server_id=config.id, port=config.port)
        return config.host, config.port

    def close(self, timeout: float = 5.0) -> None:
        """Stop serving. Safe to call before ``run`` or more than once."""
        self._closing.set()
        if self._ready.is_set():
            self._stopped.wait(timeout)
