"""
In-process backing game server.

Each GameServer listens on its own port, greets clients with WELCOME and
mirrors its live client count into the GameServerStore row it owns.
"""

import socket
import socketserver
import threading

import structlog

from . import protocol
from .exceptions import StoreError
from .store import GameServerStore, ServerState

logger = structlog.get_logger(__name__)


class _GameServerHandler(socketserver.StreamRequestHandler):
    """Handles one client connection for its whole lifetime."""

    server: "_GameTCPServer"

    def handle(self) -> None:
        owner = self.server.owner
        try:
            command, args = protocol.decode(self.rfile.readline(protocol.MAX_LINE_BYTES))
        except protocol.ProtocolError as e:
            logger.warning("bad handshake", server_id=owner.server_id, error=str(e))
            return

        if command != protocol.HELLO or len(args) != 1:
            self.wfile.write(protocol.encode(protocol.ERROR, "expected-hello"))
            return

        conn_id = args[0]
        owner.store.adjust_connections(owner.server_id, 1)
        self.wfile.write(protocol.encode(protocol.WELCOME, owner.server_id))
        logger.debug("client joined", server_id=owner.server_id, conn_id=conn_id)

        owner.track(self.connection)
        try:
            # Hold the connection until the client (or shutdown) closes it
            while self.rfile.read(1):
                pass
        except OSError:
            pass
        finally:
            owner.untrack(self.connection)
            owner.client_left(conn_id)


class _GameTCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address: tuple[str, int], owner: "GameServer"):
        self.owner = owner
        super().__init__(address, _GameServerHandler)


class GameServer:
    """A single backing game server running on a daemon thread."""

    def __init__(
        self,
        server_id: str,
        store: GameServerStore,
        host: str,
        port: int,
        poll_interval: float = 0.05,
    ):
        self.server_id = server_id
        self.store = store
        self.host = host
        self.port = port
        self.poll_interval = poll_interval

        self.error: Exception | None = None
        self._ready = threading.Event()
        self._done = threading.Event()
        self._stopping = False
        self._server: _GameTCPServer | None = None
        self._thread: threading.Thread | None = None

        self._clients: set[socket.socket] = set()
        self._clients_lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def failed(self) -> bool:
        return self.error is not None

    def start(self) -> None:
        """Start serving on a background thread."""
        self._thread = threading.Thread(
            target=self._serve, name=f"game-server-{self.server_id}", daemon=True
        )
        self._thread.start()

    def _serve(self) -> None:
        try:
            self._server = _GameTCPServer((self.host, self.port), self)
            self.store.update_state(self.server_id, ServerState.READY)
        except (OSError, StoreError) as e:
            self.error = e
            logger.error("game server failed to start", server_id=self.server_id, error=str(e))
            if self._server is not None:
                self._server.server_close()
            self._done.set()
            return

        logger.info("game server listening", server_id=self.server_id, port=self.port)
        self._ready.set()
        try:
            self._server.serve_forever(poll_interval=self.poll_interval)
        finally:
            self._server.server_close()
            self._done.set()

    def track(self, conn: socket.socket) -> None:
        with self._clients_lock:
            self._clients.add(conn)

    def untrack(self, conn: socket.socket) -> None:
        with self._clients_lock:
            self._clients.discard(conn)

    def client_left(self, conn_id: str) -> None:
        if self._stopping:
            return
        try:
            self.store.adjust_connections(self.server_id, -1)
        except StoreError as e:
            logger.warning("unable to record disconnect", server_id=self.server_id, error=str(e))
        logger.debug("client left", server_id=self.server_id, conn_id=conn_id)

    def close(self, timeout: float = 5.0) -> None:
        """Stop accepting clients and drop every live connection."""
        self._stopping = True
        if self._ready.is_set() and self._server is not None:
            self._server.shutdown()

        with self._clients_lock:
            clients = list(self._clients)
        for conn in clients:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        if self._thread is not None:
            self._done.wait(timeout)
        logger.info("game server stopped", server_id=self.server_id)

    def __str__(self) -> str:
        return f"GameServer(id={self.server_id}, port={self.port})"
