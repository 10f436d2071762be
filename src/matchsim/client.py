"""
SimulatedClient: a scripted player that completes the connection handshake.

Pointed at matchmaking it follows the REDIRECT to a game server; pointed at a
game server directly it joins straight away.
"""

import socket
import threading
import uuid

import structlog

from . import protocol
from .exceptions import ClientConnectError

logger = structlog.get_logger(__name__)

MAX_REDIRECTS = 1


class SimulatedClient:
    """One simulated player connection."""

    def __init__(self, host: str, port: int, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.conn_id = uuid.uuid4().hex[:12]

        self.server_id: str | None = None
        self.sock: socket.socket | None = None
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self.sock is not None

    def connect(self, cancel: threading.Event | None = None) -> None:
        """
        Complete the handshake, following at most one redirect.

        ``cancel`` is only checked before each hop; a hop in progress runs to
        completion or to the socket timeout.

        Raises:
            ClientConnectError: On refused connection, timeout or bad handshake
        """
        host, port = self.host, self.port
        for _ in range(MAX_REDIRECTS + 1):
            if cancel is not None and cancel.is_set():
                raise ClientConnectError(f"Client {self.conn_id} connect cancelled", self.conn_id)

            sock = self._open(host, port)
            try:
                sock.sendall(protocol.encode(protocol.HELLO, self.conn_id))
                command, args = protocol.decode(protocol.read_line(sock))
            except (OSError, protocol.ProtocolError) as e:
                sock.close()
                raise ClientConnectError(
                    f"Client {self.conn_id} handshake with {host}:{port} failed: {e}",
                    self.conn_id,
                ) from e

            if command == protocol.WELCOME and len(args) == 1:
                sock.settimeout(None)
                with self._lock:
                    self.sock = sock
                    self.server_id = args[0]
                return

            sock.close()
            if command == protocol.REDIRECT and len(args) == 2:
                try:
                    host, port = args[0], int(args[1])
                except ValueError as e:
                    raise ClientConnectError(
                        f"Client {self.conn_id} got bad redirect from {host}:{port}: {args[1]!r}",
                        self.conn_id,
                    ) from e
                logger.debug("client redirected", conn_id=self.conn_id, host=host, port=port)
                continue

            raise ClientConnectError(
                f"Client {self.conn_id} got unexpected reply from {host}:{port}: "
                f"{command} {' '.join(args)}",
                self.conn_id,
            )

        raise ClientConnectError(f"Client {self.conn_id} redirected too many times", self.conn_id)

    def _open(self, host: str, port: int) -> socket.socket:
        try:
            return socket.create_connection((host, port), timeout=self.timeout)
        except OSError as e:
            raise ClientConnectError(
                f"Client {self.conn_id} unable to reach {host}:{port}: {e}", self.conn_id
            ) from e

    def close(self) -> None:
        """Drop the live connection, if any."""
        with self._lock:
            sock, self.sock = self.sock, None
        if sock is not None:
            sock.close()

    def __repr__(self) -> str:
        return f"SimulatedClient(conn_id={self.conn_id}, server={self.server_id})"
