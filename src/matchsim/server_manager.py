"""
LocalServers: lifecycle manager for in-process backing game servers.

Servers are created on demand, registered in the GameServerStore and torn
down together when the environment closes.
"""

import threading
import time
import uuid

import structlog

from .exceptions import ReadinessError, ServerHydrationError, StoreError
from .game_server import GameServer
from .ports import get_free_port
from .settings import ServerParams
from .store import GameServerConfig, GameServerStore, ServerState

logger = structlog.get_logger(__name__)


class LocalServers:
    """
    Creates, tracks and stops GameServer instances.

    Safe to call from the matchmaking handler threads and the orchestrator at
    the same time.
    """

    def __init__(self, store: GameServerStore, params: ServerParams):
        self.store = store
        self.params = params
        self.servers: dict[str, GameServer] = {}
        self._lock = threading.Lock()
        self._closed = False

        logger.info(
            "LocalServers configured",
            bind_host=params.bind_host,
            max_connections=params.max_connections,
            ready_timeout=params.ready_timeout,
        )

    def create_server(self, cancel: threading.Event | None = None) -> str:
        """
        Register and start a new game server.

        Args:
            cancel: Cancellation event; a set event refuses the request

        Returns:
            Identifier of the new server

        Raises:
            ServerHydrationError: If the manager is closed, cancelled or the
                server cannot be registered
        """
        if cancel is not None and cancel.is_set():
            raise ServerHydrationError("Server creation cancelled")

        server_id = uuid.uuid4().hex[:12]
        with self._lock:
            if self._closed:
                raise ServerHydrationError("LocalServers is closed", server_id)

            port = get_free_port(self.params.bind_host)
            try:
                self.store.add_config(
                    GameServerConfig(id=server_id, host=self.params.bind_host, port=port)
                )
            except StoreError as e:
                raise ServerHydrationError(
                    f"Unable to register server {server_id}: {e}", server_id
                ) from e

            server = GameServer(
                server_id,
                self.store,
                self.params.bind_host,
                port,
                poll_interval=self.params.poll_interval,
            )
            self.servers[server_id] = server
            server.start()

        logger.info("created game server", server_id=server_id, port=port)
        return server_id

    def wait_for_ready(self, cancel: threading.Event | None, server_id: str) -> None:
        """
        Block until ``server_id`` reports ready in the store.

        Honors ``cancel`` and ``ServerParams.ready_timeout`` between polls.

        Raises:
            ReadinessError: On unknown server, start failure, cancellation or timeout
        """
        server = self.servers.get(server_id)
        if server is None:
            raise ReadinessError(f"Unknown server {server_id}", server_id)

        deadline = time.monotonic() + self.params.ready_timeout
        while True:
            if server.failed:
                raise ReadinessError(
                    f"Server {server_id} failed to start: {server.error}", server_id
                )
            config = self.store.get_by_id(server_id)
            if server.is_ready and config is not None and config.state == ServerState.READY:
                return
            if cancel is not None and cancel.is_set():
                raise ReadinessError(f"Cancelled while waiting for server {server_id}", server_id)
            if time.monotonic() >= deadline:
                raise ReadinessError(
                    f"Server {server_id} not ready after {self.params.ready_timeout}s", server_id
                )
            time.sleep(self.params.poll_interval)

    def get_best_server(self) -> GameServerConfig | None:
        """Least-loaded ready server that still has room, or None."""
        candidates = [
            config
            for config in self.store.get_all_configs()
            if config.id in self.servers
            and config.state == ServerState.READY
            and config.connections < self.params.max_connections
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda config: config.connections)

    def close(self) -> None:
        """Stop every server and mark its row closed. Safe to call multiple times."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            servers = list(self.servers.values())

        logger.info("closing local servers", count=len(servers))
        for server in servers:
            server.close()
            try:
                self.store.update_state(server.server_id, ServerState.CLOSED)
            except StoreError as e:
                logger.error("unable to mark server closed", server_id=server.server_id, error=str(e))
