"""
GameServerStore - SQLite-backed registry of game server configurations.

Each row describes one backing game server: where it listens, how many
clients it holds and where it is in its lifecycle. The store runs in WAL mode,
which is why datasets travel with ``-wal`` and ``-shm`` sidecars.
"""

import sqlite3
import threading
import time
from dataclasses import dataclass
from enum import Enum

import structlog

from .exceptions import StoreError

logger = structlog.get_logger(__name__)


class ServerState(Enum):
    """Lifecycle state of a backing game server row."""

    CREATED = "created"
    READY = "ready"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class GameServerConfig:
    """One persisted game server configuration."""

    id: str
    port: int
    connections: int = 0
    host: str = "127.0.0.1"
    state: ServerState = ServerState.CREATED

    def __str__(self) -> str:
        return (
            f"Server({self.id}): {self.host}:{self.port} "
            f"connections={self.connections} state={self.state}"
        )


@dataclass(frozen=True)
class ConnectionSummary:
    """Aggregate connection count across every server in the store."""

    connections: int
    servers: int

    def __str__(self) -> str:
        return f"{self.connections} across {self.servers} servers"


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS game_server_configs (
        id TEXT PRIMARY KEY,
        host TEXT NOT NULL,
        port INTEGER NOT NULL,
        connections INTEGER NOT NULL DEFAULT 0,
        state TEXT NOT NULL,
        created_at REAL NOT NULL
    )
"""

_COLUMNS = "id, host, port, connections, state"


def _row_to_config(row: tuple) -> GameServerConfig:
    config_id, host, port, connections, state = row
    return GameServerConfig(
        id=config_id,
        host=host,
        port=port,
        connections=connections,
        state=ServerState(state),
    )


class GameServerStore:
    """
    Thread-safe game server registry over a single SQLite connection.

    Game server threads update connection counts while the orchestrator reads
    configurations, so every statement runs under one lock.
    """

    def __init__(self, db_path: str):
        """
        Open (and if needed create) the store at ``db_path``.

        Raises:
            StoreError: If the database cannot be opened or initialized
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self._closed = False

        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=5.0)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(f"Unable to open store at {db_path}: {e}") from e

        logger.info("GameServerStore opened", db_path=db_path)

    def get_all_configs(self) -> list[GameServerConfig]:
        """Return every configuration in insertion order."""
        rows = self._query(
            f"SELECT {_COLUMNS} FROM game_server_configs ORDER BY rowid"
        )
        return [_row_to_config(row) for row in rows]

    def get_by_id(self, config_id: str) -> GameServerConfig | None:
        """Return the configuration for ``config_id`` or None if absent."""
        rows = self._query(
            f"SELECT {_COLUMNS} FROM game_server_configs WHERE id = ?", (config_id,)
        )
        return _row_to_config(rows[0]) if rows else None

    def get_total_connection_count(self) -> ConnectionSummary:
        """Sum connections across all servers."""
        rows = self._query("SELECT COALESCE(SUM(connections), 0), COUNT(*) FROM game_server_configs")
        connections, servers = rows[0]
        return ConnectionSummary(connections=connections, servers=servers)

    def add_config(self, config: GameServerConfig) -> None:
        """Insert a new configuration."""
        self._execute(
            "INSERT INTO game_server_configs (id, host, port, connections, state, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (config.id, config.host, config.port, config.connections, config.state.value, time.time()),
        )

    def update_state(self, config_id: str, state: ServerState) -> None:
        """Move a server row to ``state``."""
        self._execute(
            "UPDATE game_server_configs SET state = ? WHERE id = ?", (state.value, config_id)
        )

    def adjust_connections(self, config_id: str, delta: int) -> None:
        """Add ``delta`` (may be negative) to a server's connection count."""
        self._execute(
            "UPDATE game_server_configs SET connections = MAX(connections + ?, 0) WHERE id = ?",
            (delta, config_id),
        )

    def close(self) -> None:
        """
        Close the underlying connection. Safe to call multiple times.

        Raises:
            StoreError: If SQLite fails to close the connection
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.close()
            except sqlite3.Error as e:
                raise StoreError(f"Unable to close store at {self.db_path}: {e}") from e
        logger.info("GameServerStore closed", db_path=self.db_path)

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            self._ensure_open()
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Query failed on {self.db_path}: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> None:
        with self._lock:
            self._ensure_open()
            try:
                with self._conn:
                    self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StoreError(f"Write failed on {self.db_path}: {e}") from e

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError(f"Store at {self.db_path} is closed")


def seed_dataset(db_path: str, configs: list[GameServerConfig]) -> str:
    """
    Create (or extend) a dataset file holding ``configs`` and close it cleanly.

    Useful for building fixture datasets; returns ``db_path``.
    """
    store = GameServerStore(db_path)
    try:
        for config in configs:
            store.add_config(config)
    finally:
        store.close()
    logger.info("dataset seeded", db_path=db_path, servers=len(configs))
    return db_path
