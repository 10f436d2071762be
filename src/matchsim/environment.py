"""
Environment bootstrap for integration tests.

``create_environment`` turns a checked-in dataset into a live, private stack:

    isolate dataset -> open store -> LocalServers -> matchmaking (ready)
        -> client factory -> hydrate every persisted server -> Environment

Every step gates the next and the first failure aborts the bootstrap with a
HarnessError. Nothing built before the failure is torn down.
"""

import os
import threading
from dataclasses import dataclass, field
from typing import Any

import structlog

from .client_factory import ClientFactory
from .dataset import isolate_dataset, remove_dataset
from .exceptions import HarnessError, StoreError
from .hydration import ConnMap, hydrate_servers
from .matchmaking import MatchmakingParams, MatchmakingServer
from .ports import get_free_port
from .server_manager import LocalServers
from .settings import EnvironmentSettings, ServerParams
from .store import GameServerStore

logger = structlog.get_logger(__name__)


@dataclass
class Environment:
    """Handle on a fully bootstrapped environment."""

    store: Any
    server_manager: Any
    matchmaking: Any
    port: int
    factory: ClientFactory
    conns: ConnMap = field(default_factory=dict)
    dataset_path: str | None = None

    def close(self) -> None:
        """
        Shut down matchmaking, then the backing servers, then the store.

        The isolated dataset is deleted once the store is closed. Client
        transports are dropped last, even when the store fails to close.

        Raises:
            HarnessError: If the store fails to close
        """
        try:
            self.matchmaking.close()
            self.server_manager.close()

            try:
                self.store.close()
            except StoreError as e:
                raise HarnessError(f"store errored on close: {e}", "STORE_CLOSE_FAILED") from e

            if self.dataset_path is not None:
                remove_dataset(self.dataset_path)
        finally:
            for clients in self.conns.values():
                for client in clients:
                    client.close()

    def describe(self) -> str:
        """Render a diagnostic summary. Store failures are rendered inline."""
        try:
            configs = self.store.get_all_configs()
            configs_str = "\n".join(str(config) for config in configs)
        except HarnessError as e:
            configs_str = f"unable to get server configs: {e}"

        try:
            connections = str(self.store.get_total_connection_count())
        except HarnessError as e:
            connections = f"unable to get connection count: {e}"

        return f"ServerState:\nConnections: {connections}\nServers\n{configs_str}\n"

    def __str__(self) -> str:
        return self.describe()

    def __enter__(self) -> "Environment":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> None:
        self.close()


def create_environment(
    path: str,
    params: ServerParams,
    cancel: threading.Event | None = None,
    settings: EnvironmentSettings | None = None,
) -> Environment:
    """
    Bootstrap a private environment from the dataset at ``path``.

    Args:
        path: Source dataset; it is copied and never modified
        params: Construction parameters for backing servers
        cancel: Cancellation event honored by readiness waits
        settings: Bootstrap settings (loaded from the environment when None)

    Returns:
        The assembled Environment

    Raises:
        HarnessError: On the first failing step
    """
    settings = settings if settings is not None else EnvironmentSettings()
    log = logger.bind(area="create-env")

    log.warning("copying db file", path=path)
    path = isolate_dataset(path, settings.temp_dir, settings.temp_prefix)
    os.environ[settings.dataset_env_var] = path

    port = get_free_port(params.bind_host)

    log.info("creating sqlite", path=path)
    store = GameServerStore(path)

    log.info("creating local servers", params=str(params))
    local = LocalServers(store, params)

    log.info("creating matchmaking", port=port)
    matchmaking = MatchmakingServer(
        MatchmakingParams(
            port=port,
            game_server=local,
            host=params.bind_host,
            ready_timeout=params.ready_timeout,
        )
    )
    threading.Thread(
        target=matchmaking.run, args=(cancel,), name="matchmaking", daemon=True
    ).start()
    matchmaking.wait_for_ready(cancel)

    log.info("creating client factory", port=port)
    factory = ClientFactory(
        settings.client_host,
        port,
        log,
        connect_timeout=settings.connect_timeout,
        max_workers=settings.max_connect_workers,
    )

    log.info("creating server state object", port=port)
    env = Environment(
        store=store,
        server_manager=local,
        matchmaking=matchmaking,
        port=port,
        factory=factory,
        dataset_path=path,
    )

    log.info("hydrating servers", port=port)
    env.conns = hydrate_servers(cancel, store, local, factory, log)

    log.info("environment fully created")
    return env
