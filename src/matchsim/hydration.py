"""
Server hydration: recreate the persisted server population with live clients.

For every configuration present at bootstrap time a new backing server goes
through Requested -> Created -> Ready -> Configured -> ClientsAttached, then
receives as many clients as the configuration declares. Servers are hydrated
one after another; only the clients of a single server connect concurrently.
"""

import threading
from enum import Enum
from typing import Any

import structlog

from .client import SimulatedClient
from .client_factory import ClientFactory
from .exceptions import HarnessError, ServerHydrationError
from .store import GameServerConfig

logger = structlog.get_logger(__name__)

ConnMap = dict[str, list[SimulatedClient]]


class HydrationState(Enum):
    """Forward-only hydration states of one backing server."""

    REQUESTED = "requested"
    CREATED = "created"
    READY = "ready"
    CONFIGURED = "configured"
    CLIENTS_ATTACHED = "clients_attached"


def create_server(
    cancel: threading.Event | None,
    store: Any,
    server_manager: Any,
    log: Any = None,
) -> tuple[str, GameServerConfig]:
    """
    Drive one backing server from Requested to Configured.

    Returns:
        The new server id and its resolved configuration

    Raises:
        ServerHydrationError: If creation, readiness or config lookup fails
    """
    log = log if log is not None else logger
    log.info("creating server", state=HydrationState.REQUESTED.value)
    try:
        server_id = server_manager.create_server(cancel)
    except HarnessError as e:
        raise ServerHydrationError(f"Unable to create server: {e}") from e
    log.info("created server", id=server_id, state=HydrationState.CREATED.value)

    log.info("waiting server...", id=server_id)
    try:
        server_manager.wait_for_ready(cancel, server_id)
    except HarnessError as e:
        raise ServerHydrationError(f"Server {server_id} never became ready: {e}", server_id) from e
    log.info("server ready", id=server_id, state=HydrationState.READY.value)

    config = store.get_by_id(server_id)
    if config is None:
        raise ServerHydrationError(f"Unable to get config by id {server_id}", server_id)
    log.info("server config", id=server_id, config=str(config), state=HydrationState.CONFIGURED.value)

    return server_id, config


def hydrate_servers(
    cancel: threading.Event | None,
    store: Any,
    server_manager: Any,
    factory: ClientFactory,
    log: Any = None,
) -> ConnMap:
    """
    Hydrate every configuration currently in ``store``.

    The configuration list is read once up front, so servers created during
    hydration are not hydrated themselves.

    Returns:
        Mapping of new server id to its clients in dispatch order
    """
    log = log if log is not None else logger
    try:
        configs = store.get_all_configs()
    except HarnessError as e:
        raise ServerHydrationError(f"Unable to get game server configs: {e}") from e

    conns: ConnMap = {}
    log.info("Hydrating Servers", count=len(configs))
    for declared in configs:
        log.info("Creating server with the following config", config=str(declared))

        server_id, config = create_server(cancel, store, server_manager, log)
        clients = factory.with_port(config.port).create_batch(declared.connections)
        conns[server_id] = clients

        log.info(
            "clients attached",
            id=server_id,
            count=len(clients),
            state=HydrationState.CLIENTS_ATTACHED.value,
        )

    return conns
