"""
ClientFactory: builds simulated clients and connects them in batches.

Batches dispatch one connect per client on a thread pool and join them all.
The returned list keeps dispatch order; completion order is whatever the
threads make of it. A single failed connect fails the whole batch.
"""

import dataclasses
from concurrent.futures import FIRST_EXCEPTION, Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

import structlog

from .client import SimulatedClient
from .exceptions import ClientConnectError

DEFAULT_MAX_WORKERS = 32


@dataclass(frozen=True)
class ClientFactory:
    """Immutable factory bound to one target host and port."""

    host: str
    port: int
    logger: Any = field(default=None, compare=False, repr=False)
    connect_timeout: float = 5.0
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        base = self.logger if self.logger is not None else structlog.get_logger(__name__)
        object.__setattr__(self, "logger", base.bind(area="TestClientFactory"))

    def with_port(self, port: int) -> "ClientFactory":
        """Return a copy bound to ``port``; this factory is left unchanged."""
        return dataclasses.replace(self, port=port)

    def _build(self) -> SimulatedClient:
        return SimulatedClient(self.host, self.port, timeout=self.connect_timeout)

    def new_client(self) -> SimulatedClient:
        """Create a client and connect it on the calling thread."""
        client = self._build()
        self.logger.info("factory connecting", id=client.conn_id)
        client.connect()
        self.logger.info("factory connected", id=client.conn_id)
        return client

    def new_client_async(self, executor: Executor) -> tuple[SimulatedClient, Future]:
        """
        Create a client and dispatch its connect on ``executor``.

        Returns the client immediately together with the future that completes
        when the connect finishes. Connect errors surface through the future.
        """
        client = self._build()
        self.logger.info("factory new client with wait", id=client.conn_id)

        def _connect() -> None:
            self.logger.info("factory client connecting with wait", id=client.conn_id)
            client.connect()
            self.logger.info("factory client connected with wait", id=client.conn_id)

        return client, executor.submit(_connect)

    def create_batch(self, count: int) -> list[SimulatedClient]:
        """
        Connect ``count`` clients concurrently and wait for all of them.

        Raises:
            ClientConnectError: As soon as any connect in the batch fails
        """
        if count < 0:
            raise ValueError(f"Batch size must be non-negative, got {count}")
        if count == 0:
            return []

        self.logger.info("creating all clients", count=count)
        executor = ThreadPoolExecutor(
            max_workers=min(count, self.max_workers), thread_name_prefix="client-connect"
        )
        clients: list[SimulatedClient] = []
        futures: list[Future] = []
        failure: ClientConnectError | None = None
        try:
            for _ in range(count):
                client, future = self.new_client_async(executor)
                clients.append(client)
                futures.append(future)

            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    failure = _batch_failure(future.exception(), count)
                    break
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        if failure is not None:
            self.logger.error("client batch failed", count=count, error=failure.message)
            for client in clients:
                client.close()
            raise failure

        self.logger.info("clients all created", count=count)
        return clients


def _batch_failure(error: BaseException, count: int) -> ClientConnectError:
    if isinstance(error, ClientConnectError):
        failure = ClientConnectError(f"Batch of {count} failed: {error.message}", error.conn_id)
    else:
        failure = ClientConnectError(f"Batch of {count} failed: {error}")
    failure.__cause__ = error
    return failure
