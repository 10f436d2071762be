"""
Harness exception hierarchy.

Every error raised while building an environment is a HarnessError. They are
fatal by contract: the bootstrap stops at the first one and nothing retries.
"""


class HarnessError(Exception):
    """Base exception for all environment-building failures."""

    def __init__(self, message: str, error_code: str = "HARNESS_ERROR"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class DatasetIsolationError(HarnessError):
    """
    Raised when the dataset or one of its sidecars cannot be copied.

    Covers open, read and write failures on either side of the copy.
    """

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, "DATASET_ISOLATION_FAILED")
        self.path = path


class StoreError(HarnessError):
    """Raised when the game server store cannot be opened, queried or closed."""

    def __init__(self, message: str):
        super().__init__(message, "STORE_FAILED")


class ReadinessError(HarnessError):
    """
    Raised when a readiness wait ends without the collaborator being ready.

    Happens on timeout, on cancellation, or when the collaborator failed to bind.
    """

    def __init__(self, message: str, target: str | None = None):
        super().__init__(message, "NOT_READY")
        self.target = target


class ServerHydrationError(HarnessError):
    """Raised when a backing server cannot be created, readied or resolved."""

    def __init__(self, message: str, server_id: str | None = None):
        super().__init__(message, "SERVER_HYDRATION_FAILED")
        self.server_id = server_id


class ClientConnectError(HarnessError):
    """
    Raised when a simulated client fails its handshake.

    A single failing client inside a batch fails the whole batch.
    """

    def __init__(self, message: str, conn_id: str | None = None):
        super().__init__(message, "CLIENT_CONNECT_FAILED")
        self.conn_id = conn_id
