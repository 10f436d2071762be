"""Ephemeral port allocation."""

import socket

from .exceptions import HarnessError


def get_free_port(host: str = "127.0.0.1") -> int:
    """
    Ask the OS for an unused ephemeral TCP port on ``host``.

    The port is released before returning, so another process could claim it
    first; callers bind it immediately.

    Raises:
        HarnessError: If no port can be allocated
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            return sock.getsockname()[1]
    except OSError as e:
        raise HarnessError(f"Unable to allocate a free port on {host}: {e}", "NO_FREE_PORT") from e
