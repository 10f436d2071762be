"""
Line-based handshake spoken by clients, matchmaking and game servers.

    client      -> HELLO <conn_id>
    matchmaking -> REDIRECT <host> <port>     (then closes)
    game server -> WELCOME <server_id>        (connection stays open)
"""

import socket

HELLO = "HELLO"
REDIRECT = "REDIRECT"
WELCOME = "WELCOME"
ERROR = "ERROR"

MAX_LINE_BYTES = 1024
ENCODING = "utf-8"


class ProtocolError(Exception):
    """Raised when a peer sends something that is not a valid handshake line."""


def encode(command: str, *args: object) -> bytes:
    """Encode one handshake line."""
    parts = [command, *(str(arg) for arg in args)]
    return (" ".join(parts) + "\n").encode(ENCODING)


def decode(line: bytes) -> tuple[str, list[str]]:
    """Split a handshake line into command and arguments."""
    try:
        text = line.decode(ENCODING).strip()
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Handshake line is not {ENCODING}: {line!r}") from e
    if not text:
        raise ProtocolError("Empty handshake line")
    command, *args = text.split()
    return command, args


def read_line(sock: socket.socket) -> bytes:
    """
    Read bytes up to and including the first newline.

    Raises:
        ProtocolError: If the peer closes first or the line is too long
    """
    buffer = bytearray()
    while not buffer.endswith(b"\n"):
        chunk = sock.recv(1)
        if not chunk:
            raise ProtocolError("Peer closed the connection during handshake")
        buffer += chunk
        if len(buffer) > MAX_LINE_BYTES:
            raise ProtocolError("Handshake line exceeds maximum length")
    return bytes(buffer)
