"""Admin socket transport: fetches the raw metrics dump of one OSD."""
import logging
import os
import socket
import stat
import struct
from pathlib import Path
from typing import Optional, Protocol, Union

from cmt.errors import TransportError

logger = logging.getLogger(__name__)

DUMP_METRICS_REQUEST = b'{"prefix":"dump_metrics"}\0'
LENGTH_PREFIX = struct.Struct(">I")


class Transport(Protocol):
    """Anything that can return one metrics dump for a target."""

    def check(self, target: Path) -> None:
        ...

    def fetch(self, target: Path) -> bytes:
        ...


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = sock.recv(min(remaining, 65536))
        if not chunk:
            raise TransportError(f"connection closed with {remaining} of {size} bytes unread")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class AdminSocketTransport:
    """
    Talks to a Crimson admin socket.

    The request is a NUL-terminated JSON command; the reply is a 4-byte
    big-endian length followed by that many bytes of JSON.
    """

    def __init__(self, timeout_s: Optional[float] = None):
        self.timeout_s = timeout_s

    def check(self, target: Union[str, Path]) -> None:
        """Fail with TransportError unless ``target`` is a Unix socket."""
        try:
            mode = os.stat(target).st_mode
        except OSError as e:
            raise TransportError(f"can't stat {target}: {e}")
        if not stat.S_ISSOCK(mode):
            raise TransportError(f"{target} is not a domain socket")

    def fetch(self, target: Union[str, Path]) -> bytes:
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout_s)
                sock.connect(str(target))
                sock.sendall(DUMP_METRICS_REQUEST)
                (length,) = LENGTH_PREFIX.unpack(_recv_exact(sock, LENGTH_PREFIX.size))
                payload = _recv_exact(sock, length)
        except OSError as e:
            raise TransportError(f"admin socket {target}: {e}")
        logger.debug(f"Read {len(payload)} bytes from {target}")
        return payload
