"""
Local port acquisition for discovery and serve processes.

A port is picked fresh for every call and never cached: the kernel
chooses a free ephemeral port for a throwaway socket, which is then
handed to the child process to bind.
"""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

LOCALHOST = "127.0.0.1"


def find_available_port(host: str = LOCALHOST) -> int:
    """Return a TCP port on ``host`` that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, 0))
        port = int(sock.getsockname()[1])
    logger.debug("Acquired local port %d", port)
    return port
