"""
clawspawn/ports.py  •  host port block allocation

A candidate basePort is accepted only when all four ports of its block can be
bound on loopback right now.  The registry's nextPortHint just decides where
the scan starts.
"""

from __future__ import annotations

import concurrent.futures
import logging
import socket
from typing import Optional

from . import registry
from .errors import PortExhausted
from .protocol import PORT_OFFSETS, VNC_OFFSET

LOOPBACK = "127.0.0.1"
MAX_PORT = 65535
MAX_PORT_CANDIDATES = 2000


def is_port_free(port: int, host: str = LOOPBACK) -> bool:
    """Bind a throwaway listener on *port*; True when that worked."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
            sock.listen(1)
        except OSError:
            return False
    return True


def block_ports(base_port: int) -> list[int]:
    return [base_port + off for off in PORT_OFFSETS.values()]


def block_is_free(base_port: int) -> bool:
    ports = block_ports(base_port)
    with concurrent.futures.ThreadPoolExecutor(max_workers=len(ports)) as pool:
        results = list(pool.map(is_port_free, ports))
    if not all(results):
        busy = [p for p, ok in zip(ports, results) if not ok]
        logging.debug("base %s rejected, busy: %s", base_port, busy)
        return False
    return True


def allocate(start: Optional[int] = None, max_candidates: int = MAX_PORT_CANDIDATES) -> int:
    """
    Return the first basePort >= *start* whose whole block is free on loopback.

    *start* defaults to the registry's nextPortHint.  A busy port only moves
    the scan to the next candidate; PortExhausted is raised once
    *max_candidates* blocks were rejected or the block would pass port 65535.
    """
    first = port = registry.next_port_hint() if start is None else start
    for _ in range(max_candidates):
        if port + VNC_OFFSET > MAX_PORT:
            break
        if block_is_free(port):
            logging.info("🔌 Allocated port block at %s", port)
            return port
        port += 1
    raise PortExhausted(f"No free port block within {max_candidates} candidates of {first}")
