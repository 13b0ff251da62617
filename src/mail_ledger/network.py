"""Connectivity probe."""

import socket

import structlog

from .constants import CONNECTIVITY_PROBE

logger = structlog.get_logger(__name__)


def is_online(address: tuple[str, int] = CONNECTIVITY_PROBE, timeout: float = 3.0) -> bool:
    """Return True when a TCP connection to *address* can be opened."""
    try:
        with socket.create_connection(address, timeout=timeout):
            return True
    except OSError as exc:
        logger.debug("connectivity_probe_failed", host=address[0], error=str(exc))
        return False
