"""Resolution of host names to reachable IP addresses."""

import logging
import socket
from typing import List

logger = logging.getLogger(__name__)

# Port probed to decide whether an address is reachable at all.
kReachabilityPort = 80

kReachabilityTimeoutSeconds = 5.0


def resolve_addresses(host: str) -> List[str]:
    """
    Resolves |host| to every IP address it names, without duplicates.

    Raises:
        OSError: If resolution fails.
    """
    addresses: List[str] = []
    for _, _, _, _, sockaddr in socket.getaddrinfo(
        host, None, 0, socket.SOCK_DGRAM
    ):
        address = str(sockaddr[0])
        if address not in addresses:
            addresses.append(address)
    return addresses


def is_reachable(
    address: str,
    port: int = kReachabilityPort,
    timeout_seconds: float = kReachabilityTimeoutSeconds,
) -> bool:
    """Checks reachability by opening a TCP connection to |address|."""
    try:
        with socket.create_connection((address, port), timeout_seconds):
            return True
    except OSError as e:
        logger.debug("%s:%s is not reachable: %s", address, port, e)
        return False


def resolve_reachable_addresses(
    host: str,
    port: int = kReachabilityPort,
    timeout_seconds: float = kReachabilityTimeoutSeconds,
) -> List[str]:
    """
    Resolves |host| and keeps only the addresses that pass `is_reachable`.

    Raises:
        OSError: If resolution fails.
    """
    addresses = resolve_addresses(host)
    reachable = [
        a for a in addresses if is_reachable(a, port, timeout_seconds)
    ]
    logger.info(
        "Resolved %s to %d address(es), %d reachable: %s",
        host,
        len(addresses),
        len(reachable),
        reachable,
    )
    return reachable
