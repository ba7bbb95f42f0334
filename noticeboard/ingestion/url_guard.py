"""Outbound URL validation against server-side request forgery."""

import asyncio
import ipaddress
import socket
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

import structlog

from .interfaces import Failure, FailureReason

logger = structlog.get_logger()

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = frozenset({"localhost"})

BLOCKED_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

Resolver = Callable[[str], Awaitable[List[str]]]


async def resolve_host(host: str) -> List[str]:
    """Resolve host to the list of addresses a connection could use."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


def is_blocked_address(address: str) -> bool:
    """True if address falls inside a private, loopback or link-local range."""
    # Strip an IPv6 zone id ("fe80::1%eth0")
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_NETWORKS)


class UrlGuard:
    """Checks a URL's scheme and resolved addresses before it is requested."""

    def __init__(self, resolver: Optional[Resolver] = None):
        self.resolver = resolver or resolve_host

    def check_scheme(self, url: str) -> Optional[Failure]:
        """Return a Failure unless url is an absolute http(s) URL with a host."""
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError:
            return Failure(FailureReason.INVALID_URL, f"Invalid URL: {url}")

        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            return Failure(FailureReason.INVALID_URL, "Invalid URL scheme")
        if not host:
            return Failure(FailureReason.INVALID_URL, "URL has no host")
        return None

    async def check(self, url: str) -> Optional[Failure]:
        """Validate url; None means it is safe to request.

        Runs the scheme check, then resolves the host and rejects it if
        resolution fails or any address is in a blocked range.
        """
        failure = self.check_scheme(url)
        if failure:
            return failure

        host = urlsplit(url).hostname.rstrip(".").lower()
        if host in BLOCKED_HOSTNAMES:
            logger.warning("ssrf_blocked_hostname", host=host)
            return Failure(FailureReason.PRIVATE_IP, "URL resolves to private IP")

        try:
            addresses = await self.resolver(host)
        except (OSError, UnicodeError) as e:
            logger.warning("ssrf_resolution_failed", host=host, error=str(e))
            return Failure(FailureReason.PRIVATE_IP, f"Could not resolve host: {host}")

        if not addresses:
            return Failure(FailureReason.PRIVATE_IP, f"Could not resolve host: {host}")

        for address in addresses:
            try:
                blocked = is_blocked_address(address)
            except ValueError:
                blocked = True
            if blocked:
                logger.warning("ssrf_blocked_address", host=host, address=address)
                return Failure(FailureReason.PRIVATE_IP, "URL resolves to private IP")

        return None
