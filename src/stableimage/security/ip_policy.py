"""Address blocklist for outbound image fetches.

:func:`is_blocked_ip` decides whether an IP literal points at loopback,
private, link-local, unique-local or cloud-metadata space.  It performs no
network I/O and never raises: input that does not parse as an address is
reported as *not blocked*, and callers that need to reject unparsable input
check :func:`is_ip_literal` separately.

The rules live in the module-level :data:`BLOCK_POLICY`, which is immutable
and shared by every validator call.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass(frozen=True)
class BlockPolicy:
    """Immutable rules applied to every remote image source.

    Attributes
    ----------
    allowed_schemes:
        URL schemes that may be fetched.  Only ``https``.
    blocked_hostnames:
        Hostnames rejected before any DNS lookup is made.
    blocked_literals:
        Bare strings rejected on the address path (loopback spellings and
        the cloud metadata endpoints).
    blocked_ipv4_patterns:
        Prefix patterns applied to dotted-quad text.  Used directly on the
        IPv4 part of ``[::ffff:a.b.c.d]`` literals found in raw URLs.
    blocked_networks:
        CIDR networks checked against parsed addresses.
    """

    allowed_schemes: tuple[str, ...]
    blocked_hostnames: frozenset[str]
    blocked_literals: frozenset[str]
    blocked_ipv4_patterns: tuple[re.Pattern[str], ...]
    blocked_networks: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]


BLOCK_POLICY = BlockPolicy(
    allowed_schemes=("https",),
    blocked_hostnames=frozenset({
        "localhost",
        "metadata.google.internal",
        "metadata",
    }),
    blocked_literals=frozenset({
        "localhost",
        "127.0.0.1",
        "::1",
        "metadata.google.internal",
        "metadata",
        "169.254.169.254",
    }),
    blocked_ipv4_patterns=(
        re.compile(r"^127\."),                       # loopback
        re.compile(r"^10\."),                        # private class A
        re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),  # private class B
        re.compile(r"^192\.168\."),                  # private class C
        re.compile(r"^169\.254\."),                  # link-local, cloud metadata
        re.compile(r"^0\."),                         # "this" network
    ),
    blocked_networks=(
        ipaddress.ip_network("127.0.0.0/8"),
        ipaddress.ip_network("10.0.0.0/8"),
        ipaddress.ip_network("172.16.0.0/12"),
        ipaddress.ip_network("192.168.0.0/16"),
        ipaddress.ip_network("169.254.0.0/16"),
        ipaddress.ip_network("0.0.0.0/8"),
        ipaddress.ip_network("::1/128"),
        ipaddress.ip_network("::/128"),
        ipaddress.ip_network("fe80::/10"),
        ipaddress.ip_network("fc00::/7"),
    ),
)


def strip_brackets(host: str) -> str:
    """Remove the ``[...]`` wrapping of an IPv6 host, if present."""
    if host.startswith("[") and host.endswith("]"):
        return host[1:-1]
    return host


def parse_ip(address: str) -> IPAddress | None:
    """Parse *address* as an IPv4 or IPv6 literal, or return ``None``.

    Brackets and an IPv6 zone suffix (``%eth0``) are ignored.
    """
    candidate = strip_brackets(address.strip()).split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def is_ip_literal(host: str) -> bool:
    """Return ``True`` if *host* is an IP literal rather than a hostname."""
    return parse_ip(host) is not None


def matches_ipv4_pattern(dotted_quad: str, policy: BlockPolicy = BLOCK_POLICY) -> bool:
    """Apply the IPv4 prefix patterns to raw dotted-quad text."""
    return any(p.match(dotted_quad) for p in policy.blocked_ipv4_patterns)


def is_blocked_ip(address: str, policy: BlockPolicy = BLOCK_POLICY) -> bool:
    """Return ``True`` if *address* must never be fetched.

    Parameters
    ----------
    address:
        An IPv4 or IPv6 literal, optionally bracketed.  The bare strings in
        ``policy.blocked_literals`` (``localhost``, metadata hostnames) are
        also recognised for callers that skip DNS.
    policy:
        Rules to apply.  Defaults to :data:`BLOCK_POLICY`.

    Returns
    -------
    bool
        ``False`` for public addresses *and* for input that cannot be
        parsed as an address.
    """
    clean = strip_brackets(address.strip()).lower()
    if clean in policy.blocked_literals:
        return True

    ip = parse_ip(clean)
    if ip is None:
        return False

    # ::ffff:a.b.c.d is the IPv4 address a.b.c.d as far as routing goes.
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    return any(
        ip.version == net.version and ip in net
        for net in policy.blocked_networks
    )
