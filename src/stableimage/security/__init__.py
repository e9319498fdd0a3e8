"""SSRF protection: the address blocklist applied to remote image sources."""

from .ip_policy import (
    BLOCK_POLICY,
    BlockPolicy,
    is_blocked_ip,
    is_ip_literal,
    matches_ipv4_pattern,
    parse_ip,
    strip_brackets,
)

__all__ = [
    "BLOCK_POLICY",
    "BlockPolicy",
    "is_blocked_ip",
    "is_ip_literal",
    "matches_ipv4_pattern",
    "parse_ip",
    "strip_brackets",
]
