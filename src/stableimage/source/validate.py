"""Image source validation: SSRF checks for URLs, magic bytes for files.

Every image reference is validated here before any request payload is
built.  URL validation runs, in order:

1. A scan of the *raw* string for ``[::ffff:a.b.c.d]`` literals, applied
   before URL parsing can normalise the host.
2. URL parsing.
3. The ``https``-only scheme rule.
4. The blocked-hostname list (no DNS lookup is made for these).
5. Direct classification of IP-literal hosts.
6. For domain names, a DNS lookup whose *resolved* addresses are
   classified.  This is what catches DNS rebinding: the lookup is repeated
   on every validation and the result is never cached or pinned.

Local files are read once and accepted only if they start with a PNG,
JPEG, WebP or GIF signature, whatever their extension.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import socket
from collections.abc import Awaitable, Callable, Sequence
from urllib.parse import urlparse

from stableimage.errors import (
    StableImageInvalidSourceError,
    StableImageSourceNotAnImageError,
    StableImageSourceNotFoundError,
    StableImageSourceUnreadableError,
    StableImageUnsafeSourceError,
)
from stableimage.models import ImageSource, LocalPath, RemoteUrl, ValidatedImageSource
from stableimage.observability import get_logger
from stableimage.security.ip_policy import (
    BLOCK_POLICY,
    BlockPolicy,
    is_blocked_ip,
    is_ip_literal,
    matches_ipv4_pattern,
    strip_brackets,
)
from stableimage.source.detect import detect_image_source

Resolver = Callable[[str], Awaitable[Sequence[str]]]
"""``async (hostname) -> addresses``.  Raises :class:`socket.gaierror` on
lookup failure, like :meth:`asyncio.AbstractEventLoop.getaddrinfo`."""

# IPv4-mapped IPv6 literal as it appears in a raw URL.
_MAPPED_IPV4_RE = re.compile(r"\[::ffff:(\d+\.\d+\.\d+\.\d+)\]", re.IGNORECASE)

# Map of magic bytes to MIME types for sniffing.
_MAGIC_BYTES: list[tuple[bytes, str]] = [
    (b"\x89PNG", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF", "image/gif"),
]

# getaddrinfo error numbers meaning "no such name".  EAI_NODATA is not
# defined on every platform.
_NOT_FOUND_ERRNOS: frozenset[int] = frozenset(
    n for n in (
        getattr(socket, "EAI_NONAME", None),
        getattr(socket, "EAI_NODATA", None),
    )
    if n is not None
)

_DEFAULT_LOG = get_logger("stableimage.source")


async def default_resolver(hostname: str) -> list[str]:
    """Resolve *hostname* with the event loop's ``getaddrinfo``."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        address = str(sockaddr[0])
        if address not in addresses:
            addresses.append(address)
    return addresses


def sniff_image_mime(data: bytes) -> str | None:
    """Detect the image MIME type from the leading bytes of *data*."""
    for magic, mime in _MAGIC_BYTES:
        if data[:len(magic)] == magic:
            return mime
    if data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _security_warning(log: logging.Logger, message: str, **fields: object) -> None:
    log.warning(
        f"SECURITY: {message}",
        extra={"extra_fields": {"op": "validate_image_url", **fields}},
    )


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

def _check_mapped_ipv4(url: str, log: logging.Logger, policy: BlockPolicy) -> None:
    match = _MAPPED_IPV4_RE.search(url)
    if match is None:
        return
    ipv4 = match.group(1)
    _security_warning(log, "IPv4-mapped IPv6 address in URL", src=url, ipv4=ipv4)

    if ipv4.startswith("127."):
        raise StableImageUnsafeSourceError(
            message="Access to localhost is not allowed",
            context={"src": url, "host": ipv4, "reason": "mapped_ipv6_localhost"},
        )
    if matches_ipv4_pattern(ipv4, policy):
        raise StableImageUnsafeSourceError(
            message="Access to internal/private IP addresses is not allowed",
            context={"src": url, "host": ipv4, "reason": "mapped_ipv6_private"},
        )


async def _check_resolved(
    url: str,
    hostname: str,
    resolver: Resolver,
    log: logging.Logger,
    policy: BlockPolicy,
) -> str:
    log.debug(
        "Resolving DNS for hostname",
        extra={"extra_fields": {"op": "validate_image_url", "host": hostname}},
    )
    try:
        addresses = list(await resolver(hostname))
    except socket.gaierror as exc:
        if exc.errno in _NOT_FOUND_ERRNOS:
            _security_warning(log, "Domain could not be resolved", host=hostname)
            raise StableImageInvalidSourceError(
                message=f"Domain {hostname} could not be resolved",
                context={"src": url, "host": hostname, "reason": "dns_not_found"},
                cause=exc,
            ) from exc
        _security_warning(log, "DNS lookup failed", host=hostname, error=str(exc))
        raise StableImageInvalidSourceError(
            message=f"Failed to validate domain {hostname}: {exc}",
            context={"src": url, "host": hostname, "reason": "dns_lookup_failed"},
            cause=exc,
        ) from exc
    except OSError as exc:
        _security_warning(log, "DNS lookup failed", host=hostname, error=str(exc))
        raise StableImageInvalidSourceError(
            message=f"Failed to validate domain {hostname}: {exc}",
            context={"src": url, "host": hostname, "reason": "dns_lookup_failed"},
            cause=exc,
        ) from exc

    if not addresses:
        raise StableImageInvalidSourceError(
            message=f"Failed to validate domain {hostname}: no addresses returned",
            context={"src": url, "host": hostname, "reason": "dns_lookup_failed"},
        )

    for address in addresses:
        if is_blocked_ip(address, policy):
            _security_warning(
                log,
                "DNS resolution points to blocked IP",
                host=hostname,
                resolved_address=address,
            )
            raise StableImageUnsafeSourceError(
                message=f"Domain {hostname} resolves to internal/private IP address",
                context={
                    "src": url,
                    "host": hostname,
                    "resolved_address": address,
                    "reason": "dns_rebinding",
                },
            )

    log.debug(
        "DNS validation passed",
        extra={"extra_fields": {
            "op": "validate_image_url",
            "host": hostname,
            "resolved_address": addresses[0],
        }},
    )
    return addresses[0]


async def check_image_url(
    url: str,
    *,
    resolver: Resolver | None = None,
    logger: logging.Logger | None = None,
    policy: BlockPolicy = BLOCK_POLICY,
) -> str | None:
    """Run every URL check and return the resolved address, if any.

    Returns ``None`` when the host is an IP literal (no lookup is made).
    See :func:`validate_image_url` for the raised errors.
    """
    log = logger or _DEFAULT_LOG
    resolve = resolver or default_resolver

    _check_mapped_ipv4(url, log, policy)

    try:
        parsed = urlparse(url)
        raw_host = parsed.hostname
    except ValueError as exc:
        raise StableImageInvalidSourceError(
            message=f"Invalid URL: {url}",
            context={"src": url, "reason": "invalid_url"},
            cause=exc,
        ) from exc
    if not parsed.scheme or not raw_host:
        raise StableImageInvalidSourceError(
            message=f"Invalid URL: {url}",
            context={"src": url, "reason": "invalid_url"},
        )

    if parsed.scheme.lower() not in policy.allowed_schemes:
        raise StableImageInvalidSourceError(
            message="Only HTTPS URLs are allowed for security reasons",
            context={"src": url, "scheme": parsed.scheme, "reason": "scheme_not_https"},
        )

    hostname = strip_brackets(raw_host.lower())

    if hostname in policy.blocked_hostnames:
        _security_warning(log, "Blocked access to prohibited hostname", host=hostname)
        message = (
            "Access to localhost is not allowed"
            if hostname == "localhost"
            else "Access to cloud metadata endpoints is not allowed"
        )
        raise StableImageUnsafeSourceError(
            message=message,
            context={"src": url, "host": hostname, "reason": "blocked_hostname"},
        )

    if is_ip_literal(hostname):
        if is_blocked_ip(hostname, policy):
            _security_warning(log, "Blocked access to private/internal IP", host=hostname)
            raise StableImageUnsafeSourceError(
                message="Access to internal/private IP addresses is not allowed",
                context={"src": url, "host": hostname, "reason": "blocked_ip"},
            )
        return None

    return await _check_resolved(url, hostname, resolve, log, policy)


async def validate_image_url(
    url: str,
    *,
    resolver: Resolver | None = None,
    logger: logging.Logger | None = None,
    policy: BlockPolicy = BLOCK_POLICY,
) -> str:
    """Validate a remote image URL against SSRF rules.

    Parameters
    ----------
    url:
        The URL as supplied by the user.
    resolver:
        DNS resolver coroutine.  Defaults to :func:`default_resolver`.
    logger:
        Logger for security warnings.  Defaults to ``stableimage.source``.
    policy:
        Block rules.  Defaults to :data:`BLOCK_POLICY`.

    Returns
    -------
    str
        *url*, unchanged.  The resolved address is not pinned; every later
        fetch resolves the hostname again.

    Raises
    ------
    StableImageInvalidSourceError
        Unparsable URL, non-``https`` scheme, or DNS failure (``reason`` is
        ``dns_not_found`` or ``dns_lookup_failed``).
    StableImageUnsafeSourceError
        Localhost, private, link-local or metadata target, whether given
        literally, by blocked hostname, or reached through DNS
        (``reason="dns_rebinding"``).
    """
    await check_image_url(url, resolver=resolver, logger=logger, policy=policy)
    return url


# ---------------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------------

def validate_image_path(filepath: str | os.PathLike[str]) -> bytes:
    """Read a local image file and verify its magic bytes.

    Returns
    -------
    bytes
        The file contents, so callers never read the file twice.

    Raises
    ------
    StableImageSourceNotFoundError
        The file does not exist.
    StableImageSourceUnreadableError
        The file exists but cannot be read (``reason`` is
        ``permission_denied`` or ``unreadable``).
    StableImageSourceNotAnImageError
        The file is empty or is not a PNG, JPEG, WebP or GIF image.
    """
    src = os.fspath(filepath)
    try:
        with open(src, "rb") as fh:
            data = fh.read()
    except FileNotFoundError as exc:
        raise StableImageSourceNotFoundError(
            message=f"Image file not found: {src}",
            context={"src": src},
            cause=exc,
        ) from exc
    except PermissionError as exc:
        raise StableImageSourceUnreadableError(
            message=f"Permission denied reading image file: {src}",
            context={"src": src, "reason": "permission_denied"},
            cause=exc,
        ) from exc
    except OSError as exc:
        raise StableImageSourceUnreadableError(
            message=f"Cannot read image file {src}: {exc.strerror or exc}",
            context={"src": src, "reason": "unreadable"},
            cause=exc,
        ) from exc

    if not data:
        raise StableImageSourceNotAnImageError(
            message=f"Image file is empty: {src}",
            context={"src": src, "size_bytes": 0},
        )

    if sniff_image_mime(data) is None:
        raise StableImageSourceNotAnImageError(
            message=(
                "File does not appear to be a valid image "
                f"(PNG, JPEG, WebP, or GIF): {src}"
            ),
            context={"src": src, "size_bytes": len(data)},
        )

    return data


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

async def validate_source(
    source: str | ImageSource,
    *,
    resolver: Resolver | None = None,
    logger: logging.Logger | None = None,
) -> ValidatedImageSource:
    """Validate a local path or URL and return the proof-carrying wrapper."""
    image_source = detect_image_source(source)

    if isinstance(image_source, RemoteUrl):
        resolved = await check_image_url(
            image_source.url, resolver=resolver, logger=logger,
        )
        return ValidatedImageSource(source=image_source, resolved_address=resolved)

    if not isinstance(image_source, LocalPath):
        raise TypeError(f"Unsupported image source type: {type(image_source).__name__}")
    data = validate_image_path(image_source.path)
    return ValidatedImageSource(
        source=image_source,
        mime_type=sniff_image_mime(data),
        data=data,
    )
