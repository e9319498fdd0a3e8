"""Credential and payload redaction for safe logging.

Nothing that reaches a log record may carry the API key in full.  The
helpers here enforce the following rules:

* :func:`redact_api_key` renders a key as ``xxx...`` followed by its last
  four characters; keys shorter than eight characters become
  ``xxx...xxxx``.
* :func:`mask_bearer` rewrites any ``Bearer <credential>`` sequence inside
  free text.
* :func:`redact` walks a dict (headers, form fields, response metadata) and
  masks sensitive keys, scrubs an explicitly supplied key from every string,
  and replaces binary values with ``<binary:N_bytes>``.
"""

from __future__ import annotations

import copy
import re
from typing import Any

REDACTION_MARKER = "xxx..."

# If any of these appear in a key name (case-insensitive), the value is
# redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "authorization",
    "api_key",
    "api-key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "cookie",
})

_BEARER_RE = re.compile(r"(Bearer\s+)(\S+)", re.IGNORECASE)


def redact_api_key(api_key: str | None) -> str:
    """Return a log-safe rendering of *api_key*.

    >>> redact_api_key("sk-abcdefgh1234")
    'xxx...1234'
    >>> redact_api_key("short")
    'xxx...xxxx'
    """
    if not api_key or len(api_key) < 8:
        return f"{REDACTION_MARKER}xxxx"
    return f"{REDACTION_MARKER}{api_key[-4:]}"


def mask_bearer(text: str) -> str:
    """Replace the credential in every ``Bearer <credential>`` with its hint."""
    return _BEARER_RE.sub(lambda m: f"{m.group(1)}{redact_api_key(m.group(2))}", text)


def _scrub(value: str, api_key: str | None) -> str:
    if api_key and api_key in value:
        value = value.replace(api_key, redact_api_key(api_key))
    return mask_bearer(value)


def _redact_value(value: Any, api_key: str | None) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value, api_key)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, api_key) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    if isinstance(value, str):
        return _scrub(value, api_key)
    return value


def _redact_dict(d: dict, api_key: str | None) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            if isinstance(value, str):
                result[key] = (
                    mask_bearer(value)
                    if _BEARER_RE.search(value)
                    else redact_api_key(value)
                )
            else:
                result[key] = f"{REDACTION_MARKER}xxxx"
        else:
            result[key] = _redact_value(value, api_key)
    return result


def redact(payload: dict, api_key: str | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        Headers, form fields, or other structured data about to be logged.
    api_key:
        If supplied, every occurrence of this exact string anywhere in the
        payload is replaced with its redacted form.

    Returns
    -------
    dict
        A new dictionary; *payload* is never mutated.

    Examples
    --------
    >>> redact({"authorization": "Bearer sk-abcdefgh1234"})
    {'authorization': 'Bearer xxx...1234'}
    """
    safe = copy.deepcopy(payload)
    return _redact_dict(safe, api_key)
