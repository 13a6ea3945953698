"""Masking for debug logs.

The only secret the agent handles is the control-plane shared secret, sent
as a request header on every desired-state read.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from xraysync._constants import SECRET_HEADER

REDACTED = "<redacted>"
_MAX_DEPTH = 8

_DEFAULT_SENSITIVE: frozenset[str] = frozenset({SECRET_HEADER.lower()})


def redact_for_log(
    value: Any,
    *,
    max_string: int = 256,
    sensitive_keys: frozenset[str] = frozenset(),
) -> Any:
    """Copy *value* with secret-bearing keys masked and long strings cut.

    Header names compare case-insensitively; *sensitive_keys* adds names
    (lower-case) on top of the default secret header, e.g. a custom
    ``SYNC_SECRET_HEADER``.
    """
    return _redact(value, max_string, _DEFAULT_SENSITIVE | sensitive_keys, 0)


def _redact(value: Any, max_string: int, sensitive: frozenset[str], depth: int) -> Any:
    if depth > _MAX_DEPTH:
        return "<max-depth>"
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if str(k).lower() in sensitive else _redact(v, max_string, sensitive, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(v, max_string, sensitive, depth + 1) for v in value]
    return value
