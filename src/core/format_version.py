"""Rule format version tag and its text encoding.

Stored records carry the version as the string tokens "1" and "2". Records
written before the tag existed have no token at all and must read as V1, so
V1 is deliberately the zero value of the enumeration.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional

from core.errors import InvalidFormatVersion


class RuleFormatVersion(IntEnum):
    """Which rule syntax the files of a configuration are written in."""

    # Prometheus 1.x statement syntax.
    V1 = 0
    # Prometheus 2.x YAML rule groups.
    V2 = 1


DEFAULT_FORMAT_VERSION = RuleFormatVersion(0)

_TOKENS = {
    RuleFormatVersion.V1: "1",
    RuleFormatVersion.V2: "2",
}
_VERSIONS = {token: version for version, token in _TOKENS.items()}


def is_valid(value: int) -> bool:
    """Return True only for the known format versions."""

    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value in (RuleFormatVersion.V1, RuleFormatVersion.V2)


def encode(value: int) -> str:
    """Return the wire token for a format version."""

    if not is_valid(value):
        raise InvalidFormatVersion(value)
    return _TOKENS[RuleFormatVersion(value)]


def decode(token: Optional[object]) -> RuleFormatVersion:
    """Parse a wire token. An absent token means V1."""

    if token is None:
        return DEFAULT_FORMAT_VERSION
    if isinstance(token, str) and token in _VERSIONS:
        return _VERSIONS[token]
    raise InvalidFormatVersion(token)
