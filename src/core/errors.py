"""Error types raised by the configuration model and the rule parsers.

Every parse failure aborts the whole configuration, so callers only need to
catch ``ConfigError`` to reject an update and keep serving the prior version.
"""

from __future__ import annotations

from typing import Optional


class ConfigError(Exception):
    """Base class for configuration and rule parsing errors."""


class InvalidFormatVersion(ConfigError, ValueError):
    """Unknown rule format version at encode, decode or dispatch time."""

    def __init__(self, value: object) -> None:
        if isinstance(value, int) and not isinstance(value, bool):
            message = f"unknown rule format version {int(value)}"
        else:
            message = f"unknown rule format version {value!r}"
        super().__init__(message)
        self.value = value


class ConfigDecodeError(ConfigError, ValueError):
    """A stored record does not have the expected wire shape."""


class FileParseError(ConfigError):
    """A rule file failed to parse. Carries the offending file name."""

    def __init__(self, filename: str, cause: object) -> None:
        super().__init__(f"error parsing {filename}: {cause}")
        self.filename = filename
        self.cause = cause


class ExpressionParseError(ConfigError):
    """Malformed expression text."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        if position is not None:
            super().__init__(f"parse error at char {position + 1}: {message}")
        else:
            super().__init__(f"parse error: {message}")
        self.message = message
        self.position = position


class StatementParseError(ExpressionParseError):
    """Malformed legacy rule statement."""


class RuleFormatError(ConfigError):
    """A rule group document violates the group grammar."""

    def __init__(
        self,
        message: str,
        group: Optional[str] = None,
        rule_index: Optional[int] = None,
    ) -> None:
        parts = []
        if group is not None:
            parts.append(f"group {group!r}")
        if rule_index is not None:
            parts.append(f"rule {rule_index}")
        prefix = ", ".join(parts)
        super().__init__(f"{prefix}: {message}" if prefix else message)
        self.message = message
        self.group = group
        self.rule_index = rule_index


class UnrecognizedStatementKind(ConfigError):
    """The legacy grammar produced something that is neither alert nor record."""

    def __init__(self, statement: object) -> None:
        super().__init__(f"unknown statement type {type(statement).__name__}")
        self.statement = statement
