"""Versioned per-tenant configuration model.

The configs service is a blob store that gives each version of a tenant's
configuration a new ID; later versions always have greater IDs. Nothing here
is mutated after construction, a change is always a new version.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, NewType, Optional

from core import rules_parser
from core.format_version import DEFAULT_FORMAT_VERSION, RuleFormatVersion

# ID of one version of a tenant's configuration. Never reused.
ConfigID = NewType("ConfigID", int)

# Go-style zero timestamp still found in stored records.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def is_zero_time(value: Optional[datetime]) -> bool:
    if value is None:
        return True
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value == ZERO_TIME


@dataclass(frozen=True, eq=False)
class RulesConfig:
    """Rule files of a tenant, keyed by file name, plus their format version.

    ``files`` is ``None`` when the tenant never had a rules configuration,
    which is different from having one with no files in it.
    """

    format_version: RuleFormatVersion = DEFAULT_FORMAT_VERSION
    files: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        if self.files is not None:
            object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    def equal(self, other: "RulesConfig") -> bool:
        """Same format version and the same (name, content) pairs."""

        if self.format_version != other.format_version:
            return False
        mine = self.files or {}
        theirs = other.files or {}
        if len(mine) != len(theirs):
            return False
        for name, content in mine.items():
            if name not in theirs or theirs[name] != content:
                return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RulesConfig):
            return NotImplemented
        return self.equal(other)

    __hash__ = None  # type: ignore[assignment]

    def parse(self, collaborators: Optional[rules_parser.Collaborators] = None) -> dict[str, list]:
        """Parse and validate the rule files according to the format version."""

        return rules_parser.parse(self, collaborators)


@dataclass(frozen=True)
class Config:
    """Complete configuration of one tenant."""

    rules_config: RulesConfig = field(default_factory=RulesConfig)
    alertmanager_config: str = ""


@dataclass(frozen=True)
class VersionedRulesConfig:
    """A rules configuration together with the version it belongs to."""

    id: ConfigID
    config: RulesConfig
    deleted_at: Optional[datetime] = None

    def is_deleted(self) -> bool:
        return not is_zero_time(self.deleted_at)


@dataclass(frozen=True)
class View:
    """One stored version of a tenant's configuration."""

    id: ConfigID
    config: Config = field(default_factory=Config)
    deleted_at: Optional[datetime] = None

    def is_deleted(self) -> bool:
        return not is_zero_time(self.deleted_at)

    def get_versioned_rules_config(self) -> Optional[VersionedRulesConfig]:
        """Narrow the view to its rules, or None if the tenant has no rules config."""

        if self.config.rules_config.files is None:
            return None
        return VersionedRulesConfig(
            id=self.id,
            config=self.config.rules_config,
            deleted_at=self.deleted_at,
        )
