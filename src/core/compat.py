"""Wire shapes of stored configuration records.

Records saved before rule format versions existed have the rule files at the
top level and no version tag. The tenant configuration is therefore always
written and read in that flat shape:

    {"rules_files": {...}, "rule_format_version": "1", "alertmanager_config": "..."}

A missing ``rule_format_version`` reads as V1; an explicit null is rejected.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from core import format_version
from core.configs import ZERO_TIME, Config, ConfigID, RulesConfig, VersionedRulesConfig, View, is_zero_time
from core.errors import ConfigDecodeError, InvalidFormatVersion
from core.format_version import DEFAULT_FORMAT_VERSION, RuleFormatVersion

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


@dataclass(frozen=True)
class ConfigCompat:
    """Flat wire shape of a tenant configuration."""

    rules_files: Optional[Mapping[str, str]] = None
    rule_format_version: RuleFormatVersion = DEFAULT_FORMAT_VERSION
    alertmanager_config: str = ""

    @classmethod
    def from_config(cls, config: Config) -> "ConfigCompat":
        files = config.rules_config.files
        return cls(
            rules_files=dict(files) if files is not None else None,
            rule_format_version=config.rules_config.format_version,
            alertmanager_config=config.alertmanager_config,
        )

    def to_config(self) -> Config:
        return Config(
            rules_config=RulesConfig(
                format_version=self.rule_format_version,
                files=self.rules_files,
            ),
            alertmanager_config=self.alertmanager_config,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules_files": dict(self.rules_files) if self.rules_files is not None else None,
            "rule_format_version": format_version.encode(self.rule_format_version),
            "alertmanager_config": self.alertmanager_config,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConfigCompat":
        _require_mapping(payload, "config")
        return cls(
            rules_files=_files(payload.get("rules_files"), "rules_files"),
            rule_format_version=_format_version(payload, "rule_format_version"),
            alertmanager_config=_string(payload.get("alertmanager_config"), "alertmanager_config"),
        )


def _require_mapping(payload: Any, what: str) -> None:
    if not isinstance(payload, Mapping):
        raise ConfigDecodeError(f"{what} must be a JSON object, got {type(payload).__name__}")


def _files(raw: Any, what: str) -> Optional[dict[str, str]]:
    if raw is None:
        return None
    _require_mapping(raw, what)
    files: dict[str, str] = {}
    for name, content in raw.items():
        if not isinstance(name, str) or not isinstance(content, str):
            raise ConfigDecodeError(f"{what} must map file names to file contents")
        files[name] = content
    return files


def _string(raw: Any, what: str) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ConfigDecodeError(f"{what} must be a string")
    return raw


def _format_version(payload: Mapping[str, Any], key: str) -> RuleFormatVersion:
    if key in payload and payload[key] is None:
        raise InvalidFormatVersion("null")
    return format_version.decode(payload.get(key))


def _config_id(raw: Any) -> ConfigID:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigDecodeError(f"id must be an integer, got {raw!r}")
    return ConfigID(raw)


def decode_timestamp(raw: Any) -> Optional[datetime]:
    """Read ``deleted_at``. Absent, null, empty and zero all mean not deleted."""

    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ConfigDecodeError(f"deleted_at must be an RFC 3339 timestamp, got {raw!r}")
    text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    # Stored timestamps may carry nanoseconds.
    text = _FRACTION_RE.sub(r"\1", text)
    try:
        value = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ConfigDecodeError(f"deleted_at must be an RFC 3339 timestamp, got {raw!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return None if is_zero_time(value) else value


def encode_timestamp(value: Optional[datetime]) -> str:
    if is_zero_time(value):
        value = ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def encode_config(config: Config) -> dict[str, Any]:
    return ConfigCompat.from_config(config).to_dict()


def decode_config(payload: Mapping[str, Any]) -> Config:
    return ConfigCompat.from_dict(payload).to_config()


def encode_rules_config(config: RulesConfig) -> dict[str, Any]:
    return {
        "format_version": format_version.encode(config.format_version),
        "files": dict(config.files) if config.files is not None else None,
    }


def decode_rules_config(payload: Mapping[str, Any]) -> RulesConfig:
    _require_mapping(payload, "rules config")
    return RulesConfig(
        format_version=_format_version(payload, "format_version"),
        files=_files(payload.get("files"), "files"),
    )


def encode_view(view: View) -> dict[str, Any]:
    return {
        "id": view.id,
        "config": encode_config(view.config),
        "deleted_at": encode_timestamp(view.deleted_at),
    }


def decode_view(payload: Mapping[str, Any]) -> View:
    _require_mapping(payload, "view")
    return View(
        id=_config_id(payload.get("id")),
        config=decode_config(payload.get("config") or {}),
        deleted_at=decode_timestamp(payload.get("deleted_at")),
    )


def encode_versioned_rules_config(config: VersionedRulesConfig) -> dict[str, Any]:
    return {
        "id": config.id,
        "config": encode_rules_config(config.config),
        "deleted_at": encode_timestamp(config.deleted_at),
    }


def decode_versioned_rules_config(payload: Mapping[str, Any]) -> VersionedRulesConfig:
    _require_mapping(payload, "versioned rules config")
    return VersionedRulesConfig(
        id=_config_id(payload.get("id")),
        config=decode_rules_config(payload.get("config") or {}),
        deleted_at=decode_timestamp(payload.get("deleted_at")),
    )


def loads_config(text: str) -> Config:
    return decode_config(_loads(text))


def loads_view(text: str) -> View:
    return decode_view(_loads(text))


def loads_versioned_rules_config(text: str) -> VersionedRulesConfig:
    return decode_versioned_rules_config(_loads(text))


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigDecodeError(f"invalid JSON: {exc}") from exc
