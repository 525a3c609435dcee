from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from core.compat import (
    ConfigCompat,
    decode_config,
    decode_timestamp,
    decode_versioned_rules_config,
    decode_view,
    encode_config,
    encode_versioned_rules_config,
    encode_view,
    loads_config,
    loads_versioned_rules_config,
    loads_view,
)
from core.configs import Config, ConfigID, RulesConfig, VersionedRulesConfig, View
from core.errors import ConfigDecodeError, InvalidFormatVersion
from core.format_version import RuleFormatVersion


def test_legacy_blob_without_format_version_decodes_as_v1() -> None:
    config = decode_config(
        {
            "rules_files": {"recording.rules": "job:up = sum(up) by (job)"},
            "alertmanager_config": "route: {}",
        }
    )

    assert config.rules_config.format_version is RuleFormatVersion.V1
    assert dict(config.rules_config.files) == {"recording.rules": "job:up = sum(up) by (job)"}
    assert config.alertmanager_config == "route: {}"


def test_config_encodes_flat_shape() -> None:
    config = Config(
        rules_config=RulesConfig(RuleFormatVersion.V2, {"a.yaml": "groups: []"}),
        alertmanager_config="am",
    )

    assert encode_config(config) == {
        "rules_files": {"a.yaml": "groups: []"},
        "rule_format_version": "2",
        "alertmanager_config": "am",
    }
    assert decode_config(encode_config(config)) == config


def test_config_compat_maps_both_ways() -> None:
    config = Config(rules_config=RulesConfig(RuleFormatVersion.V2, {"f": "c"}), alertmanager_config="x")

    compat = ConfigCompat.from_config(config)

    assert compat.rules_files == {"f": "c"}
    assert compat.rule_format_version is RuleFormatVersion.V2
    assert compat.to_config() == config


def test_unset_rules_files_stay_unset() -> None:
    config = decode_config({"alertmanager_config": "am"})

    assert config.rules_config.files is None
    assert encode_config(config)["rules_files"] is None


def test_unknown_format_version_is_rejected() -> None:
    with pytest.raises(InvalidFormatVersion):
        decode_config({"rules_files": {}, "rule_format_version": "3"})
    with pytest.raises(InvalidFormatVersion):
        encode_config(Config(rules_config=RulesConfig(format_version=9, files={})))  # type: ignore[arg-type]


def test_malformed_rules_files_are_rejected() -> None:
    with pytest.raises(ConfigDecodeError):
        decode_config({"rules_files": ["a", "b"]})
    with pytest.raises(ConfigDecodeError):
        decode_config({"rules_files": {"a": 1}})


def test_view_decodes_id_and_deleted_at() -> None:
    view = loads_view(
        json.dumps(
            {
                "id": 17,
                "config": {"rules_files": {"a": "x"}, "rule_format_version": "2"},
                "deleted_at": "2019-03-04T05:06:07.123456789Z",
            }
        )
    )

    assert view.id == 17
    assert view.is_deleted()
    assert view.deleted_at.year == 2019
    assert view.config.rules_config.format_version is RuleFormatVersion.V2


@pytest.mark.parametrize("raw", [None, "", "0001-01-01T00:00:00Z"])
def test_zero_or_missing_deleted_at_means_active(raw: object) -> None:
    assert decode_timestamp(raw) is None
    view = decode_view({"id": 1, "config": {}, "deleted_at": raw})
    assert not view.is_deleted()


def test_view_encodes_zero_timestamp_when_active() -> None:
    view = View(id=ConfigID(2), config=Config(rules_config=RulesConfig(files={})))

    payload = encode_view(view)

    assert payload["id"] == 2
    assert payload["deleted_at"] == "0001-01-01T00:00:00Z"
    assert payload["config"]["rule_format_version"] == "1"
    assert decode_view(payload) == view


def test_view_requires_integer_id() -> None:
    with pytest.raises(ConfigDecodeError):
        decode_view({"id": "7", "config": {}})


def test_versioned_rules_config_shape() -> None:
    deleted_at = datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc)
    versioned = VersionedRulesConfig(
        id=ConfigID(9),
        config=RulesConfig(RuleFormatVersion.V2, {"r.yaml": "groups: []"}),
        deleted_at=deleted_at,
    )

    payload = encode_versioned_rules_config(versioned)

    assert payload == {
        "id": 9,
        "config": {"format_version": "2", "files": {"r.yaml": "groups: []"}},
        "deleted_at": "2021-06-01T12:00:00Z",
    }
    assert decode_versioned_rules_config(payload) == versioned


def test_null_format_version_is_rejected() -> None:
    with pytest.raises(InvalidFormatVersion, match="unknown rule format version 'null'"):
        loads_config('{"rules_files": {}, "rule_format_version": null}')
    with pytest.raises(InvalidFormatVersion):
        loads_versioned_rules_config('{"id": 1, "config": {"format_version": null, "files": {}}}')


def test_invalid_json_text_is_a_decode_error() -> None:
    with pytest.raises(ConfigDecodeError, match="invalid JSON"):
        loads_config("{not json")
