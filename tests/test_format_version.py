from __future__ import annotations

import pytest

from core import format_version
from core.errors import InvalidFormatVersion
from core.format_version import RuleFormatVersion


def test_zero_value_is_v1() -> None:
    assert RuleFormatVersion(0) is RuleFormatVersion.V1
    assert format_version.DEFAULT_FORMAT_VERSION is RuleFormatVersion.V1


def test_is_valid_only_for_known_versions() -> None:
    assert format_version.is_valid(RuleFormatVersion.V1)
    assert format_version.is_valid(RuleFormatVersion.V2)
    assert not format_version.is_valid(2)
    assert not format_version.is_valid(-1)
    assert not format_version.is_valid(True)


def test_encode_tokens() -> None:
    assert format_version.encode(RuleFormatVersion.V1) == "1"
    assert format_version.encode(RuleFormatVersion.V2) == "2"


def test_encode_unknown_value_names_the_number() -> None:
    with pytest.raises(InvalidFormatVersion, match="unknown rule format version 7"):
        format_version.encode(7)


def test_decode_then_encode_is_identity() -> None:
    for token in ("1", "2"):
        assert format_version.encode(format_version.decode(token)) == token


def test_decode_absent_token_is_v1() -> None:
    assert format_version.decode(None) is RuleFormatVersion.V1


@pytest.mark.parametrize("token", ["3", "", "v2", 2, "01"])
def test_decode_rejects_unknown_tokens(token: object) -> None:
    with pytest.raises(InvalidFormatVersion) as excinfo:
        format_version.decode(token)
    assert repr(token) in str(excinfo.value)


def test_decode_rejects_null_token_text() -> None:
    with pytest.raises(InvalidFormatVersion, match="unknown rule format version 'null'"):
        format_version.decode("null")
