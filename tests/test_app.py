from __future__ import annotations

import json
import logging
from pathlib import Path

import app

V2_RULES = "groups:\n- name: g\n  rules:\n  - record: r\n    expr: up\n"


def _write(tmp_path: Path, payload: dict) -> str:
    path = tmp_path / "record.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_validate_view(tmp_path: Path, capsys) -> None:
    path = _write(
        tmp_path,
        {
            "id": 3,
            "config": {"rules_files": {"a.yaml": V2_RULES}, "rule_format_version": "2"},
            "deleted_at": "0001-01-01T00:00:00Z",
        },
    )

    assert app.main(["--no-banner", "validate", path]) == 0

    out = capsys.readouterr().out
    assert "OK: 1 groups, 1 rules" in out


def test_validate_rejects_broken_rules(tmp_path: Path, capsys) -> None:
    path = _write(
        tmp_path,
        {"rules_files": {"bad.rules": "ALERT Broken"}, "alertmanager_config": ""},
    )

    assert app.main(["--no-banner", "validate", "--kind", "config", path]) == 1

    out = capsys.readouterr().out
    assert "error parsing bad.rules" in out


def test_validate_view_without_rules(tmp_path: Path, capsys) -> None:
    path = _write(tmp_path, {"id": 1, "config": {"alertmanager_config": "route: {}"}})

    assert app.main(["--no-banner", "validate", path]) == 0

    assert "No rules configuration" in capsys.readouterr().out


def test_inspect_versioned_rules_config(tmp_path: Path, capsys) -> None:
    path = _write(
        tmp_path,
        {
            "id": 8,
            "config": {"format_version": "1", "files": {"x.rules": "a = up"}},
            "deleted_at": "2020-01-01T00:00:00Z",
        },
    )

    assert app.main(["--no-banner", "inspect", "--kind", "rules", path]) == 0

    out = capsys.readouterr().out
    assert "x.rules" in out
    assert "True" in out


def test_missing_file_is_an_error(tmp_path: Path) -> None:
    assert app.main(["--no-banner", "inspect", str(tmp_path / "missing.json")]) == 1


def test_redacting_formatter_masks_secrets() -> None:
    formatter = app._RedactingFormatter(["hunter2"], fmt="%(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "password=%s", ("hunter2",), None)

    assert formatter.format(record) == "password=***"


def test_collect_redaction_values(monkeypatch) -> None:
    monkeypatch.setenv("SMTP_PASSWORD", "s3cret")
    monkeypatch.delenv("SLACK_URL", raising=False)

    values = app._collect_redaction_values(
        {"redact": {"enabled": True, "patterns": ["SMTP_PASSWORD", "SLACK_URL"]}}
    )

    assert values == ["s3cret"]
    assert app._collect_redaction_values({"redact": {"enabled": False}}) == []


def test_invalid_json_is_an_error(tmp_path: Path, capsys) -> None:
    path = tmp_path / "record.json"
    path.write_text("{oops", encoding="utf-8")

    assert app.main(["--no-banner", "validate", str(path)]) == 1

    assert "invalid JSON" in capsys.readouterr().out


def test_validate_reports_deep_nesting(tmp_path: Path, capsys) -> None:
    content = "a = " + "(" * 2000 + "x" + ")" * 2000
    path = _write(tmp_path, {"rules_files": {"deep.rules": content}})

    assert app.main(["--no-banner", "validate", "--kind", "config", path]) == 1

    assert "error parsing deep.rules" in capsys.readouterr().out
