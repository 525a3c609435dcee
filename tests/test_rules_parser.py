from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta

import pytest

from adapters import default_collaborators
from adapters.promql import BinaryExpr, VectorSelector, parse_expr
from core.configs import RulesConfig
from core.errors import ExpressionParseError, FileParseError, UnrecognizedStatementKind
from core.format_version import RuleFormatVersion
from core.rules_engine import AlertingRule, RecordingRule
from core.rules_parser import group_key
from core.statements import AlertStmt, RecordStmt

V2_FILE = """
groups:
  - name: example
    rules:
      - record: job:up:sum
        expr: sum(up) by (job)
      - alert: InstanceDown
        expr: up == 0
        for: 5m
        labels:
          severity: page
        annotations:
          summary: "{{ $labels.instance }} is down"
      - record: job:up:ratio
        expr: job:up:sum / count(up) by (job)
"""

V1_FILE = """
# availability
job:up:sum = sum(up) by (job)

ALERT InstanceDown
  IF up == 0
  FOR 5m
  LABELS { severity = "page" }
  ANNOTATIONS {
    summary = "Instance {{ $labels.instance }} down",
    description = "{{ $labels.instance }} has been down for more than 5 minutes.",
  }
"""


def test_v2_single_recording_rule() -> None:
    config = RulesConfig(
        RuleFormatVersion.V2,
        {"rules.yaml": "groups:\n- name: g\n  rules:\n  - record: r\n    expr: up\n"},
    )

    result = config.parse()

    assert list(result) == ["g;rules.yaml"]
    (rule,) = result["g;rules.yaml"]
    assert isinstance(rule, RecordingRule)
    assert rule.name == "r"
    assert rule.expression == VectorSelector("up")


def test_v2_keeps_rule_order_and_builds_alerts() -> None:
    result = RulesConfig(RuleFormatVersion.V2, {"a.yaml": V2_FILE}).parse()

    rules = result[group_key("example", "a.yaml")]
    assert [rule.name for rule in rules] == ["job:up:sum", "InstanceDown", "job:up:ratio"]

    alert = rules[1]
    assert isinstance(alert, AlertingRule)
    assert alert.hold_duration == timedelta(minutes=5)
    assert alert.labels == (("severity", "page"),)
    assert alert.annotations == (("summary", "{{ $labels.instance }} is down"),)
    assert alert.restored
    assert isinstance(alert.logger, logging.LoggerAdapter)
    assert alert.logger.extra == {"alert": "InstanceDown"}
    assert isinstance(alert.expression, BinaryExpr)


def test_v2_same_group_name_in_two_files() -> None:
    content = "groups:\n- name: shared\n  rules:\n  - record: r\n    expr: up\n"
    result = RulesConfig(RuleFormatVersion.V2, {"one.yaml": content, "two.yaml": content}).parse()

    assert set(result) == {"shared;one.yaml", "shared;two.yaml"}


def test_v2_malformed_file_fails_whole_config() -> None:
    broken = "groups:\n- name: g\n  rules:\n  - record: r\n    expr: [up\n"
    config = RulesConfig(
        RuleFormatVersion.V2,
        {"good.yaml": V2_FILE, "broken.yaml": broken},
    )

    with pytest.raises(FileParseError) as excinfo:
        config.parse()

    assert excinfo.value.filename == "broken.yaml"
    assert str(excinfo.value).startswith("error parsing broken.yaml: ")


def test_v2_reports_only_first_group_error() -> None:
    content = "groups:\n- name: g\n  rules:\n  - expr: up\n  - record: r\n"
    config = RulesConfig(RuleFormatVersion.V2, {"f.yaml": content})

    with pytest.raises(FileParseError) as excinfo:
        config.parse()

    assert "one of 'record' or 'alert' must be set" in str(excinfo.value)
    assert "expr" not in str(excinfo.value.cause)


def test_v2_expression_errors_are_not_wrapped() -> None:
    content = "groups:\n- name: g\n  rules:\n  - record: r\n    expr: sum(up\n"
    config = RulesConfig(RuleFormatVersion.V2, {"f.yaml": content})

    with pytest.raises(ExpressionParseError) as excinfo:
        config.parse()

    assert not isinstance(excinfo.value, FileParseError)
    assert "f.yaml" not in str(excinfo.value)


def test_v2_empty_file_yields_no_groups() -> None:
    assert RulesConfig(RuleFormatVersion.V2, {"empty.yaml": ""}).parse() == {}


def test_v1_alert_statement() -> None:
    result = RulesConfig(RuleFormatVersion.V1, {"legacy.rules": V1_FILE}).parse()

    assert list(result) == ["legacy.rules"]
    record, alert = result["legacy.rules"]
    assert isinstance(record, RecordingRule)
    assert record.name == "job:up:sum"
    assert isinstance(alert, AlertingRule)
    assert alert.name == "InstanceDown"
    assert alert.hold_duration == timedelta(minutes=5)
    assert alert.labels == (("severity", "page"),)
    assert dict(alert.annotations) == {
        "summary": "Instance {{ $labels.instance }} down",
        "description": "{{ $labels.instance }} has been down for more than 5 minutes.",
    }
    assert alert.expression == parse_expr("up == 0")


def test_v1_syntax_error_names_file() -> None:
    config = RulesConfig(RuleFormatVersion.V1, {"bad.rules": "ALERT Broken up == 0"})

    with pytest.raises(FileParseError) as excinfo:
        config.parse()

    assert excinfo.value.filename == "bad.rules"


class FakeStatements:
    def __init__(self, statements: list) -> None:
        self.statements = statements

    def parse(self, content: str) -> list:
        return self.statements


class RejectingExpressions:
    def parse(self, text: str):
        raise ExpressionParseError(f"cannot parse {text}")


def test_v1_reparses_expression_text() -> None:
    statement = RecordStmt("r", parse_expr("sum(rate(x[5m]))"), {})
    collaborators = replace(
        default_collaborators(),
        statements=FakeStatements([statement]),
        expressions=RejectingExpressions(),
    )
    config = RulesConfig(RuleFormatVersion.V1, {"f": "ignored"})

    with pytest.raises(ExpressionParseError, match=r"cannot parse sum\(rate\(x\[5m\]\)\)"):
        config.parse(collaborators)


def test_v1_unknown_statement_kind() -> None:
    collaborators = replace(default_collaborators(), statements=FakeStatements([object()]))
    config = RulesConfig(RuleFormatVersion.V1, {"f": "ignored"})

    with pytest.raises(UnrecognizedStatementKind):
        config.parse(collaborators)


class RecordingFactory:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def new_alerting_rule(self, name, expression, hold_duration, labels=None, annotations=None, logger=None):
        self.calls.append(("alert", name, hold_duration))
        return name

    def new_recording_rule(self, name, expression, labels=None):
        self.calls.append(("record", name))
        return name


def test_rules_are_built_through_the_factory() -> None:
    factory = RecordingFactory()
    collaborators = replace(default_collaborators(), rules=factory)

    result = RulesConfig(RuleFormatVersion.V2, {"a.yaml": V2_FILE}).parse(collaborators)

    assert result == {"example;a.yaml": ["job:up:sum", "InstanceDown", "job:up:ratio"]}
    assert factory.calls == [
        ("record", "job:up:sum"),
        ("alert", "InstanceDown", timedelta(minutes=5)),
        ("record", "job:up:ratio"),
    ]


def test_v1_huge_hex_literal_names_file() -> None:
    config = RulesConfig(RuleFormatVersion.V1, {"big.rules": "a = 0x" + "f" * 300})

    with pytest.raises(FileParseError) as excinfo:
        config.parse()

    assert excinfo.value.filename == "big.rules"
    assert "out of range" in str(excinfo.value)


def test_v1_deep_nesting_names_file() -> None:
    content = "a = " + "(" * 2000 + "x" + ")" * 2000
    config = RulesConfig(RuleFormatVersion.V1, {"deep.rules": content})

    with pytest.raises(FileParseError) as excinfo:
        config.parse()

    assert excinfo.value.filename == "deep.rules"
    assert "nested deeper" in str(excinfo.value)


class TextExpr:
    """Expression tree of some other grammar; only its text matters."""

    def __init__(self, text: str) -> None:
        self.text = text

    def __str__(self) -> str:
        return self.text


class OtherGrammar:
    def parse(self, content: str) -> list:
        return [
            AlertStmt("Down", TextExpr("up == 0"), timedelta(minutes=1), {"team": "db"}, {}),
            RecordStmt("job:up", TextExpr("sum by (job) (up)"), {}),
        ]


def test_v1_accepts_statements_from_an_injected_grammar() -> None:
    collaborators = replace(default_collaborators(), statements=OtherGrammar())

    result = RulesConfig(RuleFormatVersion.V1, {"other.rules": "ignored"}).parse(collaborators)

    alert, record = result["other.rules"]
    assert isinstance(alert, AlertingRule)
    assert alert.expression == parse_expr("up == 0")
    assert alert.hold_duration == timedelta(minutes=1)
    assert alert.labels == (("team", "db"),)
    assert isinstance(record, RecordingRule)
    assert record.expression == parse_expr("sum(up) by (job)")
