"""Legacy (Prometheus 1.x) rule statement grammar.

    # comment
    job:up:sum{env="prod"} = sum(up) by (job)
    ALERT InstanceDown IF up == 0 FOR 5m LABELS {severity="page"} ANNOTATIONS {summary="down"}

Statements follow each other without separators; an expression ends at the
first token that cannot continue it. Keywords are case-insensitive.
"""

from __future__ import annotations

from datetime import timedelta

from adapters.promql import (
    EOF,
    IDENT,
    STRING_TOKEN,
    ExprParser,
    is_valid_label_name,
    is_valid_metric_name,
    tokenize,
)
from core.errors import ExpressionParseError, StatementParseError
from core.statements import AlertStmt, RecordStmt, Statement

_KEYWORDS = frozenset({"alert", "if", "for", "labels", "annotations"})


class _StatementReader:
    def __init__(self, text: str) -> None:
        self._parser = ExprParser(tokenize(text))

    def read_all(self) -> list[Statement]:
        statements: list[Statement] = []
        while self._parser.peek().kind != EOF:
            if self._parser.at_keyword("alert"):
                statements.append(self._read_alert())
            else:
                statements.append(self._read_record())
        return statements

    def _read_alert(self) -> AlertStmt:
        parser = self._parser
        parser.advance()
        name = parser.expect(IDENT, "alert statement")
        if not parser.at_keyword("if"):
            parser.fail("expected IF after alert name")
        parser.advance()
        expr = parser.parse_expression()

        duration = timedelta(0)
        labels: dict[str, str] = {}
        annotations: dict[str, str] = {}
        if parser.at_keyword("for"):
            parser.advance()
            duration = parser.parse_duration_token("alert statement")
        if parser.at_keyword("labels"):
            parser.advance()
            labels = self._read_label_set("LABELS")
        if parser.at_keyword("annotations"):
            parser.advance()
            annotations = self._read_label_set("ANNOTATIONS")
        return AlertStmt(name.value, expr, duration, labels, annotations)

    def _read_record(self) -> RecordStmt:
        parser = self._parser
        name = parser.peek()
        if name.kind != IDENT or name.value.lower() in _KEYWORDS:
            parser.fail("expected recording rule name or ALERT", name)
        parser.advance()
        if not is_valid_metric_name(name.value):
            parser.fail(f"invalid recording rule name {name.value!r}", name)
        labels: dict[str, str] = {}
        if parser.peek().kind == "{":
            labels = self._read_label_set("recording rule labels")
        parser.expect("=", "recording rule")
        expr = parser.parse_expression()
        return RecordStmt(name.value, expr, labels)

    def _read_label_set(self, context: str) -> dict[str, str]:
        parser = self._parser
        parser.expect("{", context)
        labels: dict[str, str] = {}
        while parser.peek().kind != "}":
            key = parser.expect(IDENT, context)
            if not is_valid_label_name(key.value):
                parser.fail(f"invalid label name {key.value!r}", key)
            parser.expect("=", context)
            value = parser.expect(STRING_TOKEN, context)
            if key.value in labels:
                parser.fail(f"label {key.value!r} set twice", key)
            labels[key.value] = value.value
            if parser.peek().kind == ",":
                parser.advance()
            elif parser.peek().kind != "}":
                parser.fail(f"expected \",\" or \"}}\" in {context}")
        parser.advance()
        return labels


def parse_statements(text: str) -> list[Statement]:
    """Parse a legacy rule file into its statements."""

    try:
        return _StatementReader(text).read_all()
    except StatementParseError:
        raise
    except ExpressionParseError as exc:
        raise StatementParseError(exc.message, exc.position) from exc


class LegacyStatementParser:
    """Statement parser for the V1 rule format."""

    def parse(self, text: str) -> list[Statement]:
        return parse_statements(text)
