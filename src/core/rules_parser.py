"""Turns the rule files of a configuration into rule objects.

Parsing is all-or-nothing: the first failure aborts the configuration, since
evaluating a partial rule set is unsafe.

Both formats return fully built rule objects rather than intermediate group
definitions. Only a built rule can carry alert pending state from one
evaluation to the next, so the caller has to build them exactly once per
configuration version, never once per evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from core.errors import ConfigError, FileParseError, InvalidFormatVersion, UnrecognizedStatementKind
from core.format_version import RuleFormatVersion, encode, is_valid
from core.ports import ExpressionParser, RuleFactory, RuleGroupParser, StatementParser
from core.rules_engine import DefaultRuleFactory
from core.statements import AlertStmt, RecordStmt, RuleKind

if TYPE_CHECKING:
    from core.configs import RulesConfig

LOGGER = logging.getLogger(__name__)

GROUP_KEY_SEPARATOR = ";"


@dataclass(frozen=True)
class Collaborators:
    """Grammars and rule constructors used while parsing."""

    expressions: ExpressionParser
    groups: RuleGroupParser
    statements: StatementParser
    rules: RuleFactory = field(default_factory=DefaultRuleFactory)


def default_collaborators() -> Collaborators:
    """The PromQL grammars shipped in ``adapters``, imported on first use."""

    from adapters import default_collaborators as build

    return build()


def group_key(group_name: str, filename: str) -> str:
    """Key for a V2 group; group names are only unique within one file."""

    return f"{group_name}{GROUP_KEY_SEPARATOR}{filename}"


def parse(config: "RulesConfig", collaborators: Optional[Collaborators] = None) -> dict[str, list]:
    """Parse every file of ``config`` according to its format version."""

    if not is_valid(config.format_version):
        raise InvalidFormatVersion(config.format_version)
    collaborators = collaborators or default_collaborators()
    if config.format_version == RuleFormatVersion.V1:
        result = parse_v1(config, collaborators)
    else:
        result = parse_v2(config, collaborators)
    LOGGER.debug(
        "Parsed %s rule files into %s rule groups (format %s)",
        len(config.files or {}),
        len(result),
        encode(config.format_version),
    )
    return result


def parse_v2(config: "RulesConfig", collaborators: Collaborators) -> dict[str, list]:
    """Parse Prometheus 2.x rule group files, keyed by ``<group>;<file>``."""

    groups: dict[str, list] = {}
    for filename, content in (config.files or {}).items():
        rule_groups, errors = collaborators.groups.parse(content)
        if errors:
            raise FileParseError(filename, errors[0])

        for group in rule_groups.groups:
            rules: list = []
            for node in group.rules:
                # Expression errors are raised as-is, without the file name.
                expression = collaborators.expressions.parse(node.expr)
                if node.kind is RuleKind.ALERT:
                    rules.append(
                        collaborators.rules.new_alerting_rule(
                            node.name,
                            expression,
                            node.hold_duration,
                            node.labels,
                            node.annotations,
                            logger=logging.LoggerAdapter(LOGGER, {"alert": node.name}),
                        )
                    )
                    continue
                rules.append(collaborators.rules.new_recording_rule(node.name, expression, node.labels))
            groups[group_key(group.name, filename)] = rules
    return groups


def parse_v1(config: "RulesConfig", collaborators: Collaborators) -> dict[str, list]:
    """Parse Prometheus 1.x statement files, keyed by file name."""

    result: dict[str, list] = {}
    for filename, content in (config.files or {}).items():
        try:
            statements = list(collaborators.statements.parse(content))
        except ConfigError as exc:
            raise FileParseError(filename, exc) from exc

        rules: list = []
        for statement in statements:
            if isinstance(statement, AlertStmt):
                # The legacy tree is not the current expression type; go through text.
                expression = collaborators.expressions.parse(str(statement.expr))
                rule = collaborators.rules.new_alerting_rule(
                    statement.name,
                    expression,
                    statement.duration,
                    statement.labels,
                    statement.annotations,
                )
            elif isinstance(statement, RecordStmt):
                expression = collaborators.expressions.parse(str(statement.expr))
                rule = collaborators.rules.new_recording_rule(statement.name, expression, statement.labels)
            else:
                raise UnrecognizedStatementKind(statement)
            rules.append(rule)
        result[filename] = rules
    return result
