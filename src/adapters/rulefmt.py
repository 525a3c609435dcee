"""Rule group files (Prometheus 2.x YAML format).

Only the document structure is checked here. Rule expressions stay as text;
turning them into expression trees is the rule parser's job.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import yaml

from adapters.promql import is_valid_label_name, is_valid_metric_name, parse_duration
from core.errors import RuleFormatError
from core.statements import RuleGroup, RuleGroups, RuleKind, RuleNode

_GROUP_FILE_FIELDS = frozenset({"groups"})
_GROUP_FIELDS = frozenset({"name", "interval", "rules"})
_RULE_FIELDS = frozenset({"alert", "record", "expr", "for", "labels", "annotations"})

_KEPT_TAGS = ("tag:yaml.org,2002:null", "tag:yaml.org,2002:merge")


class _TextLoader(yaml.SafeLoader):
    """Safe loader that keeps plain scalars as written (``true``, ``0x10``).

    Every field of a rule file is a string, so only null and merge keys are
    resolved implicitly.
    """


_TextLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag in _KEPT_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _check_fields(raw: dict[str, Any], allowed: frozenset, where: str) -> list[str]:
    return [f"field {key} not found in {where}" for key in raw if key not in allowed]


def _string_map(raw: Any, what: str) -> tuple[dict[str, str], list[str]]:
    if raw is None:
        return {}, []
    if not isinstance(raw, dict):
        return {}, [f"{what} must be a mapping"]
    values: dict[str, str] = {}
    errors: list[str] = []
    for key, value in raw.items():
        if not isinstance(key, str) or not is_valid_label_name(key):
            errors.append(f"invalid {what} name: {key!r}")
            continue
        if isinstance(value, (dict, list)):
            errors.append(f"{what} {key!r} must be a string")
            continue
        values[key] = "" if value is None else str(value)
    return values, errors


def _duration(raw: Any, what: str) -> tuple[Optional[timedelta], list[str]]:
    if raw is None:
        return None, []
    try:
        return parse_duration(str(raw)), []
    except ValueError as exc:
        return None, [f"invalid {what}: {exc}"]


def _parse_rule(raw: Any, group: str, index: int) -> tuple[Optional[RuleNode], list[RuleFormatError]]:
    if not isinstance(raw, dict):
        return None, [RuleFormatError("rule must be a mapping", group, index)]

    problems = _check_fields(raw, _RULE_FIELDS, "rule")
    alert = raw.get("alert")
    record = raw.get("record")
    expr = raw.get("expr")

    if not alert and not record:
        problems.append("one of 'record' or 'alert' must be set")
    if alert and record:
        problems.append("only one of 'record' and 'alert' must be set")
    if expr is None or (isinstance(expr, str) and not expr.strip()):
        problems.append("field 'expr' must be set in rule")
    elif not isinstance(expr, (str, int, float)):
        problems.append("field 'expr' must be a string")

    if record:
        if raw.get("annotations"):
            problems.append("invalid field 'annotations' in recording rule")
        if raw.get("for"):
            problems.append("invalid field 'for' in recording rule")
        if not is_valid_metric_name(str(record)):
            problems.append(f"invalid recording rule name: {record}")

    labels, label_problems = _string_map(raw.get("labels"), "label")
    annotations, annotation_problems = _string_map(raw.get("annotations"), "annotation")
    hold, hold_problems = _duration(raw.get("for"), "'for' duration")
    problems.extend(label_problems + annotation_problems + hold_problems)

    if problems:
        return None, [RuleFormatError(problem, group, index) for problem in problems]

    kind = RuleKind.ALERT if alert else RuleKind.RECORD
    node = RuleNode(
        kind=kind,
        name=str(alert if alert else record),
        expr=str(expr),
        hold_duration=hold or timedelta(0),
        labels=labels,
        annotations=annotations,
    )
    return node, []


def _parse_group(raw: Any, seen: set) -> tuple[Optional[RuleGroup], list[RuleFormatError]]:
    if not isinstance(raw, dict):
        return None, [RuleFormatError("rule group must be a mapping")]

    name = raw.get("name")
    errors = [RuleFormatError(problem, name) for problem in _check_fields(raw, _GROUP_FIELDS, "group")]
    if not name:
        errors.append(RuleFormatError("groupname should not be empty"))
        name = ""
    elif not isinstance(name, str):
        errors.append(RuleFormatError(f"groupname {name!r} must be a string"))
        name = str(name)
    elif name in seen:
        errors.append(RuleFormatError(f"groupname: {name!r} is repeated in the same file"))
    seen.add(name)

    interval, interval_problems = _duration(raw.get("interval"), "group interval")
    errors.extend(RuleFormatError(problem, name) for problem in interval_problems)

    raw_rules = raw.get("rules") or []
    if not isinstance(raw_rules, list):
        errors.append(RuleFormatError("rules must be a list", name))
        raw_rules = []

    rules: list[RuleNode] = []
    for index, raw_rule in enumerate(raw_rules):
        node, rule_errors = _parse_rule(raw_rule, name, index)
        errors.extend(rule_errors)
        if node is not None:
            rules.append(node)

    if errors:
        return None, errors
    return RuleGroup(name=name, interval=interval, rules=tuple(rules)), []


def parse_rule_groups(content: str) -> tuple[Optional[RuleGroups], list[RuleFormatError]]:
    """Parse a rule group file.

    Returns the parsed groups and every problem found. Callers must treat a
    non-empty error list as a failed parse; the groups are then ``None``.
    """

    try:
        document = yaml.load(content, Loader=_TextLoader)
    except yaml.YAMLError as exc:
        return None, [RuleFormatError(f"invalid YAML: {exc}")]

    if document is None:
        return RuleGroups(groups=()), []
    if not isinstance(document, dict):
        return None, [RuleFormatError("rule file must be a mapping with a 'groups' list")]

    errors = [RuleFormatError(problem) for problem in _check_fields(document, _GROUP_FILE_FIELDS, "rule file")]
    raw_groups = document.get("groups") or []
    if not isinstance(raw_groups, list):
        return None, errors + [RuleFormatError("'groups' must be a list")]

    groups: list[RuleGroup] = []
    seen: set = set()
    for raw_group in raw_groups:
        group, group_errors = _parse_group(raw_group, seen)
        errors.extend(group_errors)
        if group is not None:
            groups.append(group)

    if errors:
        return None, errors
    return RuleGroups(groups=tuple(groups)), []


class RuleGroupFileParser:
    """Group-grammar parser for the V2 rule format."""

    def parse(self, content: str) -> tuple[Optional[RuleGroups], list[RuleFormatError]]:
        return parse_rule_groups(content)
