"""Intermediate forms produced by the rule grammars.

The V2 group grammar yields ``RuleGroups`` of ``RuleNode`` entries and the V1
statement grammar yields ``AlertStmt``/``RecordStmt``. Any grammar plugged into
the rule parser has to build these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Optional, Union


class RuleKind(Enum):
    ALERT = "alert"
    RECORD = "record"


@dataclass(frozen=True)
class RuleNode:
    """One rule entry of a group: either an alert or a recording rule."""

    kind: RuleKind
    name: str
    expr: str
    hold_duration: timedelta = timedelta(0)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RuleGroup:
    name: str
    interval: Optional[timedelta]
    rules: tuple[RuleNode, ...]


@dataclass(frozen=True)
class RuleGroups:
    groups: tuple[RuleGroup, ...]


# ``expr`` of the legacy statements is whatever tree the legacy grammar built;
# the rule parser only relies on its text form.


@dataclass(frozen=True)
class AlertStmt:
    name: str
    expr: Any
    duration: timedelta
    labels: dict[str, str]
    annotations: dict[str, str]


@dataclass(frozen=True)
class RecordStmt:
    name: str
    expr: Any
    labels: dict[str, str]


Statement = Union[AlertStmt, RecordStmt]
