"""Ports (interfaces) used by the rule parser.

Ports define the minimal contracts for the grammars and the rule constructors
so the parser can be driven by a different expression language or evaluation
engine without changes here.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Union

from core.statements import RuleGroups, Statement


class ExpressionParser(Protocol):
    """Turns expression text into an evaluable tree; raises ExpressionParseError."""

    def parse(self, text: str) -> Any:
        ...


class RuleGroupParser(Protocol):
    """Group grammar (V2). Returns ``(groups, errors)``; errors abort the file."""

    def parse(self, content: str) -> tuple[Optional[RuleGroups], Sequence[Exception]]:
        ...


class StatementParser(Protocol):
    """Legacy statement grammar (V1). Raises a ConfigError on malformed content."""

    def parse(self, content: str) -> Iterable[Statement]:
        ...


class RuleFactory(Protocol):
    """Rule constructors provided by the evaluation engine."""

    def new_alerting_rule(
        self,
        name: str,
        expression: Any,
        hold_duration: timedelta,
        labels: Optional[Mapping[str, str]] = None,
        annotations: Optional[Mapping[str, str]] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> Any:
        ...

    def new_recording_rule(
        self,
        name: str,
        expression: Any,
        labels: Optional[Mapping[str, str]] = None,
    ) -> Any:
        ...
