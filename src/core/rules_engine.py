"""Rule objects handed to the evaluation engine (core domain)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping, Optional, Union

LOGGER = logging.getLogger(__name__)

Labels = tuple[tuple[str, str], ...]


def labels_from_map(values: Optional[Mapping[str, str]]) -> Labels:
    """Return a label set sorted by label name."""

    if not values:
        return ()
    return tuple(sorted((str(name), str(value)) for name, value in values.items()))


@dataclass(frozen=True)
class AlertingRule:
    """Alert that fires once ``expression`` has held for ``hold_duration``.

    The rule object is what tracks pending state across evaluations, so the
    evaluation engine must build it once per configuration version.
    """

    name: str
    expression: Any
    hold_duration: timedelta
    labels: Labels = ()
    annotations: Labels = ()
    restored: bool = True
    logger: Union[logging.Logger, logging.LoggerAdapter] = field(
        default=LOGGER, repr=False, compare=False
    )

    @property
    def kind(self) -> str:
        return "alert"


@dataclass(frozen=True)
class RecordingRule:
    """Records the result of ``expression`` as a new series named ``name``."""

    name: str
    expression: Any
    labels: Labels = ()

    @property
    def kind(self) -> str:
        return "record"


Rule = Union[AlertingRule, RecordingRule]


def new_alerting_rule(
    name: str,
    expression: Any,
    hold_duration: timedelta,
    labels: Optional[Mapping[str, str]] = None,
    annotations: Optional[Mapping[str, str]] = None,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> AlertingRule:
    return AlertingRule(
        name=name,
        expression=expression,
        hold_duration=hold_duration,
        labels=labels_from_map(labels),
        annotations=labels_from_map(annotations),
        restored=True,
        logger=logger or LOGGER,
    )


def new_recording_rule(
    name: str,
    expression: Any,
    labels: Optional[Mapping[str, str]] = None,
) -> RecordingRule:
    return RecordingRule(name=name, expression=expression, labels=labels_from_map(labels))


class DefaultRuleFactory:
    """Builds the rule objects defined in this module."""

    def new_alerting_rule(
        self,
        name: str,
        expression: Any,
        hold_duration: timedelta,
        labels: Optional[Mapping[str, str]] = None,
        annotations: Optional[Mapping[str, str]] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> AlertingRule:
        return new_alerting_rule(name, expression, hold_duration, labels, annotations, logger)

    def new_recording_rule(
        self,
        name: str,
        expression: Any,
        labels: Optional[Mapping[str, str]] = None,
    ) -> RecordingRule:
        return new_recording_rule(name, expression, labels)
