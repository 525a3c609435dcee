"""Grammar adapters: PromQL expressions, YAML rule groups and legacy statements."""

from __future__ import annotations

from adapters.legacy_promql import LegacyStatementParser
from adapters.promql import PromQLParser
from adapters.rulefmt import RuleGroupFileParser
from core.rules_parser import Collaborators


def default_collaborators() -> Collaborators:
    """Wire the in-repo grammars into the rule parser."""

    return Collaborators(
        expressions=PromQLParser(),
        groups=RuleGroupFileParser(),
        statements=LegacyStatementParser(),
    )
