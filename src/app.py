"""Command line entry point for rulecfg."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from rich.console import Console
from rich.table import Table
from rich.text import Text

import settings
from adapters import default_collaborators
from adapters.promql import format_duration
from core.compat import loads_config, loads_versioned_rules_config, loads_view
from core.configs import RulesConfig
from core.errors import ConfigError
from core.format_version import encode
from core.rules_engine import AlertingRule

NAME = "RULECFG"
FONT = "tarty-1"

KINDS = ("view", "config", "rules")


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: Optional[dict] = None) -> None:
    config = settings.LOGGING if config is None else config
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/rulecfg.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _load_record(path: str, kind: str) -> tuple[dict[str, Any], Optional[RulesConfig]]:
    """Decode a stored record and narrow it to its rules configuration.

    Returns a summary of the record and the rules config, which is None when
    the record has no rules configuration at all.
    """

    with open(path, "r", encoding="utf-8") as handle:
        text = handle.read()

    if kind == "view":
        view = loads_view(text)
        summary = {"id": view.id, "deleted": view.is_deleted()}
        versioned = view.get_versioned_rules_config()
        return summary, versioned.config if versioned else None
    if kind == "rules":
        versioned = loads_versioned_rules_config(text)
        return {"id": versioned.id, "deleted": versioned.is_deleted()}, versioned.config
    rules_config = loads_config(text).rules_config
    return {}, rules_config if rules_config.files is not None else None


def _summary_table(summary: dict[str, Any], rules_config: Optional[RulesConfig]) -> Table:
    table = Table(title="Configuration", show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    for key, value in summary.items():
        table.add_row(key, str(value))
    if rules_config is None:
        table.add_row("rules", "none")
        return table
    table.add_row("format", encode(rules_config.format_version))
    for name in sorted(rules_config.files or {}):
        table.add_row("file", name)
    return table


def _rules_table(groups: dict[str, list]) -> Table:
    table = Table(title="Rules")
    table.add_column("Group")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("For")
    if settings.SHOW_EXPRESSIONS:
        table.add_column("Expression")
    for key, rules in groups.items():
        for rule in rules:
            hold = format_duration(rule.hold_duration) if isinstance(rule, AlertingRule) else ""
            row = [key, rule.kind, rule.name, hold]
            if settings.SHOW_EXPRESSIONS:
                row.append(str(rule.expression))
            table.add_row(*row)
    return table


def _inspect(path: str, kind: str, console: Console) -> int:
    summary, rules_config = _load_record(path, kind)
    console.print(_summary_table(summary, rules_config))
    return 0


def _validate(path: str, kind: str, console: Console) -> int:
    logger = logging.getLogger(__name__)
    summary, rules_config = _load_record(path, kind)
    if rules_config is None:
        console.print("No rules configuration in this record.")
        return 0

    groups = rules_config.parse(default_collaborators())
    rule_count = sum(len(rules) for rules in groups.values())
    logger.info("Validated %s: %s groups, %s rules", path, len(groups), rule_count)
    if summary.get("deleted"):
        console.print(Text("Configuration is marked as deleted.", style="yellow"))
    console.print(_rules_table(groups))
    console.print(f"OK: {len(groups)} groups, {rule_count} rules")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="rulecfg")
    parser.add_argument("--no-banner", action="store_true", help="Do not print the banner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("validate", "Parse every rule file of a stored configuration"),
        ("inspect", "Show a stored configuration without parsing it"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("path", help="JSON file holding the record")
        command.add_argument("--kind", choices=KINDS, default="view", help="Shape of the record")

    args = parser.parse_args(argv)
    if not args.no_banner:
        _print_banner()
    _configure_logging()

    console = Console()
    try:
        if args.command == "inspect":
            return _inspect(args.path, args.kind, console)
        return _validate(args.path, args.kind, console)
    except (ConfigError, OSError) as exc:
        logging.getLogger(__name__).error("Rejected %s: %s", args.path, exc)
        console.print(Text(f"error: {exc}", style="red"))
        return 1


if __name__ == "__main__":
    sys.exit(main())
