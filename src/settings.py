"""Static configuration for rulecfg.

Tool settings (logging, output) live in a single JSON file so they can be
changed without touching Python. The file is optional; defaults apply when it
is missing.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# RULECFG_CONFIG points at an alternative settings file.
CONFIG_PATH = os.getenv("RULECFG_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config(path: str) -> dict:
    """Load the settings file with a flat, user-friendly schema."""

    if not os.path.exists(path):
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        config = json.load(handle)
    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return config


_CONFIG = _load_json_config(CONFIG_PATH)

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})

# Output switches for the CLI tables.
_output = _CONFIG.get("output", {})
SHOW_EXPRESSIONS = bool(_output.get("show_expressions", True))
