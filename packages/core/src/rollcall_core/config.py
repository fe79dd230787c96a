import os
from pathlib import Path
from typing import Optional

import yaml

from rollcall_core.exceptions import ConfigError
from rollcall_core.models import SensitivityRule

DEFAULT_CONFIG: dict = {
    "rollup_title_prefix": "Rollup of",
    "max_fetch_workers": 4,
    "github_timeout": 15,
    "store": "sqlite",  # "sqlite" or "gist"
    "store_path": ".rollcall.db",
    "gist_id": None,
    "mentions": {},  # path prefix -> {"message": str, "cc": [str]}
}


def load_config(config_path: str = ".rollcall.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .rollcall.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "mentions": dict(DEFAULT_CONFIG["mentions"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["github_token"] = os.environ.get("ROLLCALL_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN")

    return config


def load_rules(config: dict) -> dict[str, SensitivityRule]:
    """
    Build the sensitivity rules from the ``mentions`` section.

    Rule order follows the config file and decides the order of blocks in the
    posted comment. A rule body may be omitted (``compiler:``) to get the
    default message with nobody cc'd.
    """
    mentions = config.get("mentions") or {}
    if not isinstance(mentions, dict):
        raise ConfigError("'mentions' must be a mapping of path prefixes to rules.")

    rules: dict[str, SensitivityRule] = {}
    for raw_key, entry in mentions.items():
        key = str(raw_key).rstrip("/")
        if not key or key.startswith("/"):
            raise ConfigError(f"Invalid mentions path: {raw_key!r} (use a repository-relative path)")
        if key in rules:
            raise ConfigError(f"Duplicate mentions path: {raw_key!r} repeats {key!r}")
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ConfigError(f"mentions.{raw_key} must be a mapping with 'message' and/or 'cc'.")

        message = entry.get("message")
        if message is not None and not isinstance(message, str):
            raise ConfigError(f"mentions.{raw_key}.message must be a string.")

        cc = entry.get("cc") or []
        if isinstance(cc, str):
            cc = [cc]
        if not isinstance(cc, list) or not all(isinstance(c, str) and c.strip() for c in cc):
            raise ConfigError(f"mentions.{raw_key}.cc must be a list of GitHub handles.")

        rules[key] = SensitivityRule(key=key, message=message, cc=tuple(c.strip() for c in cc))

    return rules
