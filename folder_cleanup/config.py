"""Configuration loading for folder_cleanup.

Values are merged with precedence: defaults < config file < environment
< command-line flags.

Config file (first one found in the working directory):

    .cleanuprc.yaml, .cleanuprc.yml, .cleanuprc.json, cleanup.config.yaml

    large_file_threshold: 104857600
    dry_run: true
    require_backup: true
    output_dir: ~/cleanup-runs
    exclude_files: [".DS_Store", "._*"]
    exclude_dirs: [".git", "node_modules"]
    rules_file: ~/my-rules.txt
    rules:
      - {pattern: "*.pdf", target: "Documents/"}
      - {pattern: "TODO.txt", target: "Inbox/"}

Environment Variables:
    CLEANUP_LARGE_FILE_THRESHOLD   Large-file threshold in bytes
    CLEANUP_DRY_RUN                '0'/'false' to default to commit mode
    CLEANUP_REQUIRE_BACKUP         '0'/'false' to skip the backup check
    CLEANUP_OUTPUT_DIR             Directory for manifests and procedures
    CLEANUP_RULES_FILE             Pipe-delimited mapping rule file
    CLEANUP_VERBOSE                'true' for verbose output
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypedDict, cast

import yaml

from .errors import ConfigError

# Default configuration file names to search for
CONFIG_FILE_NAMES = [
    ".cleanuprc.yaml",
    ".cleanuprc.yml",
    ".cleanuprc.json",
    "cleanup.config.yaml",
]

# 100 MB
DEFAULT_LARGE_FILE_THRESHOLD = 104857600

# System metadata files never worth migrating
DEFAULT_EXCLUDE_FILES = [
    ".DS_Store",
    ".localized",
    "._*",
    "Thumbs.db",
    "desktop.ini",
]

# VCS and dependency-cache directories skipped while scanning
DEFAULT_EXCLUDE_DIRS = [
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
    ".venv",
    "venv",
]

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


class RuleEntryDict(TypedDict):
    """One mapping rule as written in a config file."""

    pattern: str
    target: str


class ConfigDict(TypedDict, total=False):
    """Configuration dictionary type."""

    large_file_threshold: int
    dry_run: bool
    require_backup: bool
    output_dir: str
    exclude_files: list[str]
    exclude_dirs: list[str]
    rules_file: str
    rules: list[RuleEntryDict]
    hash_algorithm: str
    verbosity: int


@dataclass
class CleanupConfig:
    """Read-only settings for one planning or execution run."""

    large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD
    dry_run: bool = True
    require_backup: bool = True
    output_dir: Path = field(default_factory=lambda: Path("."))
    exclude_files: list[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_FILES.copy())
    exclude_dirs: list[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_DIRS.copy())
    rules_file: Path | None = None
    rules: list[RuleEntryDict] = field(default_factory=list)
    hash_algorithm: str = "sha256"
    verbosity: int = 1  # 0=quiet, 1=normal, 2=verbose

    @classmethod
    def from_dict(cls, data: ConfigDict) -> CleanupConfig:
        """Create config from dictionary."""
        config = cls()

        if "large_file_threshold" in data:
            config.large_file_threshold = _to_int(
                data["large_file_threshold"], "large_file_threshold"
            )
        if "dry_run" in data:
            config.dry_run = _to_bool(data["dry_run"], "dry_run")
        if "require_backup" in data:
            config.require_backup = _to_bool(data["require_backup"], "require_backup")
        if "output_dir" in data:
            config.output_dir = Path(data["output_dir"]).expanduser()
        if "exclude_files" in data:
            config.exclude_files = list(data["exclude_files"])
        if "exclude_dirs" in data:
            config.exclude_dirs = list(data["exclude_dirs"])
        if "rules_file" in data:
            config.rules_file = Path(data["rules_file"]).expanduser()
        if "rules" in data:
            for rule in data["rules"]:
                if "pattern" not in rule or "target" not in rule:
                    raise ConfigError(f"Rule needs 'pattern' and 'target': {rule!r}")
            config.rules = list(data["rules"])
        if "hash_algorithm" in data:
            config.hash_algorithm = _to_algorithm(data["hash_algorithm"])
        if "verbosity" in data:
            config.verbosity = _to_int(data["verbosity"], "verbosity")

        return config


def _to_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {number}")
    return number


def _to_algorithm(value: object) -> str:
    name = str(value).strip().lower()
    # shake_* digests need an explicit length and cannot be used here
    if name not in hashlib.algorithms_available or name.startswith("shake_"):
        raise ConfigError(f"hash_algorithm is not a supported digest: {value!r}")
    return name


def _to_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def load_config_file(config_path: Path | None = None) -> ConfigDict:
    """Load configuration from file."""
    if config_path:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        paths = [config_path]
    else:
        paths = [Path(name) for name in CONFIG_FILE_NAMES]

    for path in paths:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
            if not isinstance(data, dict):
                raise ConfigError(f"Config file must contain a mapping: {path}")
            return cast(ConfigDict, data)

    return {}


def load_env_config() -> ConfigDict:
    """Load configuration from environment variables."""
    config: ConfigDict = {}

    if os.environ.get("CLEANUP_LARGE_FILE_THRESHOLD"):
        config["large_file_threshold"] = _to_int(
            os.environ["CLEANUP_LARGE_FILE_THRESHOLD"], "CLEANUP_LARGE_FILE_THRESHOLD"
        )
    if os.environ.get("CLEANUP_DRY_RUN"):
        config["dry_run"] = _to_bool(os.environ["CLEANUP_DRY_RUN"], "CLEANUP_DRY_RUN")
    if os.environ.get("CLEANUP_REQUIRE_BACKUP"):
        config["require_backup"] = _to_bool(
            os.environ["CLEANUP_REQUIRE_BACKUP"], "CLEANUP_REQUIRE_BACKUP"
        )
    if os.environ.get("CLEANUP_OUTPUT_DIR"):
        config["output_dir"] = os.environ["CLEANUP_OUTPUT_DIR"]
    if os.environ.get("CLEANUP_RULES_FILE"):
        config["rules_file"] = os.environ["CLEANUP_RULES_FILE"]
    if os.environ.get("CLEANUP_VERBOSE") == "true":
        config["verbosity"] = 2

    return config


def load_config(config_path: Path | None = None) -> CleanupConfig:
    """Merge file and environment settings into a config object."""
    file_config = load_config_file(config_path)
    env_config = load_env_config()
    merged: ConfigDict = {**file_config, **env_config}
    return CleanupConfig.from_dict(merged)
