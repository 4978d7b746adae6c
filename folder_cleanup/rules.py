"""Mapping rules and destination resolution.

A rule file holds one ``pattern|destination`` pair per line. Blank lines
and lines starting with ``#`` are ignored.

    *.pdf|Documents/
    *.jpg|Media/Images/Photos/
    TODO.txt|Inbox/

Patterns of the form ``*.ext`` match the file extension case-insensitively.
Anything else matches the exact filename, case-sensitively. Rules are tried
in declaration order and the first match wins; a file matching no rule is
placed directly in the target root.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from .config import CleanupConfig
from .errors import RuleFileError
from .scanner import FileRecord

DEFAULT_RULES = """\
# Documents
*.pdf|Documents/
*.doc|Documents/
*.docx|Documents/
*.txt|Documents/
*.pages|Documents/
*.rtf|Documents/

# Spreadsheets
*.xls|Documents/Spreadsheets/
*.xlsx|Documents/Spreadsheets/
*.csv|Archives/Data/
*.numbers|Documents/Spreadsheets/

# Images
*.jpg|Media/Images/Photos/
*.jpeg|Media/Images/Photos/
*.png|Media/Images/
*.gif|Media/Images/
*.heic|Media/Images/Photos/
*.webp|Media/Images/
*.svg|Media/Images/Diagrams/

# Audio
*.mp3|Media/Audio/
*.m4a|Media/Audio/
*.wav|Media/Audio/
*.aac|Media/Audio/
*.flac|Media/Audio/

# Video
*.mp4|Media/Video/
*.mov|Media/Video/
*.avi|Media/Video/
*.mkv|Media/Video/

# Archives
*.zip|Archives/
*.tar|Archives/
*.gz|Archives/
*.dmg|Archives/Software/
*.pkg|Archives/Software/

# Code
*.py|Projects/Code/
*.js|Projects/Code/
*.sh|Projects/Code/
*.html|Projects/Code/
*.css|Projects/Code/

# Fonts
*.ttf|Archives/Fonts/
*.otf|Archives/Fonts/
*.woff|Archives/Fonts/
"""


class PatternKind(Enum):
    """How a rule pattern is compared against a file."""

    EXTENSION = "extension"
    FILENAME = "filename"


def file_extension(filename: str) -> str:
    """Lowercased text after the last dot, or '' when there is none."""
    return Path(filename).suffix[1:].lower()


@dataclass(frozen=True)
class MappingRule:
    """Routes matching files to a folder below the target root."""

    kind: PatternKind
    pattern: str
    destination: str

    @classmethod
    def parse(cls, pattern: str, destination: str) -> MappingRule:
        """Build a rule from a raw pattern such as ``*.pdf`` or ``notes.txt``."""
        pattern = pattern.strip()
        if not pattern:
            raise RuleFileError("Rule pattern must not be empty")
        folder = Path(destination.strip())
        if folder.is_absolute() or ".." in folder.parts:
            raise RuleFileError(f"Rule destination must stay inside the target: {destination!r}")
        if pattern.startswith("*.") and len(pattern) > 2:
            return cls(PatternKind.EXTENSION, pattern[2:].lower(), destination.strip())
        return cls(PatternKind.FILENAME, pattern, destination.strip())

    def matches(self, filename: str) -> bool:
        """Check if this rule matches the given filename."""
        if self.kind == PatternKind.EXTENSION:
            return file_extension(filename) == self.pattern
        return filename == self.pattern

    def __str__(self) -> str:
        prefix = "*." if self.kind == PatternKind.EXTENSION else ""
        return f"{prefix}{self.pattern}|{self.destination}"


def parse_rules(lines: Iterable[str], source: str = "<rules>") -> list[MappingRule]:
    """Parse pipe-delimited rule lines, keeping declaration order."""
    rules: list[MappingRule] = []
    for number, raw in enumerate(lines, 1):
        line = raw.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if "|" not in line:
            raise RuleFileError(f"{source}:{number}: expected 'pattern|destination', got {line!r}")
        pattern, destination = line.split("|", 1)
        try:
            rules.append(MappingRule.parse(pattern, destination))
        except RuleFileError as e:
            raise RuleFileError(f"{source}:{number}: {e}") from None
    return rules


def default_rules() -> list[MappingRule]:
    return parse_rules(DEFAULT_RULES.splitlines(), "<default rules>")


def load_rules_file(path: Path) -> list[MappingRule]:
    """Load rules from a file; these replace the defaults entirely."""
    if not path.is_file():
        raise RuleFileError(f"Rules file not found: {path}")
    with open(path, encoding="utf-8") as f:
        return parse_rules(f, str(path))


def load_rules(config: CleanupConfig) -> list[MappingRule]:
    """Pick the rule set for a run: rules file, then config rules, then defaults."""
    if config.rules_file:
        return load_rules_file(config.rules_file)
    if config.rules:
        return [MappingRule.parse(rule["pattern"], rule["target"]) for rule in config.rules]
    return default_rules()


def resolve(record: FileRecord | Path, target_root: Path, rules: Iterable[MappingRule]) -> Path:
    """Return the destination path for one file."""
    filename = record.name
    for rule in rules:
        if rule.matches(filename):
            return target_root / rule.destination / filename
    return target_root / filename


class Resolver:
    """Binds a target root to an ordered rule set."""

    def __init__(self, target_root: Path, rules: list[MappingRule] | None = None) -> None:
        self.target_root = Path(target_root)
        self.rules = default_rules() if rules is None else list(rules)

    def resolve(self, record: FileRecord | Path) -> Path:
        return resolve(record, self.target_root, self.rules)
