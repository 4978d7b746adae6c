"""The migration manifest: the plan of record for one run.

Line-oriented, pipe-delimited text. Comments (``#``) and blank lines are
ignored. Header records come first:

    TARGET_DIR|/Users/me/Documents
    SOURCE_DIRS|/Users/me/Desktop '/Users/me/Old Stuff'
    GENERATED|2026-01-16_14-30-45

followed by one record per scanned file:

    PLANNED|/Users/me/Desktop/a.pdf|/Users/me/Documents/Documents/a.pdf|
    CONFLICT|/Users/me/Old Stuff/a.pdf|/Users/me/Documents/Documents/a.pdf|Conflicts with: ...

Inside a field a backslash escapes ``\\``, ``|``, ``n`` and ``r`` so any
literal path survives a round trip. Source directories are shell-quoted.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, TextIO

from .errors import ManifestFormatError

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_ESCAPES = {"\\": "\\\\", "|": "\\|", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "|": "|", "n": "\n", "r": "\r"}


class PlanStatus(Enum):
    """Disposition of one manifest entry."""

    PLANNED = "PLANNED"
    CONFLICT = "CONFLICT"
    DUPLICATE = "DUPLICATE"
    LARGE = "LARGE"


@dataclass(frozen=True)
class PlanEntry:
    """One manifest row describing a single file's disposition."""

    status: PlanStatus
    source: Path
    destination: Path
    notes: str = ""


def get_timestamp(moment: datetime | None = None) -> str:
    """Filename-safe timestamp, e.g. ``2026-01-16_14-30-45``."""
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


def escape_field(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def split_fields(line: str) -> list[str]:
    """Split a record on unescaped pipes and undo field escaping."""
    fields: list[str] = []
    current: list[str] = []
    chars = iter(line)
    for ch in chars:
        if ch == "\\":
            escaped = next(chars, "")
            current.append(_UNESCAPES.get(escaped, escaped))
        elif ch == "|":
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
    fields.append("".join(current))
    return fields


def join_fields(values: Iterable[str]) -> str:
    return "|".join(escape_field(value) for value in values)


@dataclass
class Manifest:
    """Ordered plan entries plus run metadata."""

    target_dir: Path
    source_dirs: list[Path]
    generated: str = field(default_factory=get_timestamp)
    entries: list[PlanEntry] = field(default_factory=list)

    def append(self, entry: PlanEntry) -> None:
        self.entries.append(entry)

    def planned(self) -> list[PlanEntry]:
        """Entries that the forward procedure acts on, in manifest order."""
        return [entry for entry in self.entries if entry.status == PlanStatus.PLANNED]

    def count(self, status: PlanStatus) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    def to_text(self) -> str:
        """Render the manifest in its on-disk form."""
        rule = "# " + "=" * 76
        lines = [
            rule,
            "# FILE REORGANIZATION MANIFEST",
            f"# Generated: {self.generated}",
            rule,
            "#",
            "# This manifest documents all planned file moves.",
            "# Review carefully before executing.",
            "#",
            "# FORMAT: STATUS | SOURCE | DESTINATION | NOTES",
            "#",
            "# STATUSES:",
            "#   PLANNED    - Move is planned and ready to execute",
            "#   CONFLICT   - Another file already claims this destination",
            "#   DUPLICATE  - Content duplicate of another file",
            "#   LARGE      - File exceeds size threshold",
            "#",
            rule,
            "",
            join_fields(["TARGET_DIR", str(self.target_dir)]),
            join_fields(
                ["SOURCE_DIRS", " ".join(shlex.quote(str(path)) for path in self.source_dirs)]
            ),
            join_fields(["GENERATED", self.generated]),
            "",
            rule,
            "# PLANNED MOVES",
            rule,
            "",
        ]
        for entry in self.entries:
            lines.append(
                join_fields(
                    [entry.status.value, str(entry.source), str(entry.destination), entry.notes]
                )
            )
        return "\n".join(lines) + "\n"

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> Manifest:
        """Parse manifest text, line by line."""
        target_dir: Path | None = None
        source_dirs: list[Path] = []
        generated = ""
        entries: list[PlanEntry] = []

        for number, raw in enumerate(lines, 1):
            line = raw.rstrip("\r\n")
            if not line.strip() or line.startswith("#"):
                continue

            fields = split_fields(line)
            kind = fields[0]
            if kind == "TARGET_DIR":
                target_dir = Path(_field(fields, 1, number))
            elif kind == "SOURCE_DIRS":
                try:
                    source_dirs = [Path(p) for p in shlex.split(_field(fields, 1, number))]
                except ValueError as e:
                    raise ManifestFormatError(f"bad SOURCE_DIRS value: {e}", number) from None
            elif kind == "GENERATED":
                generated = _field(fields, 1, number)
            else:
                try:
                    status = PlanStatus(kind)
                except ValueError:
                    raise ManifestFormatError(f"unknown record type {kind!r}", number) from None
                if len(fields) < 3:
                    raise ManifestFormatError("expected STATUS|SOURCE|DESTINATION|NOTES", number)
                entries.append(
                    PlanEntry(
                        status=status,
                        source=Path(fields[1]),
                        destination=Path(fields[2]),
                        notes="|".join(fields[3:]),
                    )
                )

        if target_dir is None:
            raise ManifestFormatError("missing TARGET_DIR header")
        return cls(
            target_dir=target_dir,
            source_dirs=source_dirs,
            generated=generated,
            entries=entries,
        )

    @classmethod
    def from_text(cls, text: str) -> Manifest:
        return cls.from_lines(text.split("\n"))

    @classmethod
    def read(cls, path: Path) -> Manifest:
        with open(path, encoding="utf-8", newline="") as f:
            return cls.from_lines(f)

    def write(self, directory: Path) -> Path:
        """Write to a new ``manifest_<timestamp>.txt``; never overwrites."""
        path, handle = create_artifact(directory, "manifest", self.generated, ".txt")
        with handle:
            handle.write(self.to_text())
        return path


def _field(fields: list[str], index: int, line_number: int) -> str:
    if len(fields) <= index:
        raise ManifestFormatError(f"{fields[0]} record has no value", line_number)
    return fields[index]


def create_artifact(directory: Path, prefix: str, stamp: str, suffix: str) -> tuple[Path, TextIO]:
    """Open a fresh ``<prefix>_<stamp><suffix>`` for writing.

    An existing file is never reused: ``-1``, ``-2``... is appended to the
    stem until exclusive creation succeeds.
    """
    directory.mkdir(parents=True, exist_ok=True)
    attempt = 0
    while True:
        tag = f"-{attempt}" if attempt else ""
        path = directory / f"{prefix}_{stamp}{tag}{suffix}"
        try:
            return path, open(path, "x", encoding="utf-8", newline="\n")
        except FileExistsError:
            attempt += 1
