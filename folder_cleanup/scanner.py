"""Inventory scanning of source directory trees.

Walks each source root depth-first in name order so the same filesystem
state always yields the same records in the same order. Nothing is
modified. Unreadable directories and files are reported as issues and left
out; invalid roots fail before any traversal starts.
"""

from __future__ import annotations

import fnmatch
import hashlib
import os
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Iterable

from .config import CleanupConfig
from .console import Logger
from .errors import InvalidRootError

# Trees that are never scanned or written to
PROTECTED_TREES = [
    "/System",
    "/Library",
    "/Applications",
    "/usr",
    "/bin",
    "/sbin",
    "/etc",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/private/etc",
    "~/Library",
]

# Directories that are protected themselves but may hold user data below
PROTECTED_EXACT = ["/", "/var", "/private", "/home", "/Users"]

HASH_CHUNK_SIZE = 8192


def compute_file_hash(file_path: Path, algorithm: str = "sha256") -> str:
    """Compute hash of file contents for duplicate detection."""
    hash_func = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        # Read in chunks to handle large files
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            hash_func.update(chunk)
    return hash_func.hexdigest()


@dataclass(frozen=True)
class FileRecord:
    """A file discovered during scanning."""

    path: Path
    size: int
    source_root: Path
    hash_algorithm: str = field(default="sha256", compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.path.name

    @cached_property
    def content_hash(self) -> str | None:
        """Digest of the file contents, computed on first access.

        Returns None when the file cannot be read; such files never take
        part in duplicate grouping.
        """
        try:
            return compute_file_hash(self.path, self.hash_algorithm)
        except OSError:
            return None


@dataclass
class ScanIssue:
    """An entry that was skipped because it could not be read."""

    path: Path
    reason: str


@dataclass
class ScanResult:
    """Result of scanning one or more source roots."""

    roots: list[Path] = field(default_factory=list)
    records: list[FileRecord] = field(default_factory=list)
    issues: list[ScanIssue] = field(default_factory=list)
    directories_scanned: int = 0

    @property
    def total_size(self) -> int:
        return sum(record.size for record in self.records)


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path))


def is_protected(path: Path) -> bool:
    """Check if a path is a system location that must never be touched."""
    resolved = path.expanduser().resolve()
    for exact in PROTECTED_EXACT:
        if resolved == _expand(exact):
            return True
    for tree in PROTECTED_TREES:
        protected = _expand(tree)
        if resolved == protected or protected in resolved.parents:
            return True
    return False


def validate_roots(root_paths: Iterable[str | Path]) -> list[Path]:
    """Resolve source roots and reject invalid ones.

    Raises InvalidRootError for a root that does not exist, is not a
    directory, is a protected system location, or overlaps another root.
    Duplicate roots are collapsed.
    """
    roots: list[Path] = []
    for raw in root_paths:
        root = Path(raw).expanduser()
        if not root.exists():
            raise InvalidRootError(f"Path does not exist: {root}")
        if not root.is_dir():
            raise InvalidRootError(f"Path is not a directory: {root}")
        if is_protected(root):
            raise InvalidRootError(f"Cannot operate on system directory: {root.resolve()}")
        root = root.resolve()
        if root not in roots:
            roots.append(root)

    if not roots:
        raise InvalidRootError("At least one source directory is required")

    for root in roots:
        for other in roots:
            if other != root and other in root.parents:
                raise InvalidRootError(f"Source directories overlap: {other} contains {root}")

    return roots


def should_exclude_file(filename: str, config: CleanupConfig) -> bool:
    """Check if a file matches one of the exclude patterns."""
    return any(fnmatch.fnmatchcase(filename, pattern) for pattern in config.exclude_files)


def should_exclude_dir(dirname: str, config: CleanupConfig) -> bool:
    """Check if a directory should be excluded from scanning."""
    lower_dirname = dirname.lower()
    return any(d.lower() == lower_dirname for d in config.exclude_dirs)


def _walk(
    directory: Path,
    root: Path,
    config: CleanupConfig,
    result: ScanResult,
    skip: set[Path],
    logger: Logger,
) -> None:
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        result.issues.append(ScanIssue(directory, f"unreadable directory: {e.strerror or e}"))
        logger.warn(f"Cannot read directory: {directory}")
        return

    result.directories_scanned += 1

    for entry in entries:
        if entry.is_symlink():
            logger.skip(f"Skipping symlink: {entry}")
            continue

        if entry.is_dir():
            if should_exclude_dir(entry.name, config) or entry in skip:
                logger.skip(f"Skipping directory: {entry}")
                continue
            _walk(entry, root, config, result, skip, logger)
            continue

        if not entry.is_file():
            continue
        if should_exclude_file(entry.name, config):
            logger.skip(f"Skipping system file: {entry}")
            continue

        try:
            size = entry.stat().st_size
        except OSError as e:
            result.issues.append(ScanIssue(entry, f"cannot stat: {e.strerror or e}"))
            logger.warn(f"Cannot stat file: {entry}")
            continue
        if not os.access(entry, os.R_OK):
            result.issues.append(ScanIssue(entry, "permission denied"))
            logger.warn(f"Unreadable file: {entry}")
            continue

        result.records.append(
            FileRecord(
                path=entry,
                size=size,
                source_root=root,
                hash_algorithm=config.hash_algorithm,
            )
        )


def scan(
    root_paths: Iterable[str | Path],
    config: CleanupConfig | None = None,
    logger: Logger | None = None,
    skip: Iterable[Path] = (),
) -> ScanResult:
    """Scan source roots and return every eligible file in discovery order.

    Directories listed in ``skip`` (typically the migration target when it
    lives inside a source) are not descended into.
    """
    config = config or CleanupConfig()
    logger = logger or Logger(config.verbosity)

    roots = validate_roots(root_paths)
    skip_set = {Path(p).expanduser().resolve() for p in skip}
    result = ScanResult(roots=roots)

    for root in roots:
        before = len(result.records)
        logger.verbose(f"Scanning: {root}")
        _walk(root, root, config, result, skip_set, logger)
        logger.success(f"Found {len(result.records) - before} files in {root.name or root}")

    return result
