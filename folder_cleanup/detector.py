"""Duplicate and naming-conflict detection over scanned records."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .config import CleanupConfig
from .console import Logger, format_bytes
from .scanner import FileRecord, ScanResult, scan

PROGRESS_INTERVAL = 500


@dataclass
class DuplicateReport:
    """Content-hash groupings for one run.

    ``groups`` maps a digest to the paths sharing it, in discovery order,
    and only holds digests with two or more members. ``failures`` lists
    files whose contents could not be hashed.
    """

    groups: dict[str, list[Path]] = field(default_factory=dict)
    failures: list[Path] = field(default_factory=list)
    hashed: int = 0

    @property
    def duplicate_files(self) -> int:
        """Number of files that are redundant copies of another file."""
        return sum(len(paths) - 1 for paths in self.groups.values())

    def first_copies(self) -> dict[Path, Path]:
        """Map every later group member to the first member of its group."""
        originals: dict[Path, Path] = {}
        for paths in self.groups.values():
            for path in paths[1:]:
                originals[path] = paths[0]
        return originals


@dataclass
class Analysis:
    """Everything the analyze phase learns about the source trees."""

    scan: ScanResult
    duplicates: DuplicateReport
    conflicts: dict[str, list[FileRecord]]
    large_files: list[FileRecord]


def find_duplicates(
    records: Iterable[FileRecord],
    logger: Logger | None = None,
) -> DuplicateReport:
    """Group records by content hash.

    Only files that share their size with another file are hashed; a file
    with a unique size cannot have a byte-identical twin.
    """
    logger = logger or Logger(0)
    records = list(records)
    report = DuplicateReport()

    by_size: dict[int, int] = {}
    for record in records:
        by_size[record.size] = by_size.get(record.size, 0) + 1

    candidates = [record for record in records if by_size[record.size] > 1]
    logger.verbose(f"Hashing {len(candidates)} of {len(records)} files")

    by_hash: dict[str, list[Path]] = {}
    for checked, record in enumerate(candidates, 1):
        digest = record.content_hash
        if digest is None:
            logger.warn(f"Could not hash: {record.path}")
            report.failures.append(record.path)
            continue
        report.hashed += 1
        by_hash.setdefault(digest, []).append(record.path)
        if checked % PROGRESS_INTERVAL == 0:
            logger.verbose(f"  Progress: {checked} / {len(candidates)} files checked")

    report.groups = {digest: paths for digest, paths in by_hash.items() if len(paths) > 1}
    return report


def find_conflicts(records: Iterable[FileRecord]) -> dict[str, list[FileRecord]]:
    """Group records sharing a base filename across more than one source root."""
    by_name: dict[str, list[FileRecord]] = {}
    for record in records:
        by_name.setdefault(record.name, []).append(record)

    return {
        name: members
        for name, members in by_name.items()
        if len({member.source_root for member in members}) > 1
    }


def find_large_files(records: Iterable[FileRecord], threshold: int) -> list[FileRecord]:
    """Return records above the threshold, largest first."""
    large = [record for record in records if record.size > threshold]
    return sorted(large, key=lambda record: record.size, reverse=True)


def analyze(
    root_paths: Iterable[str | Path],
    config: CleanupConfig | None = None,
    logger: Logger | None = None,
    skip: Iterable[Path] = (),
) -> Analysis:
    """Scan the source roots and report duplicates, conflicts and large files."""
    config = config or CleanupConfig()
    logger = logger or Logger(config.verbosity)

    logger.header("Analyzing source directories")
    result = scan(root_paths, config, logger, skip)

    logger.info("Checking for duplicate files (this may take a moment)...")
    duplicates = find_duplicates(result.records, logger)
    conflicts = find_conflicts(result.records)
    large_files = find_large_files(result.records, config.large_file_threshold)

    logger.info(
        f"{len(result.records)} files, {result.directories_scanned} directories, "
        f"{format_bytes(result.total_size)}"
    )
    if duplicates.groups:
        logger.warn(f"{len(duplicates.groups)} duplicate group(s)")
    if conflicts:
        logger.warn(f"{len(conflicts)} filename conflict(s) across source directories")
    if large_files:
        logger.info(f"{len(large_files)} large file(s)")

    return Analysis(
        scan=result,
        duplicates=duplicates,
        conflicts=conflicts,
        large_files=large_files,
    )
