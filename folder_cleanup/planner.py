"""Plan building: one manifest entry per scanned file.

The first file to claim a destination is PLANNED; every later claimant of
the same destination becomes a CONFLICT naming the first. Size and
duplicate findings are recorded as notes and never change the status.
Existing files at the destination are not checked here; that happens at
commit time.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import CleanupConfig
from .console import Logger, format_bytes
from .detector import Analysis, DuplicateReport, analyze
from .errors import InvalidRootError
from .manifest import Manifest, PlanEntry, PlanStatus, get_timestamp
from .rules import Resolver, load_rules
from .scanner import ScanResult, is_protected, scan


@dataclass
class PlanResult:
    """A freshly built manifest and the analysis it was built from."""

    manifest: Manifest
    analysis: Analysis


def validate_target(target: str | Path) -> Path:
    """Resolve the target root; it may not exist yet but must not be protected."""
    path = Path(target).expanduser().resolve()
    if path.exists() and not path.is_dir():
        raise InvalidRootError(f"Target is not a directory: {path}")
    if is_protected(path):
        raise InvalidRootError(f"Cannot operate on system directory: {path}")
    return path


class PlanBuilder:
    """Turns scanned records into an ordered manifest."""

    def __init__(
        self,
        resolver: Resolver,
        config: CleanupConfig | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.resolver = resolver
        self.config = config or CleanupConfig()
        self.logger = logger or Logger(self.config.verbosity)

    def build(
        self,
        source_roots: Iterable[str | Path],
        scan_result: ScanResult | None = None,
        duplicates: DuplicateReport | None = None,
    ) -> Manifest:
        """Build a new manifest for the source roots.

        A scan result from an earlier analyze step can be passed in to
        avoid walking the trees twice.
        """
        if scan_result is None:
            scan_result = scan(
                source_roots, self.config, self.logger, skip=[self.resolver.target_root]
            )

        manifest = Manifest(
            target_dir=self.resolver.target_root,
            source_dirs=list(scan_result.roots),
            generated=get_timestamp(),
        )
        originals = duplicates.first_copies() if duplicates else {}
        claims: dict[Path, Path] = {}

        for record in scan_result.records:
            destination = self.resolver.resolve(record)
            status = PlanStatus.PLANNED
            notes: list[str] = []

            first = claims.get(destination)
            if first is not None:
                status = PlanStatus.CONFLICT
                notes.append(f"Conflicts with: {first}")
                self.logger.verbose(f"Conflict: {record.path} -> {destination}")
            else:
                claims[destination] = record.path

            if record.size > self.config.large_file_threshold:
                notes.append(f"Large file: {format_bytes(record.size)}")
            if record.path in originals:
                notes.append(f"Duplicate of: {originals[record.path]}")

            manifest.append(PlanEntry(status, record.path, destination, "; ".join(notes)))

        self.logger.success(
            f"Manifest built with {len(manifest.entries)} entries "
            f"({manifest.count(PlanStatus.PLANNED)} planned, "
            f"{manifest.count(PlanStatus.CONFLICT)} conflicts)"
        )
        return manifest


def plan_migration(
    source_roots: Iterable[str | Path],
    target_root: str | Path,
    config: CleanupConfig | None = None,
    logger: Logger | None = None,
) -> PlanResult:
    """Analyze the sources and build a manifest using the configured rules."""
    config = config or CleanupConfig()
    logger = logger or Logger(config.verbosity)

    target = validate_target(target_root)
    rules = load_rules(config)
    source_roots = list(source_roots)

    analysis = analyze(source_roots, config, logger, skip=[target])
    builder = PlanBuilder(Resolver(target, rules), config, logger)
    manifest = builder.build(source_roots, analysis.scan, analysis.duplicates)
    return PlanResult(manifest=manifest, analysis=analysis)
