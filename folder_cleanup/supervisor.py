"""Execution supervision: pre-flight checks, commit, verification, cleanup."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import CleanupConfig
from .console import Colors, Logger
from .errors import BackupMissingError, CleanupError
from .manifest import Manifest
from .scanner import should_exclude_dir
from .procedures import (
    SKIP_BACKUP,
    Approval,
    ForwardProcedure,
    ProcedureResult,
    ReverseProcedure,
)


@dataclass
class VerificationReport:
    """Existence check of every PLANNED destination after a commit."""

    expected: int = 0
    found: int = 0
    missing: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


@dataclass
class ExecutionReport:
    """Everything a commit run produced."""

    planned: int
    backup: Path | None
    result: ProcedureResult
    verification: VerificationReport


def find_latest(directory: Path, prefix: str, suffix: str) -> Path | None:
    """Most recently modified ``<prefix>_*<suffix>`` in a directory."""
    candidates = [p for p in directory.glob(f"{prefix}_*{suffix}") if p.is_file()]
    if not candidates:
        return None
    return max(candidates, key=lambda p: (p.stat().st_mtime, p.name))


class ExecutionSupervisor:
    """Runs a manifest's forward procedure with safety checks around it.

    The manifest on disk stays the source of truth: it is read when the
    supervisor is created and read again for verification.
    """

    def __init__(
        self,
        manifest_path: Path,
        config: CleanupConfig | None = None,
        logger: Logger | None = None,
        backup_path: Path | None = None,
    ) -> None:
        self.manifest_path = Path(manifest_path)
        self.config = config or CleanupConfig()
        self.logger = logger or Logger(self.config.verbosity)
        self.backup_path = backup_path
        self.manifest = Manifest.read(self.manifest_path)

    @property
    def log_dir(self) -> Path:
        return self.manifest_path.parent

    def forward(self) -> ForwardProcedure:
        return ForwardProcedure(self.manifest, self.log_dir, self.logger)

    def reverse(self) -> ReverseProcedure:
        return ReverseProcedure(self.manifest, self.log_dir, self.logger)

    def find_backup(self) -> Path | None:
        """Locate the backup archive for this manifest, if any.

        An explicit backup path wins; otherwise a ``backup_<timestamp>``
        archive matching the manifest is preferred over any other
        ``backup_*.tar.gz`` beside it.
        """
        if self.backup_path is not None:
            return self.backup_path if self.backup_path.is_file() else None

        matching = self.log_dir / f"backup_{self.manifest.generated}.tar.gz"
        if self.manifest.generated and matching.is_file():
            return matching
        return find_latest(self.log_dir, "backup", ".tar.gz")

    def preflight(self, backup_override: Approval | None = None) -> Path | None:
        """Check for a backup and report the planned count.

        Without a backup (and with backups required) the run is aborted
        unless an approval to skip the backup is supplied.
        """
        backup = None
        if self.config.require_backup:
            backup = self.find_backup()
            if backup is not None:
                self.logger.success(f"Backup verified: {backup}")
            elif isinstance(backup_override, Approval) and backup_override.action == SKIP_BACKUP:
                self.logger.warn("No backup found; continuing on operator override")
            else:
                raise BackupMissingError(
                    f"No backup found for {self.manifest_path.name}. Create a backup first."
                )

        self.logger.info(f"Manifest contains {len(self.manifest.planned())} planned moves")
        return backup

    def commit(
        self,
        approval: Approval,
        backup_override: Approval | None = None,
    ) -> ExecutionReport:
        """Pre-flight, run the forward procedure, then verify."""
        backup = self.preflight(backup_override)
        procedure = self.forward()
        result = procedure.commit(approval)
        self._summarize(result)

        verification = self.verify()
        return ExecutionReport(
            planned=len(procedure.steps()),
            backup=backup,
            result=result,
            verification=verification,
        )

    def verify(self) -> VerificationReport:
        """Re-read the manifest and check every PLANNED destination exists.

        Missing files are reported as a warning; nothing is rolled back.
        """
        manifest = Manifest.read(self.manifest_path)
        report = VerificationReport()

        for entry in manifest.planned():
            report.expected += 1
            if entry.destination.is_file():
                report.found += 1
            else:
                report.missing.append(entry.destination)
                self.logger.warn(f"Missing at destination: {entry.destination}")

        self.logger.header("Verification Results")
        self.logger.info(f"  Expected: {report.expected} files")
        self.logger.info(f"  Found:    {report.found} files")
        self.logger.info(f"  Missing:  {len(report.missing)} files")
        if report.ok:
            self.logger.success("All files moved successfully!")
        else:
            self.logger.warn("Some files were not moved. Check the log for details.")
        return report

    def _reclaimable_dirs(self, root: Path) -> list[Path]:
        """Directories below root that may be removed, deepest first.

        Excluded directories (VCS metadata, dependency caches), symlinks and
        the target tree are never entered, so nothing inside them is listed.
        """
        target = self.manifest.target_dir
        found: list[Path] = []
        for dirpath, dirnames, _ in os.walk(root):
            path = Path(dirpath)
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not should_exclude_dir(name, self.config)
                and not (path / name).is_symlink()
                and path / name != target
            )
            if path != root:
                found.append(path)
        # Pre-order reversed puts every directory after its descendants
        return list(reversed(found))

    def reclaim_empty_dirs(self, dry_run: bool = False) -> list[Path]:
        """Remove empty directories below each source root.

        Repeats until nothing more can be removed, since deleting a
        directory may empty its parent. The source roots themselves are
        kept, and excluded directories such as ``.git`` are left untouched
        along with everything inside them. In dry-run mode nothing is
        deleted and the directories that would be removed are returned.
        """
        removed: list[Path] = []
        roots = [root for root in self.manifest.source_dirs if root.is_dir()]

        if dry_run:
            would_remove: set[Path] = set()
            for root in roots:
                for path in self._reclaimable_dirs(root):
                    try:
                        children = list(path.iterdir())
                    except OSError:
                        continue
                    if all(child in would_remove for child in children):
                        self.logger.info(f"Would remove: {path}")
                        would_remove.add(path)
                        removed.append(path)
            return removed

        changed = True
        while changed:
            changed = False
            for root in roots:
                for path in self._reclaimable_dirs(root):
                    try:
                        if any(path.iterdir()):
                            continue
                        path.rmdir()
                    except OSError as e:
                        self.logger.verbose(f"Could not remove {path}: {e}")
                        continue
                    self.logger.info(f"Removed empty directory: {path}")
                    removed.append(path)
                    changed = True

        self.logger.success(f"Cleanup complete ({len(removed)} directories removed)")
        return removed

    def _summarize(self, result: ProcedureResult) -> None:
        parts = [f"{len(result.moved)} moved"]
        if result.skipped:
            parts.append(f"{len(result.skipped)} skipped")
        if result.exists:
            parts.append(f"{len(result.exists)} already at destination")
        if result.failed:
            parts.append(f"{len(result.failed)} failed")
        self.logger.info(f"\n{Colors.BOLD}Summary:{Colors.RESET} {', '.join(parts)}")
        if result.log_path:
            self.logger.info(f"Log file: {result.log_path}")


def locate_manifest(output_dir: Path) -> Path:
    """Newest manifest in the output directory."""
    latest = find_latest(output_dir, "manifest", ".txt")
    if latest is None:
        raise CleanupError(f"No manifest found in {output_dir}. Run the plan phase first.")
    return latest
