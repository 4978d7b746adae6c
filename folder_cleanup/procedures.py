"""Forward and reverse procedures derived from a manifest.

Both procedures act only on PLANNED entries. Each can preview (no
mutation) or commit. Committing requires an ``Approval`` for that exact
action, obtained from an interactive prompt or granted explicitly by the
caller; without one the mutating path raises ApprovalRequiredError.

Each procedure also renders itself as a standalone bash script so the plan
can be reviewed, stored and re-run outside Python:

    ./execute_<timestamp>.sh              # Dry run (preview)
    ./execute_<timestamp>.sh --execute    # Actually move files
"""

from __future__ import annotations

import shlex
import shutil
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, TextIO

from .console import Colors, Logger
from .errors import ApprovalRequiredError
from .manifest import Manifest, PlanEntry, create_artifact, escape_field, get_timestamp

FORWARD = "forward"
REVERSE = "reverse"
SKIP_BACKUP = "skip-backup"

SCRIPT_MODE = 0o755


class MoveStatus(Enum):
    """Outcome of one procedure step."""

    MOVED = "moved"
    SKIPPED = "skipped"
    FAILED = "failed"
    EXISTS = "exists"


@dataclass
class FileOperation:
    """Result of a single file operation."""

    source: Path
    destination: Path
    status: MoveStatus
    reason: str | None = None


@dataclass
class ProcedureResult:
    """Outcome of one procedure commit."""

    moved: list[FileOperation] = field(default_factory=list)
    skipped: list[FileOperation] = field(default_factory=list)
    failed: list[FileOperation] = field(default_factory=list)
    exists: list[FileOperation] = field(default_factory=list)
    log_path: Path | None = None

    def record(self, operation: FileOperation) -> None:
        bucket = {
            MoveStatus.MOVED: self.moved,
            MoveStatus.SKIPPED: self.skipped,
            MoveStatus.FAILED: self.failed,
            MoveStatus.EXISTS: self.exists,
        }[operation.status]
        bucket.append(operation)

    @property
    def total_processed(self) -> int:
        return len(self.moved) + len(self.skipped) + len(self.failed) + len(self.exists)


@dataclass(frozen=True)
class Approval:
    """Explicit permission to run one mutating action."""

    action: str
    granted_at: str = field(default_factory=get_timestamp)

    @classmethod
    def grant(cls, action: str) -> Approval:
        """Approve without prompting, e.g. for ``--yes`` on the command line."""
        return cls(action)


def request_approval(
    action: str,
    prompt: str = "Are you sure? Type 'yes' to proceed: ",
    accept: tuple[str, ...] = ("yes",),
    input_func: Callable[[str], str] = input,
    interactive: bool | None = None,
) -> Approval:
    """Ask the operator to confirm an action.

    Fails closed: without a terminal, on end of input, or on any answer
    other than the accepted ones, ApprovalRequiredError is raised.
    """
    if interactive is None:
        interactive = sys.stdin.isatty()
    if not interactive:
        raise ApprovalRequiredError(
            f"Confirmation for '{action}' needs an interactive terminal or an explicit --yes"
        )
    try:
        answer = input_func(prompt).strip().lower()
    except (EOFError, KeyboardInterrupt):
        raise ApprovalRequiredError(f"No confirmation given for '{action}'") from None
    if answer not in accept:
        raise ApprovalRequiredError(f"Aborted: '{action}' was not confirmed")
    return Approval(action)


def _check_approval(approval: object, action: str) -> None:
    if not isinstance(approval, Approval) or approval.action != action:
        raise ApprovalRequiredError(f"Committing '{action}' requires an approval for it")


class RunLog:
    """Timestamped, append-only log for one commit; always a new file."""

    def __init__(self, directory: Path, prefix: str) -> None:
        self.path, self._handle = create_artifact(directory, prefix, get_timestamp(), ".txt")

    def write(self, message: str) -> None:
        self._handle.write(f"{datetime.now():%Y-%m-%d %H:%M:%S} | {message}\n")
        self._handle.flush()

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> RunLog:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class ForwardProcedure:
    """Moves every PLANNED source to its destination."""

    action = FORWARD
    log_prefix = "execution_log"

    def __init__(
        self,
        manifest: Manifest,
        log_dir: Path | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.manifest = manifest
        self.log_dir = log_dir or Path(".")
        self.logger = logger or Logger(0)

    def steps(self) -> list[PlanEntry]:
        return self.manifest.planned()

    def preview(self) -> list[str]:
        """One line per PLANNED entry; touches nothing."""
        lines = []
        for entry in self.steps():
            if entry.source.is_file():
                lines.append(f"[DRY RUN] Would move: {entry.source} -> {entry.destination}")
            else:
                lines.append(f"[DRY RUN] Would skip (not found): {entry.source}")
        return lines

    def commit(self, approval: Approval) -> ProcedureResult:
        """Perform the moves. Safe to re-run: moved sources are SKIPPED."""
        _check_approval(approval, self.action)
        result = ProcedureResult()

        with RunLog(self.log_dir, self.log_prefix) as log:
            result.log_path = log.path
            for entry in self.steps():
                operation = self._move(entry)
                result.record(operation)
                log.write(_log_line(operation))
                self._report(operation)

        return result

    def _move(self, entry: PlanEntry) -> FileOperation:
        source, destination = entry.source, entry.destination

        if not source.is_file():
            return FileOperation(source, destination, MoveStatus.SKIPPED, "not found")
        if destination.exists() or destination.is_symlink():
            return FileOperation(source, destination, MoveStatus.EXISTS, "destination exists")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(destination))
        except OSError as e:
            return FileOperation(source, destination, MoveStatus.FAILED, str(e))
        return FileOperation(source, destination, MoveStatus.MOVED)

    def _report(self, operation: FileOperation) -> None:
        if operation.status == MoveStatus.MOVED:
            self.logger.success(f"Moved: {operation.source.name} → {operation.destination}")
        elif operation.status == MoveStatus.SKIPPED:
            self.logger.warn(f"Skipped (not found): {operation.source}")
        elif operation.status == MoveStatus.EXISTS:
            self.logger.warn(f"Destination exists, not moved: {operation.destination}")
        else:
            self.logger.error(f"Failed: {operation.source} - {operation.reason}")

    def render_script(self) -> str:
        """Bash rendition of this procedure."""
        calls = [
            f"move_file {shlex.quote(str(e.source))} {shlex.quote(str(e.destination))}"
            for e in self.steps()
        ]
        return _render(FORWARD_TEMPLATE, self.manifest, calls)


class ReverseProcedure(ForwardProcedure):
    """Moves PLANNED destinations back to their sources, last entry first."""

    action = REVERSE
    log_prefix = "reversal_log"

    def steps(self) -> list[PlanEntry]:
        return list(reversed(self.manifest.planned()))

    def preview(self) -> list[str]:
        return [
            f"[DRY RUN] Would restore: {entry.destination} -> {entry.source}"
            for entry in self.steps()
            if entry.destination.is_file()
        ]

    def commit(self, approval: Approval) -> ProcedureResult:
        """Restore moved files. Entries missing at the destination are skipped quietly."""
        _check_approval(approval, self.action)
        result = ProcedureResult()

        with RunLog(self.log_dir, self.log_prefix) as log:
            result.log_path = log.path
            for entry in self.steps():
                if not entry.destination.is_file():
                    self.logger.skip(f"Not at destination: {entry.destination}")
                    continue
                operation = self._restore(entry)
                result.record(operation)
                log.write(_log_line(operation, restoring=True))
                self._report(operation)

        return result

    def _restore(self, entry: PlanEntry) -> FileOperation:
        # Reported from the file's point of view: it travels destination -> source
        current, original = entry.destination, entry.source

        if original.exists() or original.is_symlink():
            return FileOperation(current, original, MoveStatus.SKIPPED, "original location occupied")

        try:
            original.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(current), str(original))
        except OSError as e:
            return FileOperation(current, original, MoveStatus.FAILED, str(e))
        return FileOperation(current, original, MoveStatus.MOVED)

    def _report(self, operation: FileOperation) -> None:
        if operation.status == MoveStatus.MOVED:
            self.logger.success(f"Restored: {operation.destination}")
        elif operation.status == MoveStatus.SKIPPED:
            self.logger.warn(f"Original location occupied: {operation.destination}")
        else:
            self.logger.error(f"Failed to restore {operation.source}: {operation.reason}")

    def render_script(self) -> str:
        calls = [
            f"restore_file {shlex.quote(str(e.source))} {shlex.quote(str(e.destination))}"
            for e in self.steps()
        ]
        return _render(REVERSE_TEMPLATE, self.manifest, calls)


def _log_line(operation: FileOperation, restoring: bool = False) -> str:
    label = "RESTORED" if restoring and operation.status == MoveStatus.MOVED else operation.status.name
    line = f"{label}: {operation.source} -> {operation.destination}"
    if operation.reason:
        line += f" ({operation.reason})"
    return line


@dataclass
class Artifacts:
    """Files written for one planning run."""

    manifest_path: Path
    execute_path: Path
    reversal_path: Path


def _write_script(directory: Path, prefix: str, stamp: str, text: str) -> Path:
    path, handle = create_artifact(directory, prefix, stamp, ".sh")
    with handle:
        handle.write(text)
    path.chmod(SCRIPT_MODE)
    return path


def write_artifacts(manifest: Manifest, output_dir: Path, logger: Logger | None = None) -> Artifacts:
    """Write the manifest plus its forward and reverse scripts."""
    logger = logger or Logger(0)
    manifest_path = manifest.write(output_dir)
    execute_path = _write_script(
        output_dir, "execute", manifest.generated, ForwardProcedure(manifest).render_script()
    )
    reversal_path = _write_script(
        output_dir, "reversal", manifest.generated, ReverseProcedure(manifest).render_script()
    )
    logger.success(f"Manifest:  {manifest_path}")
    logger.success(f"Execute:   {execute_path}")
    logger.success(f"Reversal:  {reversal_path}")
    return Artifacts(manifest_path, execute_path, reversal_path)


def print_preview(lines: list[str], stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    for line in lines:
        print(f"{Colors.CYAN}{line}{Colors.RESET}", file=stream)


def _render(template: str, manifest: Manifest, calls: list[str]) -> str:
    head, tail = template.split("@CALLS@")
    head = head.replace("@GENERATED@", escape_field(manifest.generated)).replace(
        "@TARGET@", escape_field(str(manifest.target_dir))
    )
    body = "\n".join(calls) if calls else "# Nothing planned"
    return head + body + tail


_SCRIPT_PRELUDE = r"""
set -u

DRY_RUN=1
if [[ "${1:-}" == "--execute" ]]
then
    DRY_RUN=0
    echo "*** EXECUTE MODE - @MODE_TEXT@ ***"
    echo ""
    confirm=""
    read -r -p "Are you sure? Type 'yes' to proceed: " confirm || true
    if [[ "$confirm" != "yes" ]]
    then
        echo "Aborted."
        exit 1
    fi
else
    echo "*** DRY RUN MODE - No files will be moved ***"
    echo "Run with --execute to perform actual moves"
    echo ""
fi

moved=0
skipped=0
failed=0
exists=0

log_dir="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"
log_file="${log_dir}/@LOG_PREFIX@_$(date +%Y-%m-%d_%H-%M-%S)_$$.txt"

log()
{
    echo "$1"
    if [[ "$DRY_RUN" -eq 0 ]]
    then
        echo "$(date '+%Y-%m-%d %H:%M:%S') | $1" >> "$log_file"
    fi
}
"""

_SCRIPT_SUMMARY = r"""
echo ""
echo "=============================================="
echo "@DONE_TEXT@"
echo "=============================================="
echo ""

if [[ "$DRY_RUN" -eq 1 ]]
then
    echo "This was a DRY RUN. No files were moved."
    echo "Run with --execute to perform actual moves."
else
    echo "Moved:   $moved files"
    echo "Skipped: $skipped files"
    echo "Exists:  $exists files"
    echo "Failed:  $failed files"
    echo ""
    echo "Log file: $log_file"
fi

[[ "$failed" -eq 0 ]]
"""

FORWARD_TEMPLATE = (
    r"""#!/bin/bash
# ============================================================================
# FILE:        execute script (auto-generated)
# MANIFEST:    @GENERATED@
# TARGET:      @TARGET@
# PURPOSE:     Move files into the target tree as planned in the manifest.
#
# USAGE:       ./execute_@GENERATED@.sh              # Dry run (preview)
#              ./execute_@GENERATED@.sh --execute    # Actually move files
#
# NOTE:        Safe to re-run; files already moved are reported as SKIPPED.
#              Existing destination files are never overwritten.
# ============================================================================
"""
    + _SCRIPT_PRELUDE.replace("@MODE_TEXT@", "Files will be moved").replace(
        "@LOG_PREFIX@", "execution_log"
    )
    + r"""
move_file()
{
    local source_path="$1"
    local dest_path="$2"

    if [[ ! -f "$source_path" ]]
    then
        if [[ "$DRY_RUN" -eq 1 ]]
        then
            echo "[DRY RUN] Would skip (not found): $source_path"
        else
            log "SKIPPED (not found): $source_path"
        fi
        skipped=$((skipped + 1))
        return
    fi

    if [[ "$DRY_RUN" -eq 1 ]]
    then
        echo "[DRY RUN] Would move: $source_path -> $dest_path"
        return
    fi

    if [[ -e "$dest_path" || -L "$dest_path" ]]
    then
        log "EXISTS: $source_path -> $dest_path"
        exists=$((exists + 1))
        return
    fi

    if mkdir -p "$(dirname "$dest_path")" && mv -- "$source_path" "$dest_path"
    then
        log "MOVED: $source_path -> $dest_path"
        moved=$((moved + 1))
    else
        log "FAILED: $source_path -> $dest_path"
        failed=$((failed + 1))
    fi
}

# ============================================================================
# FILE MOVES
# ============================================================================

@CALLS@
"""
    + _SCRIPT_SUMMARY.replace("@DONE_TEXT@", "EXECUTION COMPLETE")
)

REVERSE_TEMPLATE = (
    r"""#!/bin/bash
# ============================================================================
# FILE:        reversal script (auto-generated)
# MANIFEST:    @GENERATED@
# TARGET:      @TARGET@
# PURPOSE:     Undo the file reorganization, last move first.
#
# USAGE:       ./reversal_@GENERATED@.sh              # Dry run (preview)
#              ./reversal_@GENERATED@.sh --execute    # Move files back
#
# NOTE:        Files missing from their destination are skipped quietly.
#              An occupied original location is never overwritten.
# ============================================================================
"""
    + _SCRIPT_PRELUDE.replace("@MODE_TEXT@", "Files will be moved back").replace(
        "@LOG_PREFIX@", "reversal_log"
    )
    + r"""
restore_file()
{
    local source_path="$1"
    local dest_path="$2"

    if [[ ! -f "$dest_path" ]]
    then
        return
    fi

    if [[ "$DRY_RUN" -eq 1 ]]
    then
        echo "[DRY RUN] Would restore: $dest_path -> $source_path"
        return
    fi

    if [[ -e "$source_path" || -L "$source_path" ]]
    then
        log "SKIPPED (original location occupied): $dest_path -> $source_path"
        skipped=$((skipped + 1))
        return
    fi

    if mkdir -p "$(dirname "$source_path")" && mv -- "$dest_path" "$source_path"
    then
        log "RESTORED: $dest_path -> $source_path"
        moved=$((moved + 1))
    else
        log "FAILED: $dest_path -> $source_path"
        failed=$((failed + 1))
    fi
}

# ============================================================================
# FILE RESTORES (reverse manifest order)
# ============================================================================

@CALLS@
"""
    + _SCRIPT_SUMMARY.replace("@DONE_TEXT@", "REVERSAL COMPLETE")
)
