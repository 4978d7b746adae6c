"""folder-cleanup - consolidate files from several folders into one tree.

Usage:
    folder-cleanup --phase PHASE [options]

Phases:
    analyze   Scan source folders, find duplicates, conflicts, large files
    plan      Write a manifest plus execute/reversal scripts (default)
    execute   Preview the planned moves, or perform them with --execute
    reverse   Preview the undo, or move files back with --execute
    verify    Check that every planned destination exists
    reclaim   Remove empty directories left in the source folders

Options:
    --sources DIRS        Comma-separated source directories
    --target DIR          Target directory for consolidated files
    --output DIR          Directory for manifests and scripts (default: .)
    --rules PATH          Pipe-delimited mapping rules (pattern|destination)
    --manifest PATH       Manifest to execute (default: newest in --output)
    --backup PATH         Backup archive to check before executing
    --threshold BYTES     Large-file threshold (default: 104857600)
    --execute             Actually move files (default is a dry run)
    --dry-run             Force a preview even if configured otherwise
    --yes                 Confirm without prompting
    --skip-backup-check   Do not require a backup archive
    --reclaim             After executing, remove empty source directories
    --config PATH         Configuration file (default: .cleanuprc.yaml)
    --verbose / --quiet   More or less output
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

from . import __version__
from .config import CleanupConfig, load_config
from .console import Colors, Logger, format_bytes
from .detector import Analysis, analyze
from .errors import ApprovalRequiredError, CleanupError
from .planner import plan_migration
from .procedures import (
    FORWARD,
    REVERSE,
    SKIP_BACKUP,
    Approval,
    print_preview,
    request_approval,
    write_artifacts,
)
from .supervisor import ExecutionSupervisor, locate_manifest

PHASES = ["analyze", "plan", "execute", "reverse", "verify", "reclaim"]

# Phases that touch the filesystem unless running as a dry run
MUTATING_PHASES = ("execute", "reverse", "reclaim")

# How many groups each analysis section lists before summarizing the rest
SHOW_LIMIT = 10


def _split_sources(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def print_analysis(analysis: Analysis, config: CleanupConfig) -> None:
    """Human-readable analysis summary."""
    scan = analysis.scan
    print(f"\n{Colors.BOLD}ANALYSIS SUMMARY{Colors.RESET}")
    print(f"Files found:      {len(scan.records)}")
    print(f"Directories:      {scan.directories_scanned}")
    print(f"Total size:       {format_bytes(scan.total_size)}")
    if scan.issues:
        print(f"Unreadable:       {len(scan.issues)}")

    print(f"\n{Colors.BOLD}Large Files (>{format_bytes(config.large_file_threshold)}):{Colors.RESET}")
    if not analysis.large_files:
        print("  None found")
    for record in analysis.large_files:
        print(f"  - {format_bytes(record.size)}: {record.path}")

    print(f"\n{Colors.BOLD}Duplicate Files (identical content):{Colors.RESET}")
    groups = list(analysis.duplicates.groups.items())
    if not groups:
        print("  None found")
    for number, (digest, paths) in enumerate(groups[:SHOW_LIMIT], 1):
        print(f"  Duplicate group {number} ({digest[:8]}...):")
        for path in paths:
            print(f"    - {path}")
    if len(groups) > SHOW_LIMIT:
        print(f"  ... and {len(groups) - SHOW_LIMIT} more duplicate groups")

    print(f"\n{Colors.BOLD}Filename Conflicts (same name, different sources):{Colors.RESET}")
    conflicts = list(analysis.conflicts.items())
    if not conflicts:
        print("  None found")
    for name, records in conflicts[:SHOW_LIMIT]:
        print(f'  "{name}" found in:')
        for record in records:
            print(f"    - {record.path.parent}")
    if len(conflicts) > SHOW_LIMIT:
        print(f"  ... and {len(conflicts) - SHOW_LIMIT} more conflicts")


def _approval(action: str, args: argparse.Namespace, prompt: str | None = None) -> Approval:
    if args.yes:
        return Approval.grant(action)
    if prompt:
        return request_approval(action, prompt, accept=("y", "yes"))
    return request_approval(action)


def run_analyze(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    analysis = analyze(_split_sources(args.sources), config, logger)
    if config.verbosity >= 1:
        print_analysis(analysis, config)
    return 0


def run_plan(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    if not args.target:
        raise CleanupError("Target directory required. Use --target dir")
    result = plan_migration(_split_sources(args.sources), args.target, config, logger)
    logger.header("Generating artifacts")
    artifacts = write_artifacts(result.manifest, config.output_dir, logger)

    logger.info("\nNext steps:")
    logger.info("  1. Review the manifest to ensure moves are correct")
    logger.info(f"  2. Preview:  folder-cleanup --phase execute --manifest {artifacts.manifest_path}")
    logger.info(f"  3. Execute:  folder-cleanup --phase execute --manifest {artifacts.manifest_path} --execute")
    return 0


def _supervisor(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> ExecutionSupervisor:
    manifest_path = args.manifest or locate_manifest(config.output_dir)
    logger.verbose(f"Manifest: {manifest_path}")
    return ExecutionSupervisor(manifest_path, config, logger, backup_path=args.backup)


def run_execute(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    supervisor = _supervisor(args, config, logger)

    if config.dry_run:
        logger.header("Execute (dry run)")
        print_preview(supervisor.forward().preview())
        logger.info("\nThis was a dry run. No files were moved. Use --execute to move them.")
        return 0

    logger.header("Execute")
    backup_override = None
    if config.require_backup and supervisor.find_backup() is None:
        logger.warn("No backup archive found")
        backup_override = _approval(SKIP_BACKUP, args, "No backup found. Continue anyway? [y/N]: ")

    approval = _approval(FORWARD, args)
    report = supervisor.commit(approval, backup_override)

    if args.reclaim:
        supervisor.reclaim_empty_dirs()
    return 1 if report.result.failed else 0


def run_reverse(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    supervisor = _supervisor(args, config, logger)
    procedure = supervisor.reverse()

    if config.dry_run:
        logger.header("Reverse (dry run)")
        print_preview(procedure.preview())
        return 0

    logger.header("Reverse")
    result = procedure.commit(_approval(REVERSE, args))
    logger.info(
        f"\n{Colors.BOLD}Summary:{Colors.RESET} {len(result.moved)} restored, "
        f"{len(result.skipped)} skipped, {len(result.failed)} failed"
    )
    return 1 if result.failed else 0


def run_verify(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    report = _supervisor(args, config, logger).verify()
    return 0 if report.ok else 1


def run_reclaim(args: argparse.Namespace, config: CleanupConfig, logger: Logger) -> int:
    _supervisor(args, config, logger).reclaim_empty_dirs(dry_run=config.dry_run)
    return 0


RUNNERS = {
    "analyze": run_analyze,
    "plan": run_plan,
    "execute": run_execute,
    "reverse": run_reverse,
    "verify": run_verify,
    "reclaim": run_reclaim,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="folder-cleanup",
        description="Consolidate files from several folders into one tree, safely",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  folder-cleanup --phase analyze --sources ~/Desktop,~/Downloads
  folder-cleanup --phase plan --sources ~/Desktop,~/Downloads --target ~/Documents
  folder-cleanup --phase execute                  # Preview newest manifest
  folder-cleanup --phase execute --execute        # Move files
  folder-cleanup --phase reverse --execute        # Undo
""",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--phase", choices=PHASES, default="plan", help="Phase to run (default: plan)")
    parser.add_argument("--config", type=Path, help="Path to configuration file")
    parser.add_argument("--sources", help="Comma-separated source directories")
    parser.add_argument("--target", help="Target directory for consolidated files")
    parser.add_argument("--output", type=Path, help="Directory for manifests and scripts")
    parser.add_argument("--rules", type=Path, help="Mapping rule file (pattern|destination)")
    parser.add_argument("--manifest", type=Path, help="Manifest to act on")
    parser.add_argument("--backup", type=Path, help="Backup archive to verify before executing")
    parser.add_argument("--threshold", type=int, help="Large-file threshold in bytes")
    parser.add_argument("--execute", action="store_true", help="Actually perform the moves")
    parser.add_argument("--dry-run", action="store_true", help="Preview only")
    parser.add_argument("--yes", "-y", action="store_true", help="Confirm without prompting")
    parser.add_argument(
        "--skip-backup-check",
        dest="skip_backup_check",
        action="store_true",
        help="Do not require a backup archive before executing",
    )
    parser.add_argument(
        "--reclaim",
        action="store_true",
        help="Remove empty source directories after executing",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress all output except errors")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CleanupConfig:
    """Load file and environment config, then apply CLI overrides."""
    config = load_config(args.config)

    if args.output:
        config.output_dir = args.output.expanduser()
    if args.rules:
        config.rules_file = args.rules.expanduser()
    if args.threshold is not None:
        config.large_file_threshold = args.threshold
    if args.execute:
        config.dry_run = False
    if args.dry_run:
        config.dry_run = True
    if args.skip_backup_check:
        config.require_backup = False
    if args.verbose:
        config.verbosity = 2
    if args.quiet:
        config.verbosity = 0
    return config


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except FileNotFoundError as e:
        print(f"{Colors.RED}Error:{Colors.RESET} {e}", file=sys.stderr)
        return 1
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        print(f"{Colors.RED}Error:{Colors.RESET} Invalid config file: {e}", file=sys.stderr)
        return 1
    except CleanupError as e:
        print(f"{Colors.RED}Error:{Colors.RESET} {e}", file=sys.stderr)
        return 1

    logger = Logger(config.verbosity, dry_run=config.dry_run and args.phase in MUTATING_PHASES)
    try:
        return RUNNERS[args.phase](args, config, logger)
    except ApprovalRequiredError as e:
        logger.error(str(e))
        return 1
    except CleanupError as e:
        print(f"{Colors.RED}Error:{Colors.RESET} {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"{Colors.RED}Fatal error:{Colors.RESET} {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
