"""Tests for the procedures module."""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from folder_cleanup.config import CleanupConfig
from folder_cleanup.errors import ApprovalRequiredError
from folder_cleanup.manifest import Manifest
from folder_cleanup.manifest import PlanEntry
from folder_cleanup.manifest import PlanStatus
from folder_cleanup.planner import plan_migration
from folder_cleanup.procedures import Approval
from folder_cleanup.procedures import FORWARD
from folder_cleanup.procedures import ForwardProcedure
from folder_cleanup.procedures import MoveStatus
from folder_cleanup.procedures import request_approval
from folder_cleanup.procedures import REVERSE
from folder_cleanup.procedures import ReverseProcedure
from folder_cleanup.procedures import write_artifacts

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


def snapshot(root: Path) -> dict[str, bytes]:
    """Map every file below root to its contents."""
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob('*'))
        if path.is_file()
    }


def _manifest(tmp_path: Path, *names: str) -> Manifest:
    manifest = Manifest(
        target_dir=tmp_path / 'target',
        source_dirs=[tmp_path / 'source'],
        generated='2026-01-16_14-30-45',
    )
    for name in names:
        manifest.append(PlanEntry(
            PlanStatus.PLANNED,
            tmp_path / 'source' / name,
            tmp_path / 'target' / 'Documents' / name,
        ))
    return manifest


class TestRequestApproval:
    """Tests for the interactive approval gate."""

    def test_accepted(self) -> None:
        """Test that typing yes grants the action."""
        approval = request_approval(FORWARD, input_func=lambda _: 'YES ', interactive=True)

        assert approval.action == FORWARD

    def test_rejected_answer(self) -> None:
        """Test that any other answer fails closed."""
        with pytest.raises(ApprovalRequiredError):
            request_approval(FORWARD, input_func=lambda _: 'y', interactive=True)

    def test_non_interactive(self) -> None:
        """Test that no terminal means no approval."""
        def never_called(prompt: str) -> str:
            raise AssertionError('prompted without a terminal')

        with pytest.raises(ApprovalRequiredError, match='--yes'):
            request_approval(FORWARD, input_func=never_called, interactive=False)

    def test_end_of_input(self) -> None:
        """Test that EOF at the prompt fails closed."""
        def eof(prompt: str) -> str:
            raise EOFError

        with pytest.raises(ApprovalRequiredError):
            request_approval(FORWARD, input_func=eof, interactive=True)

    def test_custom_answers(self) -> None:
        """Test accepting short answers for y/N prompts."""
        approval = request_approval(
            REVERSE, 'Continue? [y/N]: ', accept=('y', 'yes'), input_func=lambda _: 'y', interactive=True,
        )

        assert approval.action == REVERSE


class TestForwardProcedure:
    """Tests for the forward procedure."""

    def test_preview_does_not_touch_files(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that preview lists moves and skips without mutating anything."""
        make_file('source/a.txt')
        manifest = _manifest(tmp_path, 'a.txt', 'gone.txt')
        before = snapshot(tmp_path)

        lines = ForwardProcedure(manifest).preview()

        assert lines == [
            f"[DRY RUN] Would move: {tmp_path / 'source' / 'a.txt'} -> {tmp_path / 'target' / 'Documents' / 'a.txt'}",
            f"[DRY RUN] Would skip (not found): {tmp_path / 'source' / 'gone.txt'}",
        ]
        assert snapshot(tmp_path) == before

    def test_commit_requires_approval(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that commit refuses to run without a matching approval."""
        make_file('source/a.txt')
        procedure = ForwardProcedure(_manifest(tmp_path, 'a.txt'), tmp_path)

        with pytest.raises(ApprovalRequiredError):
            procedure.commit(None)  # type: ignore[arg-type]
        with pytest.raises(ApprovalRequiredError):
            procedure.commit(Approval.grant(REVERSE))

        assert (tmp_path / 'source' / 'a.txt').exists()

    def test_commit_moves_files(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that planned files are moved and logged."""
        make_file('source/a.txt', 'alpha')
        manifest = _manifest(tmp_path, 'a.txt')
        manifest.append(PlanEntry(
            PlanStatus.CONFLICT, tmp_path / 'source' / 'a.txt', tmp_path / 'elsewhere.txt',
        ))

        result = ForwardProcedure(manifest, tmp_path / 'logs').commit(Approval.grant(FORWARD))

        assert (tmp_path / 'target' / 'Documents' / 'a.txt').read_text() == 'alpha'
        assert not (tmp_path / 'source' / 'a.txt').exists()
        assert not (tmp_path / 'elsewhere.txt').exists()
        assert len(result.moved) == 1
        assert result.total_processed == 1
        assert result.log_path is not None
        assert result.log_path.parent == tmp_path / 'logs'
        assert 'MOVED: ' in result.log_path.read_text()

    def test_missing_source_is_skipped(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that a vanished source does not stop the run."""
        make_file('source/b.txt')
        manifest = _manifest(tmp_path, 'a.txt', 'b.txt')

        result = ForwardProcedure(manifest, tmp_path).commit(Approval.grant(FORWARD))

        assert [op.status for op in result.skipped] == [MoveStatus.SKIPPED]
        assert result.skipped[0].source.name == 'a.txt'
        assert (tmp_path / 'target' / 'Documents' / 'b.txt').exists()

    def test_existing_destination_not_overwritten(
        self, tmp_path: Path, make_file: Callable[..., Path],
    ) -> None:
        """Test that a file already at the destination is left alone."""
        make_file('source/a.txt', 'new')
        make_file('target/Documents/a.txt', 'old')

        result = ForwardProcedure(_manifest(tmp_path, 'a.txt'), tmp_path).commit(Approval.grant(FORWARD))

        assert [op.status for op in result.exists] == [MoveStatus.EXISTS]
        assert (tmp_path / 'target' / 'Documents' / 'a.txt').read_text() == 'old'
        assert (tmp_path / 'source' / 'a.txt').read_text() == 'new'

    def test_rerun_skips_moved_files(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that committing twice is harmless."""
        make_file('source/a.txt')
        procedure = ForwardProcedure(_manifest(tmp_path, 'a.txt'), tmp_path)
        procedure.commit(Approval.grant(FORWARD))

        result = procedure.commit(Approval.grant(FORWARD))

        assert len(result.skipped) == 1
        assert not result.moved
        assert not result.failed

    def test_move_failure_is_recorded(
        self, tmp_path: Path, make_file: Callable[..., Path], monkeypatch: MonkeyPatch,
    ) -> None:
        """Test that an OS error fails one step and the run continues."""
        make_file('source/a.txt')
        make_file('source/b.txt')
        real_move = shutil.move

        def flaky_move(src: str, dst: str) -> str:
            if src.endswith('a.txt'):
                raise PermissionError('denied')
            return real_move(src, dst)

        monkeypatch.setattr('folder_cleanup.procedures.shutil.move', flaky_move)

        result = ForwardProcedure(_manifest(tmp_path, 'a.txt', 'b.txt'), tmp_path).commit(
            Approval.grant(FORWARD),
        )

        assert [op.source.name for op in result.failed] == ['a.txt']
        assert result.failed[0].reason == 'denied'
        assert [op.source.name for op in result.moved] == ['b.txt']

    def test_render_script(self, tmp_path: Path) -> None:
        """Test that paths are shell-quoted and rendering is stable."""
        manifest = _manifest(tmp_path, "it's a file.txt")

        script = ForwardProcedure(manifest).render_script()

        assert script.startswith('#!/bin/bash')
        assert shlex.quote(str(tmp_path / 'source' / "it's a file.txt")) in script
        assert '--execute' in script
        assert ForwardProcedure(manifest).render_script() == script


class TestReverseProcedure:
    """Tests for the reverse procedure."""

    def test_round_trip_restores_sources(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that forward then reverse leaves the sources byte-identical."""
        make_file('desktop/notes.txt', 'desktop notes')
        make_file('desktop/photos/trip.jpg', 'jpeg')
        make_file('downloads/notes.txt', 'download notes')
        make_file('downloads/setup.dmg', 'disk image')
        before = {
            'desktop': snapshot(tmp_path / 'desktop'),
            'downloads': snapshot(tmp_path / 'downloads'),
        }
        result = plan_migration(
            [tmp_path / 'desktop', tmp_path / 'downloads'], tmp_path / 'target', CleanupConfig(verbosity=0),
        )
        manifest = result.manifest

        ForwardProcedure(manifest, tmp_path).commit(Approval.grant(FORWARD))
        assert (tmp_path / 'downloads' / 'notes.txt').exists()
        assert not (tmp_path / 'desktop' / 'notes.txt').exists()

        restored = ReverseProcedure(manifest, tmp_path).commit(Approval.grant(REVERSE))

        assert len(restored.moved) == 3
        assert snapshot(tmp_path / 'desktop') == before['desktop']
        assert snapshot(tmp_path / 'downloads') == before['downloads']
        assert snapshot(tmp_path / 'target') == {}

    def test_reverse_order(self, tmp_path: Path) -> None:
        """Test that steps run last entry first."""
        procedure = ReverseProcedure(_manifest(tmp_path, 'a.txt', 'b.txt', 'c.txt'))

        assert [e.source.name for e in procedure.steps()] == ['c.txt', 'b.txt', 'a.txt']

    def test_missing_destination_skipped_quietly(self, tmp_path: Path) -> None:
        """Test that entries that never moved are not counted."""
        result = ReverseProcedure(_manifest(tmp_path, 'a.txt'), tmp_path).commit(Approval.grant(REVERSE))

        assert result.total_processed == 0

    def test_occupied_original_not_overwritten(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test that a new file at the original location is preserved."""
        make_file('source/a.txt', 'newcomer')
        make_file('target/Documents/a.txt', 'moved earlier')

        result = ReverseProcedure(_manifest(tmp_path, 'a.txt'), tmp_path).commit(Approval.grant(REVERSE))

        assert result.skipped[0].reason == 'original location occupied'
        assert (tmp_path / 'source' / 'a.txt').read_text() == 'newcomer'
        assert (tmp_path / 'target' / 'Documents' / 'a.txt').read_text() == 'moved earlier'

    def test_commit_requires_reverse_approval(self, tmp_path: Path) -> None:
        """Test that a forward approval cannot drive a reversal."""
        with pytest.raises(ApprovalRequiredError):
            ReverseProcedure(_manifest(tmp_path, 'a.txt'), tmp_path).commit(Approval.grant(FORWARD))


class TestWriteArtifacts:
    """Tests for artifact generation."""

    def test_writes_three_artifacts(self, tmp_path: Path) -> None:
        """Test that the manifest and both scripts are written."""
        artifacts = write_artifacts(_manifest(tmp_path, 'a.txt'), tmp_path / 'out')

        assert artifacts.manifest_path.name == 'manifest_2026-01-16_14-30-45.txt'
        assert artifacts.execute_path.name == 'execute_2026-01-16_14-30-45.sh'
        assert artifacts.reversal_path.name == 'reversal_2026-01-16_14-30-45.sh'
        assert os.access(artifacts.execute_path, os.X_OK)
        assert os.access(artifacts.reversal_path, os.X_OK)

    @pytest.mark.skipif(shutil.which('bash') is None, reason='bash not available')
    def test_scripts_run(self, tmp_path: Path, make_file: Callable[..., Path]) -> None:
        """Test the generated scripts under bash: preview, execute, reverse."""
        make_file('source/my notes.txt', 'hello')
        make_file('source/keep.txt', 'keep')
        manifest = _manifest(tmp_path, 'my notes.txt')
        artifacts = write_artifacts(manifest, tmp_path / 'out')
        source = tmp_path / 'source' / 'my notes.txt'
        moved = tmp_path / 'target' / 'Documents' / 'my notes.txt'

        preview = subprocess.run(
            ['bash', str(artifacts.execute_path)], capture_output=True, text=True, check=True,
        )
        assert 'Would move' in preview.stdout
        assert source.exists()

        aborted = subprocess.run(
            ['bash', str(artifacts.execute_path), '--execute'], input='no\n', capture_output=True, text=True,
        )
        assert aborted.returncode == 1
        assert source.exists()

        subprocess.run(
            ['bash', str(artifacts.execute_path), '--execute'], input='yes\n', capture_output=True, text=True,
            check=True,
        )
        assert moved.read_text() == 'hello'
        assert not source.exists()

        subprocess.run(
            ['bash', str(artifacts.reversal_path), '--execute'], input='yes\n', capture_output=True, text=True,
            check=True,
        )
        assert source.read_text() == 'hello'
        assert not moved.exists()
        assert (tmp_path / 'source' / 'keep.txt').read_text() == 'keep'
