"""Test configuration for pytest."""
from __future__ import annotations

import os
from collections.abc import Callable
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest


@pytest.fixture(autouse=True)
def change_to_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Change to temporary directory for each test."""
    original_dir = os.getcwd()
    monkeypatch.chdir(tmp_path)
    yield
    os.chdir(original_dir)


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[..., Path]:
    """Create a file below tmp_path, making parent directories as needed."""
    def _make(relative: str, content: str = 'content') -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _make
