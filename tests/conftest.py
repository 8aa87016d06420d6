"""Shared pytest fixtures for tree-mirror tests."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import pytest

from tree_mirror import SyncConfig, SyncEngine


def write_tree(root: Path, files: Dict[str, str]) -> None:
    """Create ``files`` (relative posix path -> text content) under root."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def read_tree(root: Path) -> Dict[str, str]:
    """Return every file below root as relative posix path -> text content."""
    return {
        p.relative_to(root).as_posix(): p.read_text()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def logged_actions(caplog, action: str, level: int = logging.INFO):
    """Records emitted through log_action with the given action and level."""
    return [
        r
        for r in caplog.records
        if getattr(r, "action", None) == action and r.levelno == level
    ]


@pytest.fixture
def logger():
    """A logger that propagates to the root logger so caplog sees it."""
    lg = logging.getLogger("tree_mirror_tests")
    lg.setLevel(logging.INFO)
    lg.propagate = True
    return lg


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def replica(tmp_path):
    path = tmp_path / "replica"
    path.mkdir()
    return path


@pytest.fixture
def make_engine(source, replica, logger, tmp_path):
    """Factory fixture building a SyncEngine over the source/replica fixtures."""

    def _make(**overrides) -> SyncEngine:
        defaults = {
            "source_dir": source,
            "replica_dir": replica,
            "interval_sec": 1,
            "overwrite": True,
            "log_file": tmp_path / "sync.log",
        }
        defaults.update(overrides)
        return SyncEngine(SyncConfig(**defaults), logger)

    return _make
