"""Shared fixtures for the task-file store tests."""

import sys
from pathlib import Path

import pytest

# Ensure the project root (kanban_server.py, taskfiles/) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskfiles.board import CONFIG_FILE  # noqa: E402
from taskfiles.facade import StoreFacade  # noqa: E402

BOARD = "backlog: Backlog\nin_progress: In Progress wip=2\ndone: Done\n"


@pytest.fixture()
def board_root(tmp_path: Path) -> Path:
    """A board root with three columns and no tasks."""
    root = tmp_path / "board"
    root.mkdir()
    (root / CONFIG_FILE).write_text(BOARD, encoding="utf-8")
    for folder in ("backlog", "in_progress", "done"):
        (root / folder).mkdir()
    return root


@pytest.fixture()
def facade(board_root: Path):
    f = StoreFacade(board_root)
    f.bootstrap()
    yield f
    f.close()


@pytest.fixture()
def store(facade: StoreFacade):
    return facade.tasks
