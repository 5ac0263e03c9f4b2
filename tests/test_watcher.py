"""
Tests for the external change handler. Events are fed in directly, the same
shape watchdog delivers them, so no observer thread is involved.
"""
import time
from types import SimpleNamespace

from taskfiles.board import CONFIG_FILE
from taskfiles.events import ChangeFeed
from taskfiles.schema import NewTask
from taskfiles.taskfile import RecentWrites
from taskfiles.watcher import ExternalChangeHandler


def _event(event_type, path, dest="", is_directory=False):
    return SimpleNamespace(
        event_type=event_type, src_path=str(path), dest_path=str(dest) if dest else "",
        is_directory=is_directory,
    )


def _handler(root, debounce_ms=0):
    feed = ChangeFeed()
    return ExternalChangeHandler(root, feed, RecentWrites(), debounce_ms), feed


def test_task_file_edit_bumps(board_root):
    handler, feed = _handler(board_root)
    handler.on_any_event(_event("modified", board_root / "backlog" / "x.md"))
    assert feed.version == 1


def test_board_file_edit_bumps(board_root):
    handler, feed = _handler(board_root)
    handler.on_any_event(_event("modified", board_root / CONFIG_FILE))
    assert feed.version == 1


def test_move_into_board_counts_dest(board_root, tmp_path):
    handler, feed = _handler(board_root)
    handler.on_any_event(_event("moved", tmp_path / "elsewhere.md", board_root / "done" / "x.md"))
    assert feed.version == 1


def test_irrelevant_events_ignored(board_root):
    handler, feed = _handler(board_root)
    handler.on_any_event(_event("modified", board_root / "backlog" / "notes.txt"))
    handler.on_any_event(_event("modified", board_root / "backlog" / ".x.md.1234abcd.tmp"))
    handler.on_any_event(_event("modified", board_root / "top-level.md"))
    handler.on_any_event(_event("modified", board_root / "backlog" / "deep" / "x.md"))
    handler.on_any_event(_event("created", board_root / "backlog", is_directory=True))
    handler.on_any_event(_event("opened", board_root / "backlog" / "x.md"))
    handler.on_any_event(_event("closed", board_root / "backlog" / "x.md"))
    assert feed.version == 0


def test_own_writes_ignored(facade, board_root):
    handler = ExternalChangeHandler(board_root, facade.feed, facade.board.recent, 0)
    task = facade.create_task(NewTask(title="Mine"))
    assert facade.version == 1

    handler.on_any_event(_event("created", board_root / "backlog" / f"{task.id}.md"))
    handler.on_any_event(_event("modified", board_root / CONFIG_FILE))
    assert facade.version == 2

    facade.board.save(facade.get_board(), tasks=facade.tasks)
    handler.on_any_event(_event("modified", board_root / CONFIG_FILE))
    assert facade.version == 2


def test_bursts_are_debounced(board_root):
    handler, feed = _handler(board_root, debounce_ms=50)
    for _ in range(5):
        handler.on_any_event(_event("modified", board_root / "backlog" / "x.md"))
    assert feed.version == 0
    time.sleep(0.3)
    assert feed.version == 1


def test_cancel_drops_pending_bump(board_root):
    handler, feed = _handler(board_root, debounce_ms=100)
    handler.on_any_event(_event("deleted", board_root / "done" / "x.md"))
    handler.cancel()
    time.sleep(0.25)
    assert feed.version == 0
