"""
External change watcher.

Task files are plain text, so people edit them with other tools too. This
watches the board root with watchdog and bumps the change feed when a task
file or the board file changes underneath us, so long-poll clients refresh.

Writes made by the store itself are already announced by StoreFacade and are
filtered out through RecentWrites. Bursts (editors writing a file in several
steps) are coalesced into one bump per debounce window.
"""
import logging
import threading
from pathlib import Path
from typing import Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .board import CONFIG_FILE
from .events import ChangeFeed
from .taskfile import RecentWrites, is_task_file

logger = logging.getLogger(__name__)

# Opened/closed events fire on our own reads; only content changes count.
_CHANGE_EVENTS = {EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}


class ExternalChangeHandler(FileSystemEventHandler):
    """Routes filesystem events under the board root to ChangeFeed.bump()."""

    def __init__(self, root: Path, feed: ChangeFeed, recent: RecentWrites, debounce_ms: int = 300):
        self.root = Path(root).resolve()
        self.feed = feed
        self.recent = recent
        self.debounce_secs = debounce_ms / 1000
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def on_any_event(self, fs_event):
        if fs_event.is_directory or fs_event.event_type not in _CHANGE_EVENTS:
            return
        paths = [fs_event.src_path]
        dest = getattr(fs_event, "dest_path", "")
        if dest:
            paths.append(dest)
        for path in paths:
            if isinstance(path, bytes):
                path = path.decode("utf-8", "replace")
            if self.is_relevant(path) and not self.recent.contains(path):
                logger.debug(f"External change: {fs_event.event_type} {path}")
                self._schedule()
                return

    def is_relevant(self, path: str) -> bool:
        """The board file, or a task file directly inside a column folder."""
        p = Path(path).resolve()
        if p == self.root / CONFIG_FILE:
            return True
        return is_task_file(p) and p.parent.parent == self.root

    def _schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                return
            if self.debounce_secs <= 0:
                self._fire_locked()
                return
            self._timer = threading.Timer(self.debounce_secs, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._fire_locked()

    def _fire_locked(self) -> None:
        self._timer = None
        version = self.feed.bump()
        logger.info(f"Files changed outside the server; change feed at version {version}")

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class ExternalChangeWatcher:
    """Owns the watchdog Observer for one board root."""

    def __init__(self, root: Path, feed: ChangeFeed, recent: RecentWrites, debounce_ms: int = 300):
        self.root = Path(root)
        self.handler = ExternalChangeHandler(root, feed, recent, debounce_ms)
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.root), recursive=True)
        self._observer.daemon = True
        self._observer.start()
        logger.info(f"Watching {self.root} for external changes")

    def stop(self) -> None:
        self.handler.cancel()
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
