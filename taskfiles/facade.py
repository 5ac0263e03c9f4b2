"""
StoreFacade: the operations the HTTP layer calls.

Every mutation runs as: take the mutation lock -> validate -> mutate the
filesystem -> on success bump the change feed. Errors propagate unchanged and
a failed mutation never bumps. Reads do not hold the lock while scanning;
list_tasks() retries a scan that overlapped a mutation instead.
"""
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional, Tuple

from .board import BoardConfigManager
from .errors import ConfigMissing
from .events import ChangeFeed, ChangeResult
from .schema import (
    BoardConfig,
    NewTask,
    Resolution,
    SaveResult,
    Task,
    TaskListing,
    TaskUpdate,
)
from .store import TaskStore

logger = logging.getLogger(__name__)


class StoreFacade:
    """Board + tasks + change feed behind a single mutation lock."""

    # Optimistic list attempts before falling back to scanning under the lock.
    READ_ATTEMPTS = 3

    def __init__(self, root: Path, auto_create: bool = False, feed: Optional[ChangeFeed] = None):
        self.root = Path(root)
        self.auto_create = auto_create
        self.board = BoardConfigManager(self.root)
        self.tasks = TaskStore(self.root, self.board)
        self.feed = feed or ChangeFeed()
        self._lock = threading.RLock()
        # Odd while a mutation is in progress.
        self._seq = 0

    @contextmanager
    def _mutation(self):
        with self._lock:
            self._seq += 1
            try:
                yield
            finally:
                self._seq += 1

    def _commit(self) -> int:
        return self.feed.bump()

    # ── Startup ──────────────────────────────────────────────────────────

    def bootstrap(self) -> BoardConfig:
        """
        Load (or, with auto_create, create) the board and tidy the root:
        create column folders, drop empty orphan folders, warn about orphan
        folders that still hold tasks, and repair interrupted moves.

        Raises ConfigMissing when there is no board and auto_create is off.
        """
        with self._mutation():
            try:
                config = self.board.load()
            except ConfigMissing:
                if not self.auto_create:
                    raise
                config = self.board.write_default()

            self.board.ensure_folders(config)
            for orphan in self.board.orphan_folders(config):
                count = self.tasks.count(orphan)
                if count:
                    logger.warning(
                        f"Folder '{orphan}' has {count} task(s) but is not on the board; "
                        f"add it back or resolve it with a board update"
                    )
                elif self.board.remove_folder(orphan):
                    logger.info(f"Removed empty folder '{orphan}' (not on the board)")

            repaired = self.tasks.repair(config)
            if repaired:
                logger.warning(f"Repaired {repaired} leftover file(s) from interrupted writes")
        return config

    # ── Board ────────────────────────────────────────────────────────────

    def get_board(self) -> BoardConfig:
        return self.board.load()

    def save_board(
        self,
        config: BoardConfig,
        resolutions: Optional[Dict[str, Resolution]] = None,
    ) -> SaveResult:
        with self._mutation():
            result = self.board.save(config, resolutions, tasks=self.tasks)
            if result.applied:
                self._commit()
        return result

    # ── Tasks ────────────────────────────────────────────────────────────

    def list_tasks(self) -> Tuple[TaskListing, BoardConfig]:
        """Grouped listing plus the board it was scanned against."""
        for _ in range(self.READ_ATTEMPTS):
            start = self._seq
            if start % 2 == 0:
                config = self.board.load()
                listing = self.tasks.list(config)
                if self._seq == start:
                    return listing, config
            time.sleep(0.01)
        logger.debug("list_tasks kept overlapping mutations; scanning under the lock")
        with self._lock:
            config = self.board.load()
            return self.tasks.list(config), config

    def get_task(self, task_id: str) -> Task:
        return self.tasks.get(task_id)

    def create_task(self, fields: NewTask) -> Task:
        with self._mutation():
            task = self.tasks.create(fields)
            self._commit()
        return task

    def update_task(self, task_id: str, fields: TaskUpdate) -> Task:
        with self._mutation():
            task = self.tasks.update(task_id, fields)
            self._commit()
        return task

    def move_task(self, task_id: str, folder: str) -> Task:
        with self._mutation():
            task = self.tasks.move(task_id, folder)
            self._commit()
        return task

    def delete_task(self, task_id: str) -> None:
        with self._mutation():
            self.tasks.delete(task_id)
            self._commit()

    # ── Change notification ──────────────────────────────────────────────

    @property
    def version(self) -> int:
        return self.feed.version

    def wait_for_changes(self, since: int, timeout: float) -> ChangeResult:
        return self.feed.wait(since, timeout)

    def close(self) -> None:
        self.feed.close()
