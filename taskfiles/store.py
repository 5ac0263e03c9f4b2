"""
Task file storage backend.

Tasks are files named <id>.md inside the folder of their column. The folder
is the truth for a task's status; the `status` header is rewritten to match
on every write. This class does no locking of its own: StoreFacade
serializes mutations.
"""
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .board import BoardConfigManager, count_tasks
from .errors import InvalidFolder, MalformedTaskFile, NotFound
from .schema import (
    BoardConfig,
    NewTask,
    ParseWarning,
    Task,
    TaskListing,
    TaskUpdate,
    is_valid_column_id,
    is_valid_task_id,
)
from .taskfile import (
    TASK_SUFFIX,
    fsync_dir,
    header_status,
    is_task_file,
    is_temp_file,
    parse_task,
    parse_timestamp,
    slugify,
    utc_now,
    write_task,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """Filesystem-backed store for tasks."""

    def __init__(self, root: Path, board: BoardConfigManager):
        self.root = Path(root)
        self.board = board
        self.recent = board.recent

    # ── Paths ────────────────────────────────────────────────────────────

    def task_path(self, folder: str, task_id: str) -> Path:
        return self.root / folder / f"{task_id}{TASK_SUFFIX}"

    def _note_write(self, path: Path) -> None:
        self.recent.note(path)

    def _locate(self, task_id: str, config: BoardConfig) -> Tuple[Path, str]:
        """
        Find the file of a task. If an interrupted move left copies in two
        folders, the one with the newest updated_at wins.
        """
        if not is_valid_task_id(task_id):
            raise NotFound(f"Task not found: {task_id}", task_id)
        hits = [
            (self.task_path(c.id, task_id), c.id)
            for c in config.columns
            if self.task_path(c.id, task_id).is_file()
        ]
        if not hits:
            raise NotFound(f"Task not found: {task_id}", task_id)
        if len(hits) == 1:
            return hits[0]
        return max(hits, key=lambda hit: self._updated_key(hit[0], hit[1]))

    @staticmethod
    def _updated_key(path: Path, folder: str):
        try:
            return parse_timestamp(parse_task(path, folder).updated_at).timestamp()
        except (MalformedTaskFile, OSError, ValueError):
            return float("-inf")

    def exists_anywhere(self, task_id: str, config: BoardConfig) -> bool:
        return any(self.task_path(c.id, task_id).exists() for c in config.columns)

    def unique_id(self, base: str, config: BoardConfig) -> str:
        if not self.exists_anywhere(base, config):
            return base
        n = 2
        while self.exists_anywhere(f"{base}-{n}", config):
            n += 1
        return f"{base}-{n}"

    def _write(self, path: Path, task: Task) -> None:
        self._note_write(path)
        write_task(path, task)

    def _remove(self, path: Path) -> None:
        self._note_write(path)
        path.unlink()
        fsync_dir(path.parent)

    # ── CRUD ─────────────────────────────────────────────────────────────

    def create(self, fields: NewTask) -> Task:
        config = self.board.load()
        if fields.status and is_valid_column_id(fields.status):
            if not config.has(fields.status):
                raise InvalidFolder(fields.status)
            folder = fields.status
        else:
            if fields.status:
                logger.warning(f"Ignoring malformed status {fields.status!r}; using first column")
            folder = config.columns[0].id

        task_id = self.unique_id(slugify(fields.title), config)
        now = utc_now()
        task = Task(
            id=task_id,
            title=fields.title,
            description=fields.description,
            creator=fields.creator,
            assigned_to=fields.assigned_to,
            created_at=now,
            updated_at=now,
            status=folder,
            tags=list(fields.tags),
            folder=folder,
        )
        path = self.task_path(folder, task_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write(path, task)
        logger.info(f"Created task {task_id} in {folder}")
        return task

    def get(self, task_id: str) -> Task:
        config = self.board.load()
        path, folder = self._locate(task_id, config)
        return parse_task(path, folder)

    def update(self, task_id: str, fields: TaskUpdate) -> Task:
        """Rewrite a task's content in place. Never moves it."""
        config = self.board.load()
        path, folder = self._locate(task_id, config)
        task = fields.apply_to(parse_task(path, folder))
        task.updated_at = utc_now()
        self._write(path, task)
        logger.info(f"Updated task {task_id}")
        return task

    def move(self, task_id: str, folder: str) -> Task:
        """
        Relocate a task and rewrite its status header.

        The destination copy is fully written (and fsynced) before the source
        is removed. A crash in between leaves two self-consistent copies,
        resolved by _locate()/list() and cleaned up by repair().
        """
        config = self.board.load()
        if not config.has(folder):
            raise InvalidFolder(folder)
        path, current = self._locate(task_id, config)
        task = parse_task(path, current)
        task.status = folder
        task.folder = folder
        task.updated_at = utc_now()

        dest = self.task_path(folder, task_id)
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._write(dest, task)
        if dest != path:
            self._remove(path)
        logger.info(f"Moved task {task_id}: {current} -> {folder}")
        return task

    def delete(self, task_id: str) -> None:
        config = self.board.load()
        path, _ = self._locate(task_id, config)
        self._remove(path)
        logger.info(f"Deleted task {task_id}")

    # ── Listing ──────────────────────────────────────────────────────────

    def _scan_folder(self, folder: str, warnings: List[ParseWarning]) -> List[Task]:
        """
        Parse every task file in one folder, in directory enumeration order.
        That order is stable for an unchanged directory on one platform and
        unspecified across platforms.
        """
        directory = self.root / folder
        tasks = []
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError:
            return tasks
        for entry in entries:
            path = Path(entry.path)
            if not entry.is_file() or not is_task_file(path):
                continue
            try:
                task = parse_task(path, folder)
            except FileNotFoundError:
                # removed between scandir and read
                continue
            except MalformedTaskFile as e:
                logger.warning(f"Skipping {path}: {e.reason}")
                warnings.append(ParseWarning(path=str(path), folder=folder, message=e.reason))
                continue
            tasks.append(task)
        return tasks

    def list(self, config: Optional[BoardConfig] = None) -> TaskListing:
        """Full scan of every configured folder."""
        config = config or self.board.load()
        listing = TaskListing()
        newest: Dict[str, Tuple[float, str]] = {}
        for column in config.columns:
            tasks = self._scan_folder(column.id, listing.warnings)
            listing.folders[column.id] = tasks
            for task in tasks:
                stamp = parse_timestamp(task.updated_at).timestamp()
                seen = newest.get(task.id)
                if seen is None or stamp > seen[0]:
                    newest[task.id] = (stamp, column.id)

        # Duplicate ids only exist after an interrupted move: keep the newest.
        for folder, tasks in listing.folders.items():
            kept = []
            for task in tasks:
                if newest[task.id][1] != folder:
                    listing.warnings.append(ParseWarning(
                        path=str(self.task_path(folder, task.id)),
                        folder=folder,
                        message=f"stale copy of '{task.id}', newer copy in '{newest[task.id][1]}'",
                    ))
                    continue
                kept.append(task)
            listing.folders[folder] = kept
        return listing

    # ── Folder-level operations (board reconciliation) ──────────────────

    def count(self, folder: str) -> int:
        return count_tasks(self.root / folder)

    def _transfer(self, path: Path, dest: str) -> None:
        """Move one task file into folder `dest`, rewriting its status header."""
        target = self.root / dest / path.name
        try:
            task = parse_task(path, dest)
        except MalformedTaskFile as e:
            # keep the bytes, even if we cannot rewrite the header
            logger.warning(f"Moving malformed {path} unchanged: {e.reason}")
            self._note_write(target)
            self._note_write(path)
            os.replace(path, target)
            return
        task.updated_at = utc_now()
        self._write(target, task)
        self._remove(path)

    def evacuate(self, src: str, dest: str) -> List[str]:
        """
        Move every task file of `src` into `dest`. Returns the moved file names.

        All or nothing: if a transfer fails, the files already moved are
        put back into `src` and the error is re-raised.
        """
        src_dir = self.root / src
        (self.root / dest).mkdir(parents=True, exist_ok=True)
        if not src_dir.is_dir():
            return []
        moved: List[str] = []
        try:
            for path in sorted(p for p in src_dir.iterdir() if is_task_file(p)):
                self._transfer(path, dest)
                moved.append(path.name)
        except OSError as e:
            logger.error(f"Moving tasks from {src} to {dest} failed after {len(moved)} file(s): {e}")
            self.restore(dest, src, moved)
            raise
        logger.info(f"Moved {len(moved)} task(s) from {src} to {dest}")
        return moved

    def restore(self, current: str, original: str, names: List[str]) -> int:
        """
        Undo an evacuation: move `names` from `current` back to `original`.
        Used while unwinding a failed board save. Returns the number restored.
        """
        (self.root / original).mkdir(parents=True, exist_ok=True)
        restored = 0
        for name in names:
            path = self.root / current / name
            try:
                self._transfer(path, original)
            except OSError as e:
                logger.error(f"Could not move {path} back to {original}: {e}")
                continue
            restored += 1
        if restored:
            logger.warning(f"Moved {restored} task(s) back from {current} to {original}")
        return restored

    def purge(self, folder: str) -> int:
        """Delete every task file of a folder. Returns the number deleted."""
        directory = self.root / folder
        if not directory.is_dir():
            return 0
        deleted = 0
        for path in [p for p in directory.iterdir() if is_task_file(p)]:
            self._remove(path)
            deleted += 1
        logger.info(f"Deleted {deleted} task(s) from {folder}")
        return deleted

    # ── Recovery ─────────────────────────────────────────────────────────

    def repair(self, config: Optional[BoardConfig] = None) -> int:
        """
        Clean up after a crash: delete abandoned temp files and the stale copy
        of any task that exists in more than one folder. Returns files removed.
        """
        config = config or self.board.load()
        removed = 0
        locations: Dict[str, List[str]] = {}
        for column in config.columns:
            directory = self.root / column.id
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                if is_temp_file(path):
                    path.unlink(missing_ok=True)
                    removed += 1
                elif is_task_file(path):
                    locations.setdefault(path.stem, []).append(column.id)

        for task_id, folders in locations.items():
            if len(folders) < 2:
                continue
            keep = max(folders, key=lambda f: self._updated_key(self.task_path(f, task_id), f))
            for folder in folders:
                if folder == keep:
                    continue
                stale = self.task_path(folder, task_id)
                logger.warning(
                    f"Removing stale copy {stale} (status header "
                    f"'{header_status(stale)}'); keeping {keep}"
                )
                self._remove(stale)
                removed += 1
        return removed
