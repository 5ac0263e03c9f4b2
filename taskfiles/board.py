"""
Board configuration: `.workspace-kanban` in the board root.

One column per line:

    backlog: Backlog
    in_progress: In Progress wip=3
    # comments and blank lines are ignored

BoardConfigManager owns this file and the matching column folders. Saving a
board that drops a folder which still holds tasks is a two-phase operation:
the first save raises BoardConflict, the retry carries a Resolution per
conflicting folder.
"""
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from .errors import (
    BoardConflict,
    ConfigMissing,
    DuplicateColumnId,
    InvalidColumnId,
    InvalidDestination,
    ValidationError,
)
from .schema import (
    BoardColumn,
    BoardConfig,
    FolderConflict,
    ReconciliationPlan,
    Resolution,
    ResolutionAction,
    SaveResult,
    is_valid_column_id,
)
from .taskfile import RecentWrites, atomic_write, is_task_file

if TYPE_CHECKING:
    from .store import TaskStore

logger = logging.getLogger(__name__)

CONFIG_FILE = ".workspace-kanban"

DEFAULT_FOLDERS: Tuple[Tuple[str, str], ...] = (
    ("backlog", "Backlog"),
    ("planned", "Planned"),
    ("in_progress", "In Progress"),
    ("done", "Done"),
)


def parse_config_line(line: str) -> Optional[BoardColumn]:
    """Parse one config line. Returns None for blanks, comments and bad ids."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith("#"):
        return None
    if ":" in trimmed:
        id_part, title_part = (p.strip() for p in trimmed.split(":", 1))
    else:
        id_part, title_part = trimmed, trimmed
    if not is_valid_column_id(id_part):
        return None

    title = title_part
    wip_limit = 0
    if "wip=" in title_part:
        base, tail = title_part.split("wip=", 1)
        title = base.strip()
        raw = tail.split()[0] if tail.split() else ""
        if raw.isdigit() and int(raw) > 0:
            wip_limit = int(raw)
    return BoardColumn(id=id_part, title=title or id_part, wip_limit=wip_limit)


def render_config(config: BoardConfig) -> str:
    lines = []
    for column in config.columns:
        if column.wip_limit > 0:
            lines.append(f"{column.id}: {column.title} wip={column.wip_limit}\n")
        else:
            lines.append(f"{column.id}: {column.title}\n")
    return "".join(lines)


def count_tasks(folder: Path) -> int:
    if not folder.is_dir():
        return 0
    return sum(1 for p in folder.iterdir() if is_task_file(p))


class BoardConfigManager:
    """Reads, validates, reconciles and writes the board configuration."""

    def __init__(self, root: Path, recent: Optional[RecentWrites] = None):
        self.root = Path(root)
        self.recent = recent or RecentWrites()

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    def folder_path(self, column_id: str) -> Path:
        return self.root / column_id

    # ── Load / write ─────────────────────────────────────────────────────

    def exists(self) -> bool:
        return self.config_path.is_file()

    def load(self) -> BoardConfig:
        """Read the board. Raises ConfigMissing if absent or without valid columns."""
        if not self.config_path.is_file():
            raise ConfigMissing(f"Missing {CONFIG_FILE} in {self.root}")
        contents = self.config_path.read_text(encoding="utf-8")

        columns: List[BoardColumn] = []
        seen = set()
        for lineno, line in enumerate(contents.splitlines(), start=1):
            column = parse_config_line(line)
            if column is None:
                stripped = line.strip()
                if stripped and not stripped.startswith("#"):
                    logger.warning(f"{CONFIG_FILE}:{lineno}: ignoring invalid line {stripped!r}")
                continue
            if column.id in seen:
                logger.warning(f"{CONFIG_FILE}:{lineno}: duplicate column '{column.id}' ignored")
                continue
            seen.add(column.id)
            columns.append(column)

        if not columns:
            raise ConfigMissing(f"No valid columns in {self.config_path}")
        return BoardConfig(columns=columns)

    def write_default(self) -> BoardConfig:
        config = BoardConfig(columns=[BoardColumn(id=i, title=t) for i, t in DEFAULT_FOLDERS])
        self._write(config)
        logger.info(f"Wrote default board to {self.config_path}")
        return config

    def _write(self, config: BoardConfig) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.recent.note(self.config_path)
        atomic_write(self.config_path, render_config(config))

    # ── Validation ───────────────────────────────────────────────────────

    @staticmethod
    def validate(config: BoardConfig) -> None:
        """Raise on the first invalid column. Pure check, nothing is written."""
        if not config.columns:
            raise ValidationError("Board must have at least one column")
        seen = set()
        for column in config.columns:
            if not is_valid_column_id(column.id):
                raise InvalidColumnId(column.id)
            if column.id in seen:
                raise DuplicateColumnId(column.id)
            seen.add(column.id)
            if "\n" in column.title or "\r" in column.title:
                raise ValidationError(f"Title of column '{column.id}' must be a single line")
            if "wip=" in column.title:
                raise ValidationError(
                    f"Title of column '{column.id}' must not contain 'wip=' (set wip_limit instead)"
                )
            if column.wip_limit < 0:
                raise ValidationError(f"wip_limit of column '{column.id}' must be non-negative")

    # ── Folders ──────────────────────────────────────────────────────────

    def ensure_folders(self, config: BoardConfig) -> None:
        for column in config.columns:
            self.folder_path(column.id).mkdir(parents=True, exist_ok=True)

    def orphan_folders(self, config: BoardConfig) -> List[str]:
        """Column-like directories in the root that the board does not list."""
        if not self.root.is_dir():
            return []
        configured = set(config.ids)
        orphans = []
        for entry in sorted(self.root.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if entry.name in configured or not is_valid_column_id(entry.name):
                continue
            orphans.append(entry.name)
        return orphans

    def remove_folder(self, column_id: str) -> bool:
        """Remove a column folder if nothing but leftovers of ours remain in it."""
        path = self.folder_path(column_id)
        if not path.is_dir():
            return False
        remaining = [p for p in path.iterdir() if not p.name.startswith(".")]
        if remaining:
            logger.warning(
                f"Keeping folder {path}: {len(remaining)} non-task file(s) still inside"
            )
            return False
        shutil.rmtree(path)
        return True

    # ── Reconciliation ───────────────────────────────────────────────────

    def reconcile(self, old: BoardConfig, new: BoardConfig) -> ReconciliationPlan:
        """Work out what a switch from `old` to `new` means for the folders."""
        plan = ReconciliationPlan()
        new_ids = set(new.ids)
        old_ids = set(old.ids)
        plan.added = [c for c in new.ids if c not in old_ids]
        for column_id in old.ids:
            if column_id in new_ids:
                continue
            count = count_tasks(self.folder_path(column_id))
            if count:
                plan.conflicts.append(FolderConflict(folder_id=column_id, task_count=count))
            else:
                plan.removed_empty.append(column_id)
        return plan

    def save(
        self,
        new: BoardConfig,
        resolutions: Optional[Dict[str, Resolution]] = None,
        tasks: Optional["TaskStore"] = None,
    ) -> SaveResult:
        """
        Validate, reconcile and apply a new board as one unit.

        Raises a ValidationError subclass or BoardConflict before anything is
        touched. An ABORT resolution returns SaveResult(applied=False).
        """
        self.validate(new)
        resolutions = resolutions or {}

        try:
            old = self.load()
        except ConfigMissing:
            old = BoardConfig()

        plan = self.reconcile(old, new)
        unresolved = [c for c in plan.conflicts if c.folder_id not in resolutions]
        if unresolved:
            raise BoardConflict(unresolved)

        for conflict in plan.conflicts:
            resolution = resolutions[conflict.folder_id]
            if resolution.action == ResolutionAction.ABORT:
                logger.info(f"Board change aborted while resolving '{conflict.folder_id}'")
                return SaveResult(config=old, applied=False)
            if resolution.action == ResolutionAction.MOVE_TASKS_TO:
                if not resolution.destination or not new.has(resolution.destination):
                    raise InvalidDestination(conflict.folder_id, resolution.destination or "")
        if plan.conflicts and tasks is None:
            raise ValueError("A TaskStore is required to resolve folder conflicts")

        result = SaveResult(config=new)
        self.ensure_folders(new)
        evacuated: List[Tuple[str, str, List[str]]] = []
        try:
            for conflict in plan.conflicts:
                resolution = resolutions[conflict.folder_id]
                if resolution.action == ResolutionAction.MOVE_TASKS_TO:
                    names = tasks.evacuate(conflict.folder_id, resolution.destination)
                    evacuated.append((conflict.folder_id, resolution.destination, names))
                    result.moved[conflict.folder_id] = len(names)
            self._write(new)
        except OSError:
            # the old board is still on disk: put its tasks back where it expects them
            for src, dest, names in reversed(evacuated):
                tasks.restore(dest, src, names)
            raise

        for conflict in plan.conflicts:
            resolution = resolutions[conflict.folder_id]
            if resolution.action == ResolutionAction.DELETE_TASKS:
                result.deleted[conflict.folder_id] = tasks.purge(conflict.folder_id)
        for column_id in plan.removed_empty + [c.folder_id for c in plan.conflicts]:
            self.remove_folder(column_id)

        logger.info(
            f"Saved board with {len(new.columns)} column(s): "
            f"added={plan.added} removed={plan.removed_empty + [c.folder_id for c in plan.conflicts]}"
        )
        return result
