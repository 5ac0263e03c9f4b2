"""
Task and board schema.

A task is one Markdown-ish file inside a column folder; the board is the
ordered list of columns read from `.workspace-kanban`. Everything here is
plain data: reading and writing files lives in taskfile.py, board.py and
store.py.
"""
import re
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

from .errors import ValidationError

COLUMN_ID_RE = re.compile(r"^[a-z0-9_-]+$")
TASK_ID_RE = re.compile(r"^[a-z0-9-]+$")


def is_valid_column_id(column_id: str) -> bool:
    return bool(COLUMN_ID_RE.match(column_id or ""))


def is_valid_task_id(task_id: str) -> bool:
    return bool(TASK_ID_RE.match(task_id or ""))


def _single_line(name: str, value: Any) -> str:
    """Coerce a header field: must be a string without line breaks."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    if "\n" in value or "\r" in value:
        raise ValidationError(f"{name} must be a single line")
    return value.strip()


def _tag_list(value: Any) -> List[str]:
    """Normalize tags: order kept, duplicates kept, blanks dropped."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("tags must be a list of strings")
    tags = []
    for raw in value:
        if not isinstance(raw, str):
            raise ValidationError("tags must be a list of strings")
        tag = raw.strip()
        if not tag:
            continue
        if "," in tag or "\n" in tag or "\r" in tag:
            raise ValidationError(f"Invalid tag {raw!r}: commas and line breaks are not allowed")
        tags.append(tag)
    return tags


def _description(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("description must be a string")
    return value


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tasks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class Task:
    """One task file. `status` and `folder` always name the containing column."""

    id: str
    title: str
    description: str = ""
    creator: str = ""
    assigned_to: str = ""
    created_at: str = ""
    updated_at: str = ""
    status: str = ""
    tags: List[str] = field(default_factory=list)
    folder: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NewTask:
    """Fields accepted by TaskStore.create()."""

    title: str
    description: str = ""
    creator: str = ""
    assigned_to: str = ""
    tags: List[str] = field(default_factory=list)
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewTask":
        if not isinstance(data, dict):
            raise ValidationError("Task payload must be a JSON object")
        if "title" not in data or data["title"] is None:
            raise ValidationError("title is required")
        status = data.get("status")
        if status is not None and not isinstance(status, str):
            raise ValidationError("status must be a string")
        return cls(
            title=_single_line("title", data["title"]),
            description=_description(data.get("description")),
            creator=_single_line("creator", data.get("creator")),
            assigned_to=_single_line("assigned_to", data.get("assigned_to")),
            tags=_tag_list(data.get("tags")),
            status=status.strip() if status else None,
        )


@dataclass
class TaskUpdate:
    """
    Partial update for TaskStore.update(). None means "leave unchanged".

    No status field: status changes go through move().
    """

    title: Optional[str] = None
    description: Optional[str] = None
    creator: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskUpdate":
        if not isinstance(data, dict):
            raise ValidationError("Task payload must be a JSON object")
        update = cls()
        if data.get("title") is not None:
            update.title = _single_line("title", data["title"])
        if data.get("description") is not None:
            update.description = _description(data["description"])
        if data.get("creator") is not None:
            update.creator = _single_line("creator", data["creator"])
        if data.get("assigned_to") is not None:
            update.assigned_to = _single_line("assigned_to", data["assigned_to"])
        if data.get("tags") is not None:
            update.tags = _tag_list(data["tags"])
        return update

    def apply_to(self, task: Task) -> Task:
        if self.title is not None:
            task.title = self.title
        if self.description is not None:
            task.description = self.description
        if self.creator is not None:
            task.creator = self.creator
        if self.assigned_to is not None:
            task.assigned_to = self.assigned_to
        if self.tags is not None:
            task.tags = list(self.tags)
        return task


@dataclass
class ParseWarning:
    """A task file that was skipped while listing. Never raised."""

    path: str
    folder: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TaskListing:
    """Result of a full scan: tasks grouped by column, plus non-fatal warnings."""

    folders: Dict[str, List[Task]] = field(default_factory=dict)
    warnings: List[ParseWarning] = field(default_factory=list)

    def all_tasks(self) -> List[Task]:
        return [task for tasks in self.folders.values() for task in tasks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folders": {
                folder: [t.to_dict() for t in tasks]
                for folder, tasks in self.folders.items()
            },
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class BoardColumn:
    """One workflow column. wip_limit 0 means no limit (advisory only)."""

    id: str
    title: str = ""
    wip_limit: int = 0

    def __post_init__(self):
        if not self.title:
            self.title = self.id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "wip_limit": self.wip_limit}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardColumn":
        if not isinstance(data, dict):
            raise ValidationError("Each column must be a JSON object")
        column_id = data.get("id")
        if not isinstance(column_id, str):
            raise ValidationError("Column id must be a string")
        title = data.get("title")
        if title is not None and not isinstance(title, str):
            raise ValidationError(f"Column title for '{column_id}' must be a string")
        raw_wip = data.get("wip_limit")
        if raw_wip is None or raw_wip == "":
            wip_limit = 0
        elif isinstance(raw_wip, bool):
            raise ValidationError(f"wip_limit for '{column_id}' must be an integer")
        else:
            try:
                wip_limit = int(raw_wip)
            except (TypeError, ValueError):
                raise ValidationError(f"wip_limit for '{column_id}' must be an integer")
        return cls(id=column_id.strip(), title=(title or "").strip(), wip_limit=wip_limit)


@dataclass
class BoardConfig:
    """Ordered list of columns. Order is display order and round-trips to disk."""

    columns: List[BoardColumn] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return [c.id for c in self.columns]

    def has(self, column_id: str) -> bool:
        return any(c.id == column_id for c in self.columns)

    def get(self, column_id: str) -> Optional[BoardColumn]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"columns": [c.to_dict() for c in self.columns]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardConfig":
        if not isinstance(data, dict) or not isinstance(data.get("columns"), list):
            raise ValidationError("Board payload must contain a 'columns' list")
        return cls(columns=[BoardColumn.from_dict(c) for c in data["columns"]])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reconciliation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ResolutionAction(Enum):
    """What to do with the tasks of a folder the new board removes."""
    DELETE_TASKS = "delete"
    MOVE_TASKS_TO = "move"
    ABORT = "abort"


@dataclass
class Resolution:
    action: ResolutionAction
    destination: Optional[str] = None

    @classmethod
    def delete(cls) -> "Resolution":
        return cls(ResolutionAction.DELETE_TASKS)

    @classmethod
    def move_to(cls, destination: str) -> "Resolution":
        return cls(ResolutionAction.MOVE_TASKS_TO, destination)

    @classmethod
    def abort(cls) -> "Resolution":
        return cls(ResolutionAction.ABORT)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resolution":
        """Accepts {"action": "delete"|"move"|"abort", "destination": "..."}."""
        if not isinstance(data, dict):
            raise ValidationError("Resolution must be a JSON object")
        try:
            action = ResolutionAction(str(data.get("action", "")).lower())
        except ValueError:
            raise ValidationError(f"Unknown resolution action: {data.get('action')!r}")
        destination = data.get("destination")
        if action == ResolutionAction.MOVE_TASKS_TO and not isinstance(destination, str):
            raise ValidationError("A move resolution needs a destination column")
        return cls(action, destination if action == ResolutionAction.MOVE_TASKS_TO else None)


@dataclass
class FolderConflict:
    """A removed column whose folder still holds tasks."""

    folder_id: str
    task_count: int
    options: List[str] = field(default_factory=lambda: [a.value for a in ResolutionAction])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationPlan:
    """Difference between two boards, as it affects folders on disk."""

    added: List[str] = field(default_factory=list)
    removed_empty: List[str] = field(default_factory=list)
    conflicts: List[FolderConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass
class SaveResult:
    """Outcome of BoardConfigManager.save(). applied is False only on an abort."""

    config: BoardConfig
    applied: bool = True
    moved: Dict[str, int] = field(default_factory=dict)
    deleted: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board": self.config.to_dict(),
            "applied": self.applied,
            "moved": self.moved,
            "deleted": self.deleted,
        }
