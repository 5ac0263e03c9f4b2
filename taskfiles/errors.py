"""
Error taxonomy for the task-file store.

Validation and not-found errors are raised synchronously to the caller and
never retried. Filesystem errors (OSError) are not wrapped: they propagate
with their original cause.
"""
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .schema import FolderConflict


class KanbanError(Exception):
    """Base class for every error raised by the store."""
    pass


class NotFound(KanbanError):
    """Raised when a task (or column) does not exist."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class ValidationError(KanbanError):
    """Raised when input fails validation. Nothing was written."""
    pass


class InvalidFolder(ValidationError):
    """Raised when a task operation names a folder that is not a configured column."""

    def __init__(self, folder: str):
        super().__init__(f"Invalid folder: {folder}")
        self.folder = folder


class InvalidColumnId(ValidationError):
    """Raised when a column id does not match [a-z0-9_-]+."""

    def __init__(self, column_id: str):
        super().__init__(f"Invalid column id: {column_id!r}")
        self.column_id = column_id


class DuplicateColumnId(ValidationError):
    """Raised when a board config repeats a column id."""

    def __init__(self, column_id: str):
        super().__init__(f"Duplicate column id: {column_id}")
        self.column_id = column_id


class InvalidDestination(ValidationError):
    """Raised when a conflict resolution moves tasks into a column the new board lacks."""

    def __init__(self, folder_id: str, destination: str):
        super().__init__(
            f"Cannot move tasks from '{folder_id}' to '{destination}': "
            f"destination is not a column of the new board"
        )
        self.folder_id = folder_id
        self.destination = destination


class BoardConflict(KanbanError):
    """
    Raised when a board change would remove folders that still hold tasks.

    Carries one FolderConflict per affected folder. The caller retries the
    save with an explicit resolution for each of them.
    """

    def __init__(self, conflicts: List["FolderConflict"]):
        names = ", ".join(f"{c.folder_id} ({c.task_count})" for c in conflicts)
        super().__init__(f"Removed folders still contain tasks: {names}")
        self.conflicts = conflicts


class ConfigMissing(KanbanError):
    """Raised when no usable board configuration exists in the root."""
    pass


class MalformedTaskFile(KanbanError):
    """Raised when a single-task operation reads a file that cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Malformed task file {path}: {reason}")
        self.path = path
        self.reason = reason
