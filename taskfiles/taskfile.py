"""
Task file codec.

On-disk layout of <root>/<folder>/<id>.md:

    creator: ...
    assigned_to: ...
    created_at: 2024-05-01T09:30:00.000000Z
    updated_at: 2024-05-01T09:30:00.000000Z
    status: backlog
    tags: a, b
    title: ...
    <blank line>
    description...

Writes go through a temp file in the same directory followed by os.replace,
so readers see either the old or the new content.
"""
import os
import re
import threading
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Tuple

from .errors import MalformedTaskFile
from .schema import Task

TASK_SUFFIX = ".md"
TEMP_SUFFIX = ".tmp"
REQUIRED_FIELDS = ("title", "created_at", "updated_at")

_SLUG_SEP_RE = re.compile(r"[^a-z0-9]+")
_FRACTION_RE = re.compile(r"\.(\d+)")


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp. Raises ValueError.

    Fractions longer than microseconds (nanosecond output of other tools)
    are truncated; a naive value is taken as UTC.
    """
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def slugify(title: str) -> str:
    """Lowercase, collapse every run of non-alphanumerics to one '-'."""
    slug = _SLUG_SEP_RE.sub("-", title.lower()).strip("-")
    return slug or "task"


def is_task_file(path: Path) -> bool:
    return path.suffix == TASK_SUFFIX and not path.name.startswith(".")


def is_temp_file(path: Path) -> bool:
    return path.name.startswith(".") and path.name.endswith(TEMP_SUFFIX)


# ── Encoding ─────────────────────────────────────────────────────────────────

def render_task(task: Task) -> str:
    tags = ", ".join(task.tags)
    return (
        f"creator: {task.creator}\n"
        f"assigned_to: {task.assigned_to}\n"
        f"created_at: {task.created_at}\n"
        f"updated_at: {task.updated_at}\n"
        f"status: {task.status}\n"
        f"tags: {tags}\n"
        f"title: {task.title}\n"
        f"\n"
        f"{task.description}\n"
    )


def _split_lines(content: str):
    lines = content.split("\n")
    if content.endswith("\n"):
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def split_header(content: str) -> Tuple[Dict[str, str], str]:
    """Split file content into (header fields, description)."""
    header: Dict[str, str] = {}
    body = []
    in_body = False
    for line in _split_lines(content):
        if in_body:
            body.append(line)
            continue
        if not line.strip():
            in_body = True
            continue
        if ":" in line:
            key, value = line.split(":", 1)
            header[key.strip()] = value.strip()
    return header, "\n".join(body)


def parse_task(path: Path, folder: str) -> Task:
    """
    Read one task file. The id is the file stem and the folder is where the
    file physically is; a stale `status` header is overridden by the folder.

    Raises MalformedTaskFile for missing required fields, bad timestamps or
    undecodable content. OSError propagates.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedTaskFile(str(path), f"not valid UTF-8 ({e.reason})")

    header, description = split_header(content)
    missing = [name for name in REQUIRED_FIELDS if name not in header]
    if missing:
        raise MalformedTaskFile(str(path), f"missing header field(s): {', '.join(missing)}")
    for name in ("created_at", "updated_at"):
        try:
            parse_timestamp(header[name])
        except ValueError:
            raise MalformedTaskFile(str(path), f"unparsable {name}: {header[name]!r}")

    tags = [t.strip() for t in header.get("tags", "").split(",") if t.strip()]
    return Task(
        id=path.stem,
        title=header["title"],
        description=description,
        creator=header.get("creator", ""),
        assigned_to=header.get("assigned_to", ""),
        created_at=header["created_at"],
        updated_at=header["updated_at"],
        status=folder,
        tags=tags,
        folder=folder,
    )


def header_status(path: Path) -> str:
    """The raw `status` header of a file, or '' if absent or unreadable."""
    try:
        header, _ = split_header(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError):
        return ""
    return header.get("status", "")


# ── Atomic writes ────────────────────────────────────────────────────────────

class RecentWrites:
    """
    Paths this process wrote or removed in the last few seconds, so the
    external change watcher can tell our own writes from someone else's.
    """

    def __init__(self, window_secs: float = 2.0, maxlen: int = 512):
        self.window_secs = window_secs
        self._entries: Deque[Tuple[float, str]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def note(self, path: Path) -> None:
        with self._lock:
            self._entries.append((time.monotonic(), str(Path(path).resolve())))

    def contains(self, path: str) -> bool:
        target = str(Path(path).resolve())
        cutoff = time.monotonic() - self.window_secs
        with self._lock:
            return any(ts >= cutoff and p == target for ts, p in self._entries)


def fsync_dir(directory: Path) -> None:
    """Flush a directory entry change to disk. No-op where unsupported."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write(path: Path, text: str) -> None:
    """Write text to path via a hidden temp file + os.replace."""
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}{TEMP_SUFFIX}")
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    fsync_dir(path.parent)


def write_task(path: Path, task: Task) -> None:
    atomic_write(path, render_task(task))
