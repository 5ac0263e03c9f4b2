"""
Tests for the task file codec: slugs, timestamps, header layout, atomic writes.
"""
import time
from datetime import timezone

import pytest

from taskfiles.errors import MalformedTaskFile
from taskfiles.schema import Task
from taskfiles.taskfile import (
    RecentWrites,
    atomic_write,
    parse_task,
    parse_timestamp,
    render_task,
    slugify,
    split_header,
    utc_now,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Slugs & timestamps
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_slugify_basic_title():
    assert slugify("Draft onboarding flow") == "draft-onboarding-flow"


def test_slugify_collapses_punctuation_runs():
    assert slugify("  Fix: login -- bug!! ") == "fix-login-bug"
    assert slugify("snake_case_title") == "snake-case-title"


def test_slugify_empty_falls_back_to_task():
    assert slugify("!!!") == "task"
    assert slugify("") == "task"


def test_utc_now_round_trips_through_parser():
    parsed = parse_timestamp(utc_now())
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() == timezone.utc.utcoffset(None)


def test_parse_timestamp_accepts_nanoseconds_and_offsets():
    a = parse_timestamp("2024-05-01T09:30:00.123456789Z")
    b = parse_timestamp("2024-05-01T11:30:00.123456+02:00")
    assert a == b
    assert parse_timestamp("2024-05-01T09:30:00Z").microsecond == 0


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")
    with pytest.raises(ValueError):
        parse_timestamp("")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Encoding
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _task(**overrides):
    fields = dict(
        id="write-docs",
        title="Write docs",
        description="First line\nSecond line",
        creator="ana",
        assigned_to="bo",
        created_at="2024-05-01T09:30:00.000000Z",
        updated_at="2024-05-02T10:00:00.000000Z",
        status="backlog",
        tags=["docs", "urgent", "docs"],
        folder="backlog",
    )
    fields.update(overrides)
    return Task(**fields)


def test_render_task_layout():
    """Header order, comma-joined tags, blank line, body, final newline."""
    assert render_task(_task()) == (
        "creator: ana\n"
        "assigned_to: bo\n"
        "created_at: 2024-05-01T09:30:00.000000Z\n"
        "updated_at: 2024-05-02T10:00:00.000000Z\n"
        "status: backlog\n"
        "tags: docs, urgent, docs\n"
        "title: Write docs\n"
        "\n"
        "First line\nSecond line\n"
    )


def test_render_task_without_tags():
    text = render_task(_task(tags=[]))
    assert "tags: \n" in text


def test_parse_task_reads_rendered_file(tmp_path):
    folder = tmp_path / "backlog"
    folder.mkdir()
    path = folder / "write-docs.md"
    path.write_text(render_task(_task()), encoding="utf-8")

    task = parse_task(path, "backlog")
    assert task == _task()


def test_parse_task_keeps_blank_lines_inside_description(tmp_path):
    path = tmp_path / "notes.md"
    path.write_text(render_task(_task(id="notes", description="a\n\nb\n")), encoding="utf-8")
    assert parse_task(path, "backlog").description == "a\n\nb\n"


def test_parse_task_trusts_folder_over_status_header(tmp_path):
    path = tmp_path / "write-docs.md"
    path.write_text(render_task(_task(status="done")), encoding="utf-8")
    task = parse_task(path, "backlog")
    assert task.status == "backlog"
    assert task.folder == "backlog"


def test_parse_task_handles_crlf(tmp_path):
    path = tmp_path / "write-docs.md"
    path.write_bytes(render_task(_task()).replace("\n", "\r\n").encode("utf-8"))
    task = parse_task(path, "backlog")
    assert task.title == "Write docs"
    assert task.description == "First line\nSecond line"


def test_parse_task_missing_required_field(tmp_path):
    path = tmp_path / "broken.md"
    path.write_text("creator: ana\nstatus: backlog\n\nbody\n", encoding="utf-8")
    with pytest.raises(MalformedTaskFile) as exc:
        parse_task(path, "backlog")
    assert "title" in exc.value.reason


def test_parse_task_bad_timestamp(tmp_path):
    path = tmp_path / "broken.md"
    path.write_text(
        "title: Broken\ncreated_at: someday\nupdated_at: 2024-05-01T09:30:00Z\n\n",
        encoding="utf-8",
    )
    with pytest.raises(MalformedTaskFile) as exc:
        parse_task(path, "backlog")
    assert "created_at" in exc.value.reason


def test_parse_task_invalid_utf8(tmp_path):
    path = tmp_path / "binary.md"
    path.write_bytes(b"title: \xff\xfe\n")
    with pytest.raises(MalformedTaskFile):
        parse_task(path, "backlog")


def test_split_header_ignores_lines_without_colon():
    header, body = split_header("title: X\nnonsense\ncreator: me\n\nbody: not header\n")
    assert header == {"title": "X", "creator": "me"}
    assert body == "body: not header"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Atomic writes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_atomic_write_replaces_and_leaves_no_temp(tmp_path):
    path = tmp_path / "file.md"
    path.write_text("old", encoding="utf-8")
    atomic_write(path, "new\n")
    assert path.read_text(encoding="utf-8") == "new\n"
    assert [p.name for p in tmp_path.iterdir()] == ["file.md"]


def test_recent_writes_window(tmp_path):
    recent = RecentWrites(window_secs=60)
    path = tmp_path / "a.md"
    recent.note(path)
    assert recent.contains(str(path))
    assert not recent.contains(str(tmp_path / "b.md"))

    short = RecentWrites(window_secs=0.01)
    short.note(path)
    time.sleep(0.05)
    assert not short.contains(str(path))
