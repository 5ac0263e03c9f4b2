"""
Tests for YAML/env configuration loading.
"""
import pytest

from taskfiles.config import Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("KANBAN_ROOT", raising=False)
    monkeypatch.delenv("KANBAN_PORT", raising=False)


def test_defaults_when_file_missing(tmp_path):
    cfg = Config.load(str(tmp_path / "absent.yaml"))
    assert cfg.port == 8787
    assert cfg.poll_timeout_secs == 25.0
    assert cfg.show_task_editor is True
    assert cfg.watch_external_changes is False


def test_yaml_values_and_unknown_keys(tmp_path):
    path = tmp_path / "kanban.yaml"
    path.write_text(
        "root: ~/boards/work\nport: 9001\nwatch_debounce_ms: 50\nunknown_key: 1\n",
        encoding="utf-8",
    )
    cfg = Config.load(str(path))
    assert cfg.port == 9001
    assert cfg.watch_debounce_ms == 50
    assert not cfg.root.startswith("~")
    assert cfg.root.endswith("boards/work")


def test_broken_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "kanban.yaml"
    path.write_text("port: [unclosed\n", encoding="utf-8")
    assert Config.load(str(path)).port == 8787


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "kanban.yaml"
    path.write_text("port: 9001\nroot: /from/yaml\n", encoding="utf-8")
    monkeypatch.setenv("KANBAN_ROOT", str(tmp_path / "env-root"))
    monkeypatch.setenv("KANBAN_PORT", "9100")

    cfg = Config.load(str(path))
    assert cfg.port == 9100
    assert cfg.root == str(tmp_path / "env-root")


def test_invalid_env_port_ignored(monkeypatch, tmp_path):
    monkeypatch.setenv("KANBAN_PORT", "eighty")
    assert Config.load(str(tmp_path / "absent.yaml")).port == 8787


def test_clamp_poll_timeout():
    cfg = Config(poll_timeout_secs=25, max_poll_timeout_secs=60)
    assert cfg.clamp_poll_timeout(None) == 25
    assert cfg.clamp_poll_timeout(5) == 5
    assert cfg.clamp_poll_timeout(600) == 60
    assert cfg.clamp_poll_timeout(-1) == 0
