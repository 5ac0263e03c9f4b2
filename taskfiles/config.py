# Kanban task files: configuration
# Defaults < config YAML file < environment (KANBAN_ROOT, KANBAN_PORT) < CLI flags.

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("kanban.yaml")


@dataclass
class Config:
    """Runtime configuration for the board server."""

    # Storage
    root: str = "./kanban_data"
    yes: bool = False  # create a missing board without prompting

    # HTTP
    host: str = "127.0.0.1"
    port: int = 8787

    # Long-poll
    poll_timeout_secs: float = 25.0
    max_poll_timeout_secs: float = 60.0

    # UI defaults served at /api/ui
    show_task_editor: bool = True
    show_board_editor: bool = False

    # External edits
    watch_external_changes: bool = False
    watch_debounce_ms: int = 300

    log_level: str = "INFO"

    def apply_env(self):
        """Environment overrides: KANBAN_ROOT and KANBAN_PORT."""
        env_root = os.environ.get("KANBAN_ROOT")
        if env_root:
            self.root = env_root
        env_port = os.environ.get("KANBAN_PORT")
        if env_port:
            try:
                self.port = int(env_port)
            except ValueError:
                logger.warning(f"Ignoring invalid KANBAN_PORT={env_port!r}")

    def resolve_paths(self):
        self.root = str(Path(self.root).expanduser())

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    def clamp_poll_timeout(self, requested: Optional[float]) -> float:
        """The long-poll timeout to use for a request, bounded by the maximum."""
        timeout = self.poll_timeout_secs if requested is None else requested
        return max(0.0, min(float(timeout), self.max_poll_timeout_secs))

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML, falling back to defaults, then apply env."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            if path:
                logger.warning(f"Config file {cfg_path} not found, using defaults")
            cfg = cls()
        cfg.apply_env()
        cfg.resolve_paths()
        return cfg
