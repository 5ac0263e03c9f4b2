"""
Theme settings read from `.kanban-theme.conf` in the board root.

    headline=Kanban Task Files
    color.accent=#ff7a18
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

THEME_FILE = ".kanban-theme.conf"

DEFAULT_THEME = """\
# Headline text shown in the app header
headline=Kanban Task Files

# Primary accent used for buttons
color.accent=#ff7a18
# Darker accent for hover states
color.accent_deep=#c24800
# Main text color
color.ink=#141414
# Muted text and secondary labels
color.muted=#4e4c48
# Card surface color
color.card=#ffffff
# Background gradient start/middle/end
color.bg_start=#fff4e6
color.bg_mid=#f7efe2
color.bg_end=#ece4d7
"""


@dataclass
class ThemeSettings:
    headline: Optional[str] = None
    colors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"headline": self.headline, "colors": dict(self.colors)}


def theme_path(root: Path) -> Path:
    return Path(root) / THEME_FILE


def load_theme(root: Path) -> ThemeSettings:
    """Parse the theme file. A missing file gives an empty theme."""
    theme = ThemeSettings()
    path = theme_path(root)
    if not path.is_file():
        return theme
    for line in path.read_text(encoding="utf-8").splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#") or "=" not in trimmed:
            continue
        key, value = (p.strip() for p in trimmed.split("=", 1))
        if key.lower() == "headline":
            if value:
                theme.headline = value
            continue
        if key.startswith("color.") and value:
            theme.colors[key[len("color."):]] = value
    return theme


def write_default_theme(root: Path) -> bool:
    """Write the default theme file. Returns False if one already exists."""
    path = theme_path(root)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_THEME, encoding="utf-8")
    logger.info(f"Created default theme file at {path}")
    return True
