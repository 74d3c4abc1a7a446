"""Status icon lookup from the YAML configuration file.

The table is re-read on every lookup so edits take effect immediately.
A missing file means defaults; an unreadable or malformed one makes
resolve_icon() return None so callers skip the visual update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from .config import config
from .errors import IconConfigError
from .state import AgentStatus

logger = logging.getLogger(__name__)


@dataclass
class StatusIcons:
    """Glyph shown for each agent status."""

    working: str = "🤖"
    waiting: str = "💬"
    done: str = "✅"

    def icon_for(self, status: AgentStatus) -> str:
        return getattr(self, status.value)


def load_status_icons(path: Path | None = None) -> StatusIcons:
    """Read the `status_icons` table from `path` (default config.config_file)."""
    path = Path(path) if path is not None else config.config_file
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return StatusIcons()
    except OSError as exc:
        raise IconConfigError(f"Failed to read {path}: {exc}") from exc

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise IconConfigError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return StatusIcons()
    if not isinstance(document, dict):
        raise IconConfigError(f"{path}: top level must be a mapping")

    table = document.get("status_icons") or {}
    if not isinstance(table, dict):
        raise IconConfigError(f"{path}: status_icons must be a mapping")

    icons = StatusIcons()
    for status in AgentStatus:
        value = table.get(status.value)
        if value is not None:
            setattr(icons, status.value, str(value))
    return icons


def resolve_icon(status: AgentStatus, path: Path | None = None) -> str | None:
    """Return the glyph for `status`, or None if the table cannot be loaded."""
    try:
        return load_status_icons(path).icon_for(status)
    except IconConfigError as exc:
        logger.warning("Skipping status icon update: %s", exc)
        return None
