"""Backend detection from the calling process's environment.

Each multiplexer exports a marker into the processes it hosts:
TMUX (tmux), WEZTERM_PANE (WezTerm), KITTY_WINDOW_ID (kitty).
AGENTMUX_BACKEND overrides detection; config.default_backend applies when
no marker is present.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from ..config import config
from .base import BackendKind

logger = logging.getLogger(__name__)

OVERRIDE_VAR = "AGENTMUX_BACKEND"

# Checked in order; the first marker present wins
_MARKERS: tuple[tuple[str, BackendKind], ...] = (
    ("TMUX", BackendKind.TMUX),
    ("WEZTERM_PANE", BackendKind.WEZTERM),
    ("KITTY_WINDOW_ID", BackendKind.KITTY),
)


def detect_backend(environ: Mapping[str, str] | None = None) -> BackendKind:
    """Return the multiplexer kind hosting this process. Never raises."""
    env = os.environ if environ is None else environ

    override = env.get(OVERRIDE_VAR, "")
    if override:
        try:
            return BackendKind.parse(override)
        except ValueError:
            logger.warning("Ignoring unknown %s=%r", OVERRIDE_VAR, override)

    for marker, kind in _MARKERS:
        if env.get(marker):
            logger.debug("Detected %s via %s", kind.value, marker)
            return kind

    logger.debug("No multiplexer marker found, defaulting to %s", config.default_backend)
    return BackendKind(config.default_backend)
