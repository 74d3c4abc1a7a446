"""Library configuration — reads env vars and exposes a singleton.

Loads the state-store location, the status icon file path, subprocess
timeouts, the Enter keystroke delay, and the fallback backend from
environment variables (with .env support).
The module-level `config` instance is imported by the adapters, the state
store, and the icon resolver.

Key class: Config (singleton instantiated as `config`).
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_BACKEND_NAMES = ("tmux", "wezterm", "kitty")


def _xdg_dir(env_name: str, fallback: Path) -> Path:
    value = os.getenv(env_name, "")
    return Path(value) if value else fallback


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


class Config:
    """Library configuration loaded from environment variables."""

    def __init__(self) -> None:
        load_dotenv()

        state_home = _xdg_dir("XDG_STATE_HOME", Path.home() / ".local" / "state")
        config_home = _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config")

        # Agent registry, shared by every agent process and the dashboard
        self.state_dir: Path = Path(
            os.getenv("AGENTMUX_STATE_DIR") or state_home / "agentmux"
        ).expanduser()

        # YAML file holding the status icon table (re-read on every lookup)
        self.config_file: Path = Path(
            os.getenv("AGENTMUX_CONFIG") or config_home / "agentmux" / "config.yaml"
        ).expanduser()

        # Upper bound for a single call into tmux / wezterm / kitty
        self.command_timeout: float = _float_env("AGENTMUX_COMMAND_TIMEOUT", "5.0")

        # Gap between typed text and the Enter keystroke
        self.enter_delay: float = _float_env("AGENTMUX_ENTER_DELAY", "0.5")

        # Backend used when no multiplexer marker is found in the environment
        self.default_backend: str = os.getenv("AGENTMUX_DEFAULT_BACKEND", "tmux").lower()
        if self.default_backend not in _BACKEND_NAMES:
            raise ValueError(
                f"Unknown AGENTMUX_DEFAULT_BACKEND: {self.default_backend!r}. "
                f"Expected one of: {', '.join(_BACKEND_NAMES)}."
            )

        logger.debug(
            "Config initialized: state_dir=%s, config_file=%s, timeout=%.1fs, "
            "default_backend=%s",
            self.state_dir,
            self.config_file,
            self.command_timeout,
            self.default_backend,
        )


config = Config()
