"""Shared test fixtures and helpers for the agentmux test suite.

Sets config env vars before any agentmux import, provides mock subprocess
builders and pane-list payloads for the WezTerm / kitty adapter tests.
"""

import json
import os
import tempfile

# Config isolation: set env vars BEFORE any agentmux module import.
# config.py creates a singleton at import time.
_TEST_HOME = tempfile.mkdtemp(prefix="agentmux-test-")
os.environ["AGENTMUX_STATE_DIR"] = os.path.join(_TEST_HOME, "state")
os.environ["AGENTMUX_CONFIG"] = os.path.join(_TEST_HOME, "config.yaml")
os.environ["AGENTMUX_ENTER_DELAY"] = "0"
os.environ["AGENTMUX_COMMAND_TIMEOUT"] = "5"
os.environ.pop("AGENTMUX_DEFAULT_BACKEND", None)

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest


# ── Subprocess mocks ─────────────────────────────────────────────────────


def make_proc(rc: int = 0, stdout: str = "", stderr: str = "") -> AsyncMock:
    """Create a mock process with communicate() returning (stdout, stderr)."""
    proc = AsyncMock()
    proc.returncode = rc
    proc.communicate = AsyncMock(
        return_value=(stdout.encode(), stderr.encode())
    )
    return proc


def exec_args(mock_exec: Any, index: int) -> tuple[str, ...]:
    """Positional argv of the index-th create_subprocess_exec call."""
    return mock_exec.call_args_list[index][0]


# ── Pane list builders ───────────────────────────────────────────────────


def wezterm_list(*tabs: tuple[int, int, str, str]) -> str:
    """`wezterm cli list --format json` output for (tab_id, pane_id, title, cwd) rows."""
    rows = [
        {
            "window_id": 0,
            "tab_id": tab_id,
            "pane_id": pane_id,
            "workspace": "default",
            "title": "zsh",
            "tab_title": title,
            "cwd": f"file://host{cwd}",
            "is_active": True,
        }
        for tab_id, pane_id, title, cwd in tabs
    ]
    return json.dumps(rows)


def kitty_ls(*tabs: tuple[int, int, str, str]) -> str:
    """`kitty @ ls` output for (tab_id, window_id, title, cwd) tabs."""
    return json.dumps([
        {
            "id": 1,
            "is_focused": True,
            "tabs": [
                {
                    "id": tab_id,
                    "title": title,
                    "windows": [
                        {"id": window_id, "title": "zsh", "cwd": cwd, "is_focused": True}
                    ],
                }
                for tab_id, window_id, title, cwd in tabs
            ],
        }
    ])


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    d = tmp_path / "repo"
    d.mkdir()
    return d


@pytest.fixture
def state_root(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture(autouse=True)
def _reset_mux_singleton(monkeypatch):
    import agentmux.multiplexer as mux_pkg

    monkeypatch.setattr(mux_pkg, "_mux", None)
