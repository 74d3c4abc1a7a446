"""Abstract base class for terminal multiplexer backends.

Defines the MultiplexerBackend ABC that every backend (tmux, WezTerm, kitty)
implements, plus the value types that cross the adapter boundary:
  - BackendKind: closed set of supported multiplexers.
  - PaneKey: stable identity of a pane on one multiplexer server.
  - CreateWindowRequest: prefix + name + cwd (+ ordering hint).
  - MuxWindow: backend-agnostic window (tmux window, WezTerm/kitty tab).

The ABC provides a unified interface for:
  - Liveness and caller location: is_running, current_pane_id
  - Window lifecycle: create_window, select_window, kill_window
  - Terminal I/O: send_keys, capture_pane
  - Status indicator: set_status, clear_status

Operations that query state (is_running, capture_pane, window_exists,
list_windows) are soft: failures collapse to False / None / []. Everything
else raises MuxError carrying the operation name, backend kind and cause.

Key class: MultiplexerBackend (ABC).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from ..config import config
from ..errors import MuxError

logger = logging.getLogger(__name__)

# Separator between the status glyph and the base name in tab titles
STATUS_SEPARATOR = " │ "


class BackendKind(str, Enum):
    """Supported terminal multiplexers."""

    TMUX = "tmux"
    WEZTERM = "wezterm"
    KITTY = "kitty"

    @classmethod
    def parse(cls, text: str) -> BackendKind:
        """Decode the external (case-insensitive) name of a backend."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown backend kind: {text!r}") from None


@dataclass(frozen=True)
class PaneKey:
    """Identity of a live pane, unique within one multiplexer server."""

    backend: BackendKind
    instance: str
    pane_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "backend": self.backend.value,
            "instance": self.instance,
            "pane_id": self.pane_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaneKey:
        return cls(
            backend=BackendKind.parse(str(data["backend"])),
            instance=str(data["instance"]),
            pane_id=str(data["pane_id"]),
        )


@dataclass
class CreateWindowRequest:
    """Parameters for a new window; the window is named prefix + name."""

    prefix: str
    name: str
    cwd: str
    after_window: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.prefix}{self.name}"


@dataclass
class MuxWindow:
    """Information about a multiplexer window (tmux window or WezTerm/kitty tab)."""

    window_id: str      # Backend-specific opaque ID (tmux: "@5", wezterm/kitty: tab id)
    window_name: str    # Human-readable name, status decoration removed
    cwd: str            # Current working directory of the active pane
    pane_id: str = ""   # Pane holding the window's shell


def compose_title(text: str, base: str) -> str:
    """Render a status glyph in front of a tab title."""
    return f"{text}{STATUS_SEPARATOR}{base}"


def strip_status(title: str) -> str:
    """Return the base tab title with any status decoration removed."""
    if STATUS_SEPARATOR in title:
        return title.split(STATUS_SEPARATOR, 1)[1]
    return title


def tail_lines(text: str, max_lines: int) -> str:
    """Keep the last `max_lines` lines, ignoring trailing blank lines."""
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if max_lines <= 0:
        return ""
    return "\n".join(lines[-max_lines:])


class MultiplexerBackend(ABC):
    """Abstract base for terminal multiplexer backends."""

    kind: ClassVar[BackendKind]

    def _error(self, operation: str, cause: str) -> MuxError:
        return MuxError(operation, self.kind, cause)

    async def _run(
        self, *args: str, input_text: str | None = None,
    ) -> tuple[int, str, str]:
        """Run a subprocess and return (returncode, stdout, stderr).

        Never raises: a missing binary, an OS error or a timeout is
        reported as a non-zero return code with the cause in stderr.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE if input_text is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Command %s could not start: %s", args, e)
            return 127, "", str(e)

        stdin_bytes = input_text.encode("utf-8") if input_text is not None else None
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(stdin_bytes), timeout=config.command_timeout,
            )
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            logger.debug("Command %s timed out after %.1fs", args, config.command_timeout)
            return -1, "", f"timed out after {config.command_timeout:.1f}s"

        stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
        stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")
        rc = proc.returncode or 0
        if rc != 0:
            logger.debug("Command %s failed (rc=%d): %s", args, rc, stderr.strip())
        return rc, stdout, stderr

    @abstractmethod
    async def is_running(self) -> bool:
        """Check whether the multiplexer server answers. Never raises."""

    @abstractmethod
    def current_pane_id(self) -> str | None:
        """Return the pane hosting this process, or None outside this backend."""

    @abstractmethod
    def instance_id(self) -> str:
        """Identify the multiplexer server the caller talks to."""

    def pane_key(self, pane_id: str) -> PaneKey:
        """Build the persistent identity of a pane on this server."""
        return PaneKey(backend=self.kind, instance=self.instance_id(), pane_id=pane_id)

    @abstractmethod
    async def list_windows(self) -> list[MuxWindow]:
        """List all windows with their active pane. Returns [] on failure."""

    async def find_window_by_name(self, window_name: str) -> MuxWindow | None:
        """Find a window by its name.

        Default implementation filters list_windows(). All backends share
        this logic.
        """
        windows = await self.list_windows()
        for window in windows:
            if window.window_name == window_name:
                return window
        logger.debug("Window not found: %s", window_name)
        return None

    async def window_exists(self, prefix: str, name: str) -> bool:
        """Check whether a window named prefix + name is open."""
        try:
            return await self.find_window_by_name(f"{prefix}{name}") is not None
        except Exception as e:
            logger.debug("window_exists(%s%s) failed: %s", prefix, name, e)
            return False

    async def _require_window(self, operation: str, full_name: str) -> MuxWindow:
        window = await self.find_window_by_name(full_name)
        if window is None:
            raise self._error(operation, f"window {full_name!r} not found")
        return window

    @abstractmethod
    async def create_window(self, request: CreateWindowRequest) -> str:
        """Create a window in request.cwd and return its pane ID.

        Raises MuxError if the server is unreachable, the directory is
        invalid, or a window with the same full name is already open.
        """

    async def _check_create(self, request: CreateWindowRequest) -> None:
        """Validate a creation request before talking to the backend."""
        path = Path(request.cwd).expanduser()
        if not path.exists():
            raise self._error("create_window", f"Directory does not exist: {request.cwd}")
        if not path.is_dir():
            raise self._error("create_window", f"Not a directory: {request.cwd}")
        if not await self.is_running():
            raise self._error("create_window", "Multiplexer is not running")
        if await self.find_window_by_name(request.full_name):
            raise self._error(
                "create_window", f"window {request.full_name!r} already exists",
            )

    @abstractmethod
    async def send_keys(self, pane_id: str, text: str) -> None:
        """Type `text` into the pane and submit it with Enter.

        The text is sent literally, then Enter follows after
        config.enter_delay as a separate keystroke.
        """

    @abstractmethod
    async def capture_pane(self, pane_id: str, max_lines: int = 50) -> str | None:
        """Return up to `max_lines` recent lines of the pane, or None on failure."""

    @abstractmethod
    async def select_window(self, prefix: str, name: str) -> None:
        """Focus the window named prefix + name."""

    @abstractmethod
    async def kill_window(self, full_name: str) -> None:
        """Close the window named `full_name`."""

    @abstractmethod
    async def set_status(
        self, pane_id: str, text: str, auto_clear_on_focus: bool = False,
    ) -> None:
        """Show `text` as the status indicator of the pane's window.

        With auto_clear_on_focus the indicator is removed the next time the
        window gains focus, where the backend can observe focus changes.
        """

    @abstractmethod
    async def clear_status(self, pane_id: str) -> None:
        """Remove the status indicator. Absent indicators are not an error."""
