"""Tmux backend for the multiplexer abstraction.

Wraps libtmux to provide the shared adapter operations against the tmux
server the caller belongs to:
  - list_windows / find_window_by_name: discover agent windows.
  - create_window / select_window / kill_window: lifecycle management.
  - send_keys / capture_pane: terminal I/O by pane ID ("%12").
  - set_status / clear_status: window user option @agentmux_status, spliced
    into window-status-format so the glyph shows in the status bar.

All blocking libtmux calls run in asyncio.to_thread() bounded by
config.command_timeout.

Key class: TmuxBackend(MultiplexerBackend).
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, TypeVar

import libtmux
from libtmux.exc import LibTmuxException

from ..config import config
from .base import BackendKind, CreateWindowRequest, MultiplexerBackend, MuxWindow, tail_lines

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_OPTION = "@agentmux_status"
# Prepended to window-status-format / window-status-current-format once
STATUS_FORMAT = f"#{{?{STATUS_OPTION},#{{{STATUS_OPTION}}} ,}}"


class TmuxBackend(MultiplexerBackend):
    """Manages tmux windows for agent panes."""

    kind = BackendKind.TMUX

    def __init__(self, socket_name: str | None = None) -> None:
        self.socket_name = socket_name
        self._server: libtmux.Server | None = None

    @property
    def server(self) -> libtmux.Server:
        """Get or create tmux server connection."""
        if self._server is None:
            self._server = libtmux.Server(socket_name=self.socket_name)
        return self._server

    async def _in_thread(self, func: Callable[[], T]) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(func), timeout=config.command_timeout,
        )

    def _cmd(self, operation: str, *args: str) -> list[str]:
        """Run a raw tmux command, raising MuxError on a non-zero exit."""
        result: Any = self.server.cmd(*args)
        if result.returncode != 0:
            cause = "\n".join(result.stderr or []) or f"tmux {args[0]} exited {result.returncode}"
            raise self._error(operation, cause)
        return list(result.stdout or [])

    def _find_pane(self, pane_id: str) -> Any:
        for pane in self.server.panes:
            if pane.pane_id == pane_id:
                return pane
        return None

    async def is_running(self) -> bool:
        try:
            return bool(await self._in_thread(self.server.is_alive))
        except Exception as e:
            logger.debug("tmux liveness check failed: %s", e)
            return False

    def current_pane_id(self) -> str | None:
        if not os.environ.get("TMUX"):
            return None
        return os.environ.get("TMUX_PANE") or None

    def instance_id(self) -> str:
        # $TMUX is "<socket path>,<server pid>,<session index>"
        tmux_env = os.environ.get("TMUX", "")
        socket_path = tmux_env.split(",", 1)[0]
        return socket_path or self.socket_name or "default"

    async def list_windows(self) -> list[MuxWindow]:
        """List all windows on the server with their active pane."""

        def _sync_list_windows() -> list[MuxWindow]:
            windows: list[MuxWindow] = []
            for window in self.server.windows:
                try:
                    pane = window.active_pane
                    windows.append(
                        MuxWindow(
                            window_id=window.window_id or "",
                            window_name=window.window_name or "",
                            cwd=(pane.pane_current_path or "") if pane else "",
                            pane_id=(pane.pane_id or "") if pane else "",
                        )
                    )
                except Exception as e:
                    logger.debug(f"Error getting window info: {e}")
            return windows

        try:
            return await self._in_thread(_sync_list_windows)
        except Exception as e:
            logger.debug("tmux list_windows failed: %s", e)
            return []

    async def _hard(self, operation: str, func: Callable[[], T]) -> T:
        """Run a state-changing libtmux call, surfacing failures as MuxError."""
        try:
            return await self._in_thread(func)
        except asyncio.TimeoutError:
            raise self._error(operation, f"timed out after {config.command_timeout:.1f}s") from None
        except LibTmuxException as e:
            raise self._error(operation, str(e)) from e

    async def create_window(self, request: CreateWindowRequest) -> str:
        """Create a detached tmux window and return its pane ID."""
        await self._check_create(request)
        path = Path(request.cwd).expanduser().resolve()

        args = ["new-window", "-d", "-P", "-F", "#{pane_id}", "-n", request.full_name, "-c", str(path)]
        if request.after_window:
            windows = await self.list_windows()
            if any(w.window_id == request.after_window for w in windows):
                args += ["-a", "-t", request.after_window]
            else:
                logger.debug("after_window %s is gone, appending", request.after_window)

        def _create() -> str:
            out = self._cmd("create_window", *args)
            pane_id = out[0].strip() if out else ""
            if not pane_id:
                raise self._error("create_window", "tmux did not report a pane ID")
            return pane_id

        pane_id = await self._hard("create_window", _create)
        logger.info("Created window '%s' at %s (pane %s)", request.full_name, path, pane_id)
        return pane_id

    async def send_keys(self, pane_id: str, text: str) -> None:
        """Send text literally, wait, then press Enter."""
        # Agent TUIs may treat an Enter arriving in the same input batch as
        # the text as a newline instead of submit; keep them apart.

        def _send(keys: str, enter: bool, literal: bool) -> None:
            pane = self._find_pane(pane_id)
            if pane is None:
                raise self._error("send_keys", f"pane {pane_id} not found")
            pane.send_keys(keys, enter=enter, literal=literal)

        await self._hard("send_keys", lambda: _send(text, False, True))
        await asyncio.sleep(config.enter_delay)
        await self._hard("send_keys", lambda: _send("", True, False))

    async def capture_pane(self, pane_id: str, max_lines: int = 50) -> str | None:
        try:
            out = await self._in_thread(
                lambda: self._cmd(
                    "capture_pane", "capture-pane", "-p", "-t", pane_id, "-S", f"-{max_lines}",
                )
            )
        except Exception as e:
            logger.debug("Failed to capture pane %s: %s", pane_id, e)
            return None
        return tail_lines("\n".join(out), max_lines)

    async def select_window(self, prefix: str, name: str) -> None:
        window = await self._require_window("select_window", f"{prefix}{name}")
        await self._hard(
            "select_window",
            lambda: self._cmd("select_window", "select-window", "-t", window.window_id),
        )

    async def kill_window(self, full_name: str) -> None:
        window = await self._require_window("kill_window", full_name)
        await self._hard(
            "kill_window",
            lambda: self._cmd("kill_window", "kill-window", "-t", window.window_id),
        )
        logger.info("Killed window %s (%s)", full_name, window.window_id)

    def _ensure_status_format(self) -> None:
        """Make the global window-status formats show the status option."""
        for option in ("window-status-format", "window-status-current-format"):
            fmt = "\n".join(self._cmd("set_status", "show-options", "-gwv", option))
            if STATUS_OPTION in fmt:
                continue
            self._cmd("set_status", "set-option", "-gw", option, STATUS_FORMAT + fmt)

    async def set_status(
        self, pane_id: str, text: str, auto_clear_on_focus: bool = False,
    ) -> None:
        def _set() -> None:
            if self._find_pane(pane_id) is None:
                raise self._error("set_status", f"pane {pane_id} not found")
            self._cmd("set_status", "set-option", "-w", "-t", pane_id, STATUS_OPTION, text)
            if auto_clear_on_focus:
                self._cmd(
                    "set_status", "set-hook", "-w", "-t", pane_id, "pane-focus-in",
                    f"set-option -wu {STATUS_OPTION}",
                )
            self._ensure_status_format()

        await self._hard("set_status", _set)

    async def clear_status(self, pane_id: str) -> None:
        def _clear() -> None:
            self.server.cmd("set-option", "-wu", "-t", pane_id, STATUS_OPTION)
            self.server.cmd("set-hook", "-wu", "-t", pane_id, "pane-focus-in")

        try:
            await self._in_thread(_clear)
        except Exception as e:
            logger.debug("Failed to clear status on %s: %s", pane_id, e)
