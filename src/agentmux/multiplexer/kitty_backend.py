"""Kitty backend for the multiplexer abstraction.

Implements MultiplexerBackend over kitty's remote control protocol
(`kitty @ ...`). Requires `allow_remote_control` in kitty.conf; when the
caller is outside kitty, KITTY_LISTEN_ON selects the socket.

A "window" here is a kitty tab named by its title; pane IDs are kitty
window IDs. Text is passed on stdin so kitty does not interpret escapes.

Key class: KittyBackend(MultiplexerBackend).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..config import config
from .base import (
    BackendKind,
    CreateWindowRequest,
    MultiplexerBackend,
    MuxWindow,
    compose_title,
    strip_status,
    tail_lines,
)

logger = logging.getLogger(__name__)


class KittyBackend(MultiplexerBackend):
    """Manages kitty tabs for agent panes."""

    kind = BackendKind.KITTY

    async def _remote(self, *args: str, input_text: str | None = None) -> tuple[int, str, str]:
        """Run `kitty @ [--to <socket>] <args>`."""
        base = ["kitty", "@"]
        listen_on = os.environ.get("KITTY_LISTEN_ON")
        if listen_on:
            base += ["--to", listen_on]
        return await self._run(*base, *args, input_text=input_text)

    async def _list_tabs(self) -> list[dict[str, Any]] | None:
        rc, stdout, _ = await self._remote("ls")
        if rc != 0:
            return None
        try:
            os_windows = json.loads(stdout)
        except json.JSONDecodeError as e:
            logger.debug("Unparseable kitty ls output: %s", e)
            return None
        if not isinstance(os_windows, list):
            return None
        tabs: list[dict[str, Any]] = []
        for os_window in os_windows:
            if not isinstance(os_window, dict):
                continue
            os_tabs = os_window.get("tabs")
            if isinstance(os_tabs, list):
                tabs.extend(t for t in os_tabs if isinstance(t, dict))
        return tabs

    @staticmethod
    def _panes_of(tab: dict[str, Any]) -> list[dict[str, Any]]:
        windows = tab.get("windows")
        return [w for w in windows if isinstance(w, dict)] if isinstance(windows, list) else []

    async def _tab_of_pane(self, pane_id: str) -> dict[str, Any] | None:
        for tab in await self._list_tabs() or []:
            if any(str(w.get("id")) == pane_id for w in self._panes_of(tab)):
                return tab
        return None

    async def is_running(self) -> bool:
        return await self._list_tabs() is not None

    def current_pane_id(self) -> str | None:
        return os.environ.get("KITTY_WINDOW_ID") or None

    def instance_id(self) -> str:
        return os.environ.get("KITTY_LISTEN_ON") or "default"

    async def list_windows(self) -> list[MuxWindow]:
        windows: list[MuxWindow] = []
        for tab in await self._list_tabs() or []:
            panes = self._panes_of(tab)
            active = next((w for w in panes if w.get("is_focused")), panes[0] if panes else {})
            windows.append(
                MuxWindow(
                    window_id=str(tab.get("id", "")),
                    window_name=strip_status(str(tab.get("title") or "")),
                    cwd=str(active.get("cwd") or ""),
                    pane_id=str(active.get("id", "")),
                )
            )
        return windows

    async def create_window(self, request: CreateWindowRequest) -> str:
        """Launch a new tab titled with the full name and return its window ID."""
        await self._check_create(request)
        path = Path(request.cwd).expanduser().resolve()

        args = ["launch", "--type=tab", "--tab-title", request.full_name, "--cwd", str(path)]
        if request.after_window:
            windows = await self.list_windows()
            anchor = next((w for w in windows if w.window_id == request.after_window), None)
            if anchor and anchor.pane_id:
                args += ["--next-to", f"id:{anchor.pane_id}"]
            else:
                logger.debug("after_window %s is gone, appending", request.after_window)

        rc, stdout, stderr = await self._remote(*args)
        pane_id = stdout.strip()
        if rc != 0 or not pane_id:
            raise self._error("create_window", stderr.strip() or "launch returned no window ID")
        logger.info("Created tab '%s' at %s (window %s)", request.full_name, path, pane_id)
        return pane_id

    async def send_keys(self, pane_id: str, text: str) -> None:
        match = f"id:{pane_id}"
        rc, _, stderr = await self._remote("send-text", "--match", match, "--stdin", input_text=text)
        if rc != 0:
            raise self._error("send_keys", stderr.strip() or f"window {pane_id} not reachable")
        await asyncio.sleep(config.enter_delay)
        rc, _, stderr = await self._remote("send-text", "--match", match, "--stdin", input_text="\r")
        if rc != 0:
            raise self._error("send_keys", f"Failed to send Enter: {stderr.strip()}")

    async def capture_pane(self, pane_id: str, max_lines: int = 50) -> str | None:
        rc, stdout, _ = await self._remote("get-text", "--match", f"id:{pane_id}", "--extent", "all")
        if rc != 0:
            return None
        return tail_lines(stdout, max_lines)

    async def select_window(self, prefix: str, name: str) -> None:
        window = await self._require_window("select_window", f"{prefix}{name}")
        rc, _, stderr = await self._remote("focus-tab", "--match", f"id:{window.window_id}")
        if rc != 0:
            raise self._error("select_window", stderr.strip())

    async def kill_window(self, full_name: str) -> None:
        window = await self._require_window("kill_window", full_name)
        rc, _, stderr = await self._remote("close-tab", "--match", f"id:{window.window_id}")
        if rc != 0:
            raise self._error("kill_window", stderr.strip())
        logger.info("Killed tab %s (%s)", full_name, window.window_id)

    async def set_status(
        self, pane_id: str, text: str, auto_clear_on_focus: bool = False,
    ) -> None:
        tab = await self._tab_of_pane(pane_id)
        if tab is None:
            raise self._error("set_status", f"window {pane_id} not found")
        if auto_clear_on_focus:
            logger.debug("kitty cannot clear status on focus; keeping it until cleared")
        title = compose_title(text, strip_status(str(tab.get("title") or "")))
        rc, _, stderr = await self._remote("set-tab-title", "--match", f"id:{tab.get('id')}", title)
        if rc != 0:
            raise self._error("set_status", stderr.strip())

    async def clear_status(self, pane_id: str) -> None:
        tab = await self._tab_of_pane(pane_id)
        if tab is None:
            logger.debug("clear_status: window %s not found", pane_id)
            return
        title = str(tab.get("title") or "")
        base = strip_status(title)
        if base != title:
            await self._remote("set-tab-title", "--match", f"id:{tab.get('id')}", base)
