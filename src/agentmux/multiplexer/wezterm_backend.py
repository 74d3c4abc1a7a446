"""WezTerm backend for the multiplexer abstraction.

Implements MultiplexerBackend on top of `wezterm cli` via
asyncio.create_subprocess_exec. A "window" here is a WezTerm tab, named by
its tab title; pane IDs are the numeric IDs `wezterm cli` prints.

Limitations vs tmux:
  - The after_window ordering hint is ignored (spawn always appends).
  - The status indicator lives in the tab title ("<glyph> │ <name>");
    auto-clear on focus is not available through the CLI.

Key class: WezTermBackend(MultiplexerBackend).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

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


def _cwd_from_url(value: str) -> str:
    """WezTerm reports cwd as a file:// URL."""
    if value.startswith("file://"):
        return unquote(urlparse(value).path)
    return value


class WezTermBackend(MultiplexerBackend):
    """Manages WezTerm tabs for agent panes."""

    kind = BackendKind.WEZTERM

    async def _cli(self, *args: str) -> tuple[int, str, str]:
        """Run `wezterm cli <args>`."""
        return await self._run("wezterm", "cli", *args)

    async def _list_panes(self) -> list[dict[str, Any]] | None:
        rc, stdout, _ = await self._cli("list", "--format", "json")
        if rc != 0:
            return None
        try:
            rows = json.loads(stdout)
        except json.JSONDecodeError as e:
            logger.debug("Unparseable wezterm pane list: %s", e)
            return None
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else None

    async def _pane_row(self, pane_id: str) -> dict[str, Any] | None:
        for row in await self._list_panes() or []:
            if str(row.get("pane_id")) == pane_id:
                return row
        return None

    @staticmethod
    def _tab_title(row: dict[str, Any]) -> str:
        return str(row.get("tab_title") or row.get("title") or "")

    async def is_running(self) -> bool:
        return await self._list_panes() is not None

    def current_pane_id(self) -> str | None:
        return os.environ.get("WEZTERM_PANE") or None

    def instance_id(self) -> str:
        return os.environ.get("WEZTERM_UNIX_SOCKET") or "default"

    async def list_windows(self) -> list[MuxWindow]:
        """List tabs, one MuxWindow per tab_id, active pane first."""
        tabs: dict[str, MuxWindow] = {}
        for row in await self._list_panes() or []:
            tab_id = str(row.get("tab_id", ""))
            window = MuxWindow(
                window_id=tab_id,
                window_name=strip_status(self._tab_title(row)),
                cwd=_cwd_from_url(str(row.get("cwd") or "")),
                pane_id=str(row.get("pane_id", "")),
            )
            if tab_id not in tabs or row.get("is_active"):
                tabs[tab_id] = window
        return list(tabs.values())

    async def create_window(self, request: CreateWindowRequest) -> str:
        """Spawn a new tab in request.cwd and title it with the full name."""
        await self._check_create(request)
        path = Path(request.cwd).expanduser().resolve()
        if request.after_window:
            logger.debug("wezterm ignores after_window=%s", request.after_window)

        rc, stdout, stderr = await self._cli("spawn", "--cwd", str(path))
        pane_id = stdout.strip()
        if rc != 0 or not pane_id:
            raise self._error("create_window", stderr.strip() or "spawn returned no pane ID")

        rc, _, stderr = await self._cli("set-tab-title", "--pane-id", pane_id, request.full_name)
        if rc != 0:
            await self._cli("kill-pane", "--pane-id", pane_id)
            raise self._error("create_window", f"Failed to name tab: {stderr.strip()}")

        logger.info("Created tab '%s' at %s (pane %s)", request.full_name, path, pane_id)
        return pane_id

    async def send_keys(self, pane_id: str, text: str) -> None:
        """Send text without bracketed paste, wait, then send a carriage return."""
        rc, _, stderr = await self._cli("send-text", "--pane-id", pane_id, "--no-paste", "--", text)
        if rc != 0:
            raise self._error("send_keys", stderr.strip() or f"pane {pane_id} not reachable")
        await asyncio.sleep(config.enter_delay)
        rc, _, stderr = await self._cli("send-text", "--pane-id", pane_id, "--no-paste", "\r")
        if rc != 0:
            raise self._error("send_keys", f"Failed to send Enter: {stderr.strip()}")

    async def capture_pane(self, pane_id: str, max_lines: int = 50) -> str | None:
        rc, stdout, _ = await self._cli(
            "get-text", "--pane-id", pane_id, "--start-line", f"-{max_lines}",
        )
        if rc != 0:
            return None
        return tail_lines(stdout, max_lines)

    async def select_window(self, prefix: str, name: str) -> None:
        window = await self._require_window("select_window", f"{prefix}{name}")
        rc, _, stderr = await self._cli("activate-tab", "--tab-id", window.window_id)
        if rc != 0:
            raise self._error("select_window", stderr.strip())

    async def kill_window(self, full_name: str) -> None:
        window = await self._require_window("kill_window", full_name)
        pane_ids = [
            str(row.get("pane_id"))
            for row in await self._list_panes() or []
            if str(row.get("tab_id")) == window.window_id
        ] or [window.pane_id]
        for pane_id in pane_ids:
            rc, _, stderr = await self._cli("kill-pane", "--pane-id", pane_id)
            if rc != 0:
                raise self._error("kill_window", stderr.strip())
        logger.info("Killed tab %s (%s)", full_name, window.window_id)

    async def set_status(
        self, pane_id: str, text: str, auto_clear_on_focus: bool = False,
    ) -> None:
        row = await self._pane_row(pane_id)
        if row is None:
            raise self._error("set_status", f"pane {pane_id} not found")
        if auto_clear_on_focus:
            logger.debug("wezterm cannot clear status on focus; keeping it until cleared")
        title = compose_title(text, strip_status(self._tab_title(row)))
        rc, _, stderr = await self._cli("set-tab-title", "--pane-id", pane_id, title)
        if rc != 0:
            raise self._error("set_status", stderr.strip())

    async def clear_status(self, pane_id: str) -> None:
        row = await self._pane_row(pane_id)
        if row is None:
            logger.debug("clear_status: pane %s not found", pane_id)
            return
        title = self._tab_title(row)
        base = strip_status(title)
        if base != title:
            await self._cli("set-tab-title", "--pane-id", pane_id, base)
