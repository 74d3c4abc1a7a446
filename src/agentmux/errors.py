"""Exception types shared by the multiplexer adapters and the state store.

Hard failures (window creation, key injection, select/kill, status set,
state-store open/write) raise one of these. Soft queries never do; they log
and return a default instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .multiplexer.base import BackendKind


class AgentMuxError(Exception):
    """Base class for all agentmux errors."""


class MuxError(AgentMuxError):
    """A multiplexer operation failed."""

    def __init__(self, operation: str, backend: BackendKind, cause: str) -> None:
        self.operation = operation
        self.backend = backend
        self.cause = cause
        super().__init__(f"{backend.value} {operation} failed: {cause}")


class NotInPaneError(AgentMuxError):
    """The caller is not running inside a pane of the detected backend."""

    def __init__(self, backend: BackendKind) -> None:
        self.backend = backend
        super().__init__(f"Not running inside a {backend.value} pane")


class StateStoreError(AgentMuxError):
    """The agent state store could not be opened or written."""

    def __init__(self, path: Path, cause: str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"State store at {path}: {cause}")


class IconConfigError(AgentMuxError):
    """The status icon table could not be loaded."""
