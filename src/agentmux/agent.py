"""Agent-facing status workflow.

Entry points an agent process calls about itself:
  - detect_environment(): backend kind, liveness, and the caller's pane.
  - set_agent_status(): persist status/title, then update the pane's glyph.
  - clear_agent_status(): drop the glyph from the caller's pane.
  - list_agents(): every record in the state store (dashboard view).

Persisting is mandatory; the visual indicator is best-effort and never
fails the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import MuxError, NotInPaneError
from .icons import resolve_icon
from .multiplexer import BackendKind, MultiplexerBackend, get_mux
from .state import AgentRecord, AgentStatus, StateStore

logger = logging.getLogger(__name__)


@dataclass
class MuxEnvironment:
    """Snapshot of the multiplexer the caller is running under."""

    backend: BackendKind
    is_running: bool
    pane_id: str | None


def _require_pane(mux: MultiplexerBackend) -> str:
    pane_id = mux.current_pane_id()
    if pane_id is None:
        raise NotInPaneError(mux.kind)
    return pane_id


async def detect_environment() -> MuxEnvironment:
    mux = get_mux()
    return MuxEnvironment(
        backend=mux.kind,
        is_running=await mux.is_running(),
        pane_id=mux.current_pane_id(),
    )


async def set_agent_status(
    status: AgentStatus, title: str | None = None, store: StateStore | None = None,
) -> AgentRecord:
    """Record `status` for the caller's pane and show its icon.

    Raises NotInPaneError outside a pane and StateStoreError if the record
    cannot be written.
    """
    mux = get_mux()
    pane_id = _require_pane(mux)

    store = store or StateStore.open()
    record = store.upsert(mux.pane_key(pane_id), status=status, title=title)

    icon = resolve_icon(status)
    if icon is not None:
        try:
            await mux.set_status(pane_id, icon, False)
        except MuxError as e:
            logger.warning("Status indicator not updated: %s", e)
    return record


async def clear_agent_status() -> None:
    """Remove the status icon from the caller's pane."""
    mux = get_mux()
    pane_id = _require_pane(mux)
    await mux.clear_status(pane_id)


def list_agents(store: StateStore | None = None) -> list[AgentRecord]:
    return (store or StateStore.open()).list_all()
