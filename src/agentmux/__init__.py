"""agentmux — terminal multiplexer windows and a shared status registry for coding agents."""

from .errors import AgentMuxError, IconConfigError, MuxError, NotInPaneError, StateStoreError
from .multiplexer import (
    BackendKind,
    CreateWindowRequest,
    MultiplexerBackend,
    MuxWindow,
    PaneKey,
    create_backend,
    detect_backend,
    get_mux,
)
from .state import AgentRecord, AgentStatus, StateStore

__all__ = [
    "AgentMuxError",
    "AgentRecord",
    "AgentStatus",
    "BackendKind",
    "CreateWindowRequest",
    "IconConfigError",
    "MultiplexerBackend",
    "MuxError",
    "MuxWindow",
    "NotInPaneError",
    "PaneKey",
    "StateStore",
    "StateStoreError",
    "create_backend",
    "detect_backend",
    "get_mux",
]
