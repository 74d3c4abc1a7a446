"""Multiplexer abstraction package — backend-agnostic terminal multiplexer API.

Re-exports the core types and provides the factories:
  - MultiplexerBackend: ABC for all backends.
  - BackendKind, PaneKey, CreateWindowRequest, MuxWindow: boundary types.
  - detect_backend(): picks the backend kind from the environment.
  - create_backend(kind): returns a new adapter for that kind.
  - get_mux(): Returns the singleton backend instance for the kind detected
    on first use.
"""

from .base import BackendKind, CreateWindowRequest, MultiplexerBackend, MuxWindow, PaneKey
from .detect import detect_backend

__all__ = [
    "BackendKind",
    "CreateWindowRequest",
    "MultiplexerBackend",
    "MuxWindow",
    "PaneKey",
    "create_backend",
    "detect_backend",
    "get_mux",
]

_mux: MultiplexerBackend | None = None


def create_backend(kind: BackendKind) -> MultiplexerBackend:
    """Return a new adapter for `kind`."""
    if kind is BackendKind.TMUX:
        from .tmux_backend import TmuxBackend

        return TmuxBackend()
    if kind is BackendKind.WEZTERM:
        from .wezterm_backend import WezTermBackend

        return WezTermBackend()
    if kind is BackendKind.KITTY:
        from .kitty_backend import KittyBackend

        return KittyBackend()
    raise ValueError(f"Unknown multiplexer backend: {kind!r}")


def get_mux() -> MultiplexerBackend:
    """Return the singleton multiplexer backend.

    Lazily initialized on first call. The kind is detected once and does
    not change for the lifetime of the process.
    """
    global _mux
    if _mux is None:
        _mux = create_backend(detect_backend())
    return _mux
