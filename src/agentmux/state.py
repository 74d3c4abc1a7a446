"""Agent state store — the durable registry behind the dashboard.

One JSON file per pane under <state_dir>/agents/. Every agent process
updates only its own record, so writers to distinct panes never contend:
  - upsert(): read-modify-write under a per-key flock, atomic replace.
  - list_all(): lock-free scan; atomic replace guarantees readers never see
    a half-written file, and damaged files are skipped.

Records are never deleted here; sweeping stale panes is left to whoever
owns the dashboard.

Key class: StateStore. Key types: AgentStatus, AgentRecord.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .config import config
from .errors import StateStoreError
from .multiplexer.base import PaneKey
from .utils import atomic_write_json, locked

logger = logging.getLogger(__name__)

AGENTS_DIR = "agents"


class AgentStatus(str, Enum):
    """What an agent reports about itself."""

    WORKING = "working"
    WAITING = "waiting"
    DONE = "done"

    @classmethod
    def parse(cls, text: str) -> AgentStatus:
        try:
            return cls(str(text).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown agent status: {text!r}") from None


@dataclass
class AgentRecord:
    """Persistent state of one agent pane.

    Attributes:
        pane_key: Identity of the pane the agent runs in
        workdir: Absolute working directory captured when the record was created
        status: Last reported status (None until first reported)
        title: Optional pane title, e.g. a task summary
        status_ts: Unix seconds of the last status update
        updated_ts: Unix seconds of the last write of any field
    """

    pane_key: PaneKey
    workdir: str
    status: AgentStatus | None = None
    title: str | None = None
    status_ts: int | None = None
    updated_ts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pane_key": self.pane_key.to_dict(),
            "workdir": self.workdir,
            "status": self.status.value if self.status else None,
            "title": self.title,
            "status_ts": self.status_ts,
            "updated_ts": self.updated_ts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentRecord:
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        status = data.get("status")
        status_ts = data.get("status_ts")
        return cls(
            pane_key=PaneKey.from_dict(data["pane_key"]),
            workdir=str(data["workdir"]),
            status=AgentStatus.parse(status) if status else None,
            title=data.get("title"),
            status_ts=int(status_ts) if status_ts is not None else None,
            updated_ts=int(data.get("updated_ts") or 0),
        )


def _record_stem(key: PaneKey) -> str:
    digest = hashlib.sha1(f"{key.instance}\0{key.pane_id}".encode("utf-8")).hexdigest()
    return f"{key.backend.value}-{digest[:16]}"


class StateStore:
    """File-backed registry of AgentRecords, safe across processes."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.agents_dir = root / AGENTS_DIR

    @classmethod
    def open(cls, root: Path | None = None) -> StateStore:
        """Open (creating if needed) the store at `root` or config.state_dir."""
        store = cls(Path(root) if root is not None else config.state_dir)
        try:
            store.agents_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateStoreError(store.agents_dir, str(e)) from e
        if not os.access(store.agents_dir, os.W_OK | os.X_OK):
            raise StateStoreError(store.agents_dir, "directory is not writable")
        return store

    def _record_path(self, key: PaneKey) -> Path:
        return self.agents_dir / f"{_record_stem(key)}.json"

    def _read(self, path: Path) -> AgentRecord | None:
        try:
            return AgentRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Skipping damaged agent record %s: %s", path.name, e)
            return None

    def get(self, pane_key: PaneKey) -> AgentRecord | None:
        """Return the record for `pane_key`, or None."""
        return self._read(self._record_path(pane_key))

    def upsert(
        self,
        pane_key: PaneKey,
        status: AgentStatus | None = None,
        title: str | None = None,
        workdir: str | Path | None = None,
    ) -> AgentRecord:
        """Create or partially update the record for `pane_key`.

        Only the supplied fields change. Supplying a status always refreshes
        status_ts. The working directory is captured only on creation.
        """
        path = self._record_path(pane_key)
        try:
            with locked(path.with_suffix(".lock")):
                now = int(time.time())
                record = self._read(path)
                if record is None:
                    record = AgentRecord(
                        pane_key=pane_key,
                        workdir=str(Path(workdir or Path.cwd()).absolute()),
                    )
                    logger.info("Registering agent pane %s", pane_key.pane_id)
                if status is not None:
                    record.status = status
                    record.status_ts = now
                if title is not None:
                    record.title = title
                record.updated_ts = now
                atomic_write_json(path, record.to_dict())
        except OSError as e:
            raise StateStoreError(path, str(e)) from e

        logger.debug(
            "Updated agent %s: status=%s, title=%s",
            pane_key.pane_id,
            record.status.value if record.status else None,
            record.title,
        )
        return record

    def list_all(self) -> list[AgentRecord]:
        """Return every readable record; damaged files are skipped."""
        records: list[AgentRecord] = []
        try:
            paths = sorted(self.agents_dir.glob("*.json"))
        except OSError as e:
            logger.warning("Cannot scan %s: %s", self.agents_dir, e)
            return records
        for path in paths:
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records
