"""Tests for StateStore — per-pane records, partial updates, concurrency."""

import fcntl
import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import SimpleNamespace

import pytest

from agentmux.errors import StateStoreError
from agentmux.multiplexer.base import BackendKind, PaneKey
from agentmux.state import AgentRecord, AgentStatus, StateStore


def _key(pane_id: str = "%1", backend: BackendKind = BackendKind.TMUX) -> PaneKey:
    return PaneKey(backend=backend, instance="/tmp/tmux-1000/default", pane_id=pane_id)


def _freeze_clock(monkeypatch, *ticks: float) -> None:
    """Make successive upserts observe the given Unix times."""
    clock = iter(ticks)
    monkeypatch.setattr("agentmux.state.time", SimpleNamespace(time=lambda: next(clock)))


@pytest.fixture
def store(state_root: Path) -> StateStore:
    return StateStore.open(state_root)


class TestOpen:
    def test_creates_directory(self, state_root: Path):
        store = StateStore.open(state_root)
        assert store.agents_dir.is_dir()
        assert store.list_all() == []

    def test_uses_configured_dir(self, monkeypatch, tmp_path: Path):
        monkeypatch.setattr("agentmux.config.config.state_dir", tmp_path / "configured")
        store = StateStore.open()
        assert store.agents_dir == tmp_path / "configured" / "agents"

    def test_unusable_location(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises(StateStoreError) as exc_info:
            StateStore.open(blocker)
        assert "not-a-dir" in str(exc_info.value)


class TestUpsert:
    def test_creates_record(self, store: StateStore, work_dir: Path):
        record = store.upsert(_key(), status=AgentStatus.WORKING, title="fix tests", workdir=work_dir)

        assert record.status is AgentStatus.WORKING
        assert record.title == "fix tests"
        assert record.workdir == str(work_dir.absolute())
        assert record.status_ts is not None
        assert store.get(_key()) == record

    def test_workdir_defaults_to_cwd(self, store: StateStore, work_dir: Path, monkeypatch):
        monkeypatch.chdir(work_dir)
        record = store.upsert(_key(), status=AgentStatus.WORKING)
        assert Path(record.workdir) == work_dir.absolute()

    def test_partial_update_keeps_other_fields(self, store: StateStore, work_dir: Path):
        store.upsert(_key(), status=AgentStatus.WORKING, title="refactor", workdir=work_dir)
        record = store.upsert(_key(), status=AgentStatus.WAITING, workdir="/elsewhere")

        assert record.status is AgentStatus.WAITING
        assert record.title == "refactor"
        assert record.workdir == str(work_dir.absolute())

    def test_status_refreshes_timestamp(self, store: StateStore, monkeypatch):
        _freeze_clock(monkeypatch, 1000.0, 1005.0, 1010.0)

        first = store.upsert(_key(), status=AgentStatus.WORKING)
        second = store.upsert(_key(), status=AgentStatus.DONE)
        third = store.upsert(_key(), title="renamed")

        assert first.status_ts == 1000
        assert second.status is AgentStatus.DONE
        assert second.status_ts == 1005
        assert third.status_ts == 1005
        assert third.updated_ts == 1010

    def test_repeated_status_still_refreshes(self, store: StateStore, monkeypatch):
        _freeze_clock(monkeypatch, 50.0, 60.0)
        store.upsert(_key(), status=AgentStatus.WORKING)
        assert store.upsert(_key(), status=AgentStatus.WORKING).status_ts == 60

    def test_keys_are_distinct_per_backend_and_instance(self, store: StateStore):
        store.upsert(_key("1", BackendKind.WEZTERM), status=AgentStatus.WORKING)
        store.upsert(_key("1", BackendKind.KITTY), status=AgentStatus.DONE)
        other = PaneKey(BackendKind.KITTY, "unix:/tmp/other", "1")
        store.upsert(other, status=AgentStatus.WAITING)

        assert len(store.list_all()) == 3
        assert store.get(other).status is AgentStatus.WAITING

    def test_on_disk_layout(self, store: StateStore):
        store.upsert(_key(), status=AgentStatus.DONE, title="t")
        (path,) = store.agents_dir.glob("*.json")
        assert path.name.startswith("tmux-")
        data = json.loads(path.read_text())
        assert data["status"] == "done"
        assert data["pane_key"] == {
            "backend": "tmux", "instance": "/tmp/tmux-1000/default", "pane_id": "%1",
        }

    def test_write_failure(self, store: StateStore, monkeypatch):
        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("agentmux.state.atomic_write_json", boom)
        with pytest.raises(StateStoreError, match="disk full"):
            store.upsert(_key(), status=AgentStatus.WORKING)


class TestGet:
    def test_missing(self, store: StateStore):
        assert store.get(_key("%404")) is None


class TestListAll:
    def test_skips_damaged_and_temp_files(self, store: StateStore):
        store.upsert(_key("%1"), status=AgentStatus.WORKING)
        store.upsert(_key("%2"), status=AgentStatus.DONE)
        (store.agents_dir / "tmux-truncated.json").write_text('{"pane_key": {"backend": "tm')
        (store.agents_dir / "tmux-wrongshape.json").write_text("[1, 2, 3]")
        (store.agents_dir / ".tmux-x.json.abc123.tmp").write_text("{}")

        records = store.list_all()
        assert sorted(r.pane_key.pane_id for r in records) == ["%1", "%2"]

    @pytest.mark.parametrize("content", [
        "[1, 2, 3]",
        "null",
        '"x"',
        '{"pane_key": {"backend": "tmux", "instance": "default", "pane_id": "%9"},'
        ' "workdir": "/x", "status": 5}',
        '{"pane_key": "tmux:%9", "workdir": "/x"}',
    ], ids=["list", "null", "string", "numeric-status", "flat-key"])
    def test_skips_wrong_shape(self, store: StateStore, content: str):
        store.upsert(_key("%1"), status=AgentStatus.WORKING)
        (store.agents_dir / "tmux-damaged.json").write_text(content)

        (record,) = store.list_all()
        assert record.pane_key.pane_id == "%1"

    def test_upsert_replaces_damaged_record(self, store: StateStore):
        store.upsert(_key(), status=AgentStatus.WORKING)
        (path,) = store.agents_dir.glob("*.json")
        path.write_text("[1, 2, 3]")

        record = store.upsert(_key(), status=AgentStatus.DONE)

        assert record.status is AgentStatus.DONE
        assert store.get(_key()) == record

    def test_round_trips_optional_fields(self, store: StateStore):
        store.upsert(_key(), title="only a title")
        (record,) = store.list_all()
        assert record.status is None
        assert record.status_ts is None
        assert record.title == "only a title"


class TestConcurrency:
    def test_distinct_keys_in_parallel(self, store: StateStore):
        n = 32

        def register(i: int) -> AgentRecord:
            return store.upsert(_key(f"%{i}"), status=AgentStatus.WORKING, title=f"agent {i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(register, range(n)))

        records = store.list_all()
        assert len(records) == n
        assert {r.title for r in records} == {f"agent {i}" for i in range(n)}

    def test_clock_read_under_lock(self, store: StateStore, monkeypatch):
        held = []

        def tick() -> float:
            lock = store._record_path(_key()).with_suffix(".lock")
            with open(lock, "w") as other:
                try:
                    fcntl.flock(other, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    held.append(True)
                else:
                    held.append(False)
            return 1000.0

        monkeypatch.setattr("agentmux.state.time", SimpleNamespace(time=tick))
        store.upsert(_key(), status=AgentStatus.WORKING)
        assert held == [True]

    def test_same_key_races_leave_one_valid_record(self, store: StateStore):
        statuses = list(AgentStatus) * 10

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda s: store.upsert(_key(), status=s), statuses))

        (record,) = store.list_all()
        assert record.status in set(AgentStatus)
        assert record.status_ts is not None
