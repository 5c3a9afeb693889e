"""Tests for the MirrorEngine end-to-end pipeline."""

from __future__ import annotations

import threading

import pytest

from conftest import FakeVault, endpoint, factory_for
from vaultmirror.errors import (
    CapabilityMismatchError,
    ConnectivityError,
    SyncCancelledError,
    TraversalError,
)
from vaultmirror.models import Action, ApiGeneration, SyncSettings
from vaultmirror.sync.engine import MirrorEngine

SRC = "http://src:8200"
DST = "http://dst:8200"


def _engine(source: FakeVault, destination: FakeVault, workers: int = 2) -> MirrorEngine:
    return MirrorEngine(
        endpoint(SRC),
        endpoint(DST),
        SyncSettings(workers=workers),
        client_factory=factory_for((SRC, source), (DST, destination)),
    )


class TestMirrorEngine:
    """Tests for MirrorEngine."""

    def test_copies_into_empty_destination(self, source: FakeVault, destination: FakeVault):
        source.put("a/x", {"v": 1})
        source.put("a/y", {"v": 2})
        source.put("b/z", {"v": 3})

        report = _engine(source, destination).sync()

        assert destination.secrets == source.secrets
        assert len(report.succeeded) == 3
        assert report.ok
        assert report.diff.source_count == 3

    def test_v1_copy(self):
        source = FakeVault(version="0.9.5", kv2=False)
        destination = FakeVault(version="0.9.1", kv2=False)
        source.put("app/db", {"pass": "p"})

        report = _engine(source, destination).sync()

        assert destination.get("app/db") == {"pass": "p"}
        assert report.ok

    def test_only_differing_secret_written(self, source: FakeVault, destination: FakeVault):
        source.put("same", {"v": 1})
        source.put("changed", {"v": 2})
        destination.put("same", {"v": 1})
        destination.put("changed", {"v": "old"})

        report = _engine(source, destination).sync()

        assert report.diff.changeset.paths() == ["secret/data/changed"]
        assert report.diff.changeset.get("secret/data/changed").action == Action.UPDATE
        assert destination.writes == ["secret/data/changed"]
        assert destination.get("changed") == {"v": 2}

    def test_destination_only_left_alone(self, source: FakeVault, destination: FakeVault):
        source.put("a", {"v": 1})
        destination.put("keep-me", {"v": 0})

        report = _engine(source, destination).sync()

        assert destination.get("keep-me") == {"v": 0}
        assert report.diff.destination_only == ["secret/data/keep-me"]

    def test_generation_mismatch_aborts_before_traversal(self, destination: FakeVault):
        source = FakeVault(version="0.9.5", kv2=False)
        source.put("a", {"v": 1})
        source.fail_list.add("secret")  # would raise if traversal started

        with pytest.raises(CapabilityMismatchError):
            _engine(source, destination).sync()
        assert destination.writes == []

    def test_mount_mismatch_aborts(self, source: FakeVault):
        destination = FakeVault(mount="kv")
        with pytest.raises(CapabilityMismatchError, match="mount"):
            _engine(source, destination).sync()

    def test_traversal_failure_means_no_writes(self, source: FakeVault, destination: FakeVault):
        source.put("a/x", {"v": 1})
        source.put("b/y", {"v": 2})
        source.fail_list.add("secret/metadata/b")

        with pytest.raises(TraversalError):
            _engine(source, destination).sync()
        assert destination.writes == []

    def test_connectivity_failure(self, source: FakeVault):
        def factory(ep, settings):
            if ep.address == DST:
                raise ConnectivityError("no route")
            return source

        engine = MirrorEngine(endpoint(SRC), endpoint(DST), client_factory=factory)
        with pytest.raises(ConnectivityError):
            engine.sync()

    def test_dry_run_writes_nothing(self, source: FakeVault, destination: FakeVault):
        source.put("a", {"v": 1})

        report = _engine(source, destination).sync(dry_run=True)

        assert report.dry_run
        assert report.diff.changeset.paths() == ["secret/data/a"]
        assert destination.writes == []
        assert report.ok

    def test_partial_failure_reported(self, source: FakeVault, destination: FakeVault):
        source.put("a", {"v": 1})
        source.put("b", {"v": 2})
        destination.fail_write.add("secret/data/b")

        report = _engine(source, destination).sync()

        assert [o.path for o in report.failed] == ["secret/data/b"]
        assert destination.get("a") == {"v": 1}
        assert not report.ok

    def test_list_secrets_source_only(self, source: FakeVault):
        source.put("a/x", {"v": 1})
        engine = MirrorEngine(endpoint(SRC), client_factory=factory_for((SRC, source)))

        snapshot = engine.list_secrets()

        assert list(snapshot) == ["secret/data/a/x"]
        assert engine.prepare().destination is None

    def test_plan_requires_destination(self, source: FakeVault):
        engine = MirrorEngine(endpoint(SRC), client_factory=factory_for((SRC, source)))
        with pytest.raises(ValueError, match="destination"):
            engine.plan()

    def test_capability_detected_once(self, source: FakeVault, destination: FakeVault):
        engine = _engine(source, destination)
        first = engine.prepare()
        source.version = "0.9.0"
        assert engine.prepare() is first
        assert first.capability.generation == ApiGeneration.V2

    def test_close_releases_sessions(self, source: FakeVault, destination: FakeVault):
        with _engine(source, destination) as engine:
            engine.prepare()
        assert source.sessions_closed == 1
        assert destination.sessions_closed == 1

    def test_cancel_during_enumeration_reads_nothing(self, source: FakeVault, destination: FakeVault):
        for i in range(20):
            source.put(f"s{i}", {"v": i})
        reads = []
        real_read = source.read

        def counting_read(path):
            reads.append(path)
            return real_read(path)

        source.read = counting_read
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SyncCancelledError):
            _engine(source, destination).sync(cancel_event=cancel)
        assert reads == []
        assert destination.writes == []

    def test_destination_sessions_bounded_by_workers(self, source: FakeVault, destination: FakeVault):
        """The planning session is closed before the writers open theirs."""
        source.put("a", {"v": 1})
        tracker = _SessionTracker(destination)

        def factory(ep, settings):
            if ep.address == SRC:
                return source
            return tracker.open()

        engine = MirrorEngine(
            endpoint(SRC), endpoint(DST), SyncSettings(workers=1), client_factory=factory,
        )
        report = engine.sync()

        assert report.ok
        assert tracker.peak == 1
        assert tracker.live == 0

    def test_engine_reusable_after_sync(self, source: FakeVault, destination: FakeVault):
        source.put("a", {"v": 1})
        engine = _engine(source, destination)
        engine.sync()
        source.put("b", {"v": 2})

        report = engine.sync()

        assert report.diff.changeset.paths() == ["secret/data/b"]
        assert destination.get("b") == {"v": 2}


class _SessionTracker:
    """Counts destination sessions open at the same time."""

    def __init__(self, store: FakeVault):
        self.store = store
        self.live = 0
        self.peak = 0
        self._lock = threading.Lock()

    def open(self) -> "_TrackedSession":
        with self._lock:
            self.live += 1
            self.peak = max(self.peak, self.live)
        return _TrackedSession(self)

    def release(self) -> None:
        with self._lock:
            self.live -= 1


class _TrackedSession:
    def __init__(self, tracker: _SessionTracker):
        self._tracker = tracker

    def __getattr__(self, name):
        return getattr(self._tracker.store, name)

    def close(self) -> None:
        self._tracker.release()
