"""Tests for the snapshot diff engine."""

from __future__ import annotations

import logging

from vaultmirror.models import Action, SecretSnapshot, SecretValue
from vaultmirror.sync.diff import compute_diff


def _snap(**entries) -> SecretSnapshot:
    return SecretSnapshot({
        path.replace("__", "/"): SecretValue.from_payload(value)
        for path, value in entries.items()
    })


class TestComputeDiff:
    """Tests for compute_diff()."""

    def test_identical_snapshots(self):
        src = _snap(a__x={"v": 1}, b__z={"v": 3})
        dst = _snap(a__x={"v": 1}, b__z={"v": 3})
        diff = compute_diff(src, dst)
        assert len(diff.changeset) == 0
        assert diff.destination_only == []
        assert diff.matching == 2
        assert not diff.has_changes

    def test_missing_in_destination_is_create(self):
        diff = compute_diff(_snap(a__x={"v": 1}), _snap())
        change = diff.changeset.get("a/x")
        assert change.action == Action.CREATE
        assert change.value == SecretValue.from_payload({"v": 1})

    def test_empty_destination_value_is_create(self):
        diff = compute_diff(_snap(a__x={"v": 1}), _snap(a__x={}))
        assert diff.changeset.get("a/x").action == Action.CREATE

    def test_different_value_is_update(self):
        diff = compute_diff(_snap(a__x={"v": 1}), _snap(a__x={"v": 2}))
        assert diff.changeset.get("a/x").action == Action.UPDATE

    def test_only_differing_path_changes(self):
        src = _snap(a__x={"v": 1}, a__y={"v": 2})
        dst = _snap(a__x={"v": 9}, a__y={"v": 2})
        diff = compute_diff(src, dst)
        assert diff.changeset.paths() == ["a/x"]
        assert diff.matching == 1

    def test_key_order_does_not_matter(self):
        src = _snap(a={"u": 1, "p": 2})
        dst = _snap(a={"p": 2, "u": 1})
        assert not compute_diff(src, dst).has_changes

    def test_destination_only_reported_not_changed(self, caplog):
        src = _snap(a={"v": 1})
        dst = _snap(a={"v": 1}, zz={"v": 0}, extra={"v": 0})
        with caplog.at_level(logging.WARNING, logger="vaultmirror.sync.diff"):
            diff = compute_diff(src, dst)
        assert diff.destination_only == ["extra", "zz"]
        assert len(diff.changeset) == 0
        assert "2 secret(s) not in the source" in caplog.text

    def test_empty_source_value_not_copied(self):
        diff = compute_diff(_snap(a={}), _snap())
        assert len(diff.changeset) == 0
        assert diff.skipped_empty == 1

    def test_source_entries_all_accounted_for(self):
        src = _snap(same={"v": 1}, new={"v": 2}, changed={"v": 3}, empty={})
        dst = _snap(same={"v": 1}, changed={"v": "old"})
        diff = compute_diff(src, dst)
        assert diff.matching == 1
        assert len(diff.changeset) == 2
        assert diff.skipped_empty == 1
        assert diff.matching + len(diff.changeset) + diff.skipped_empty == diff.source_count

    def test_counts(self):
        diff = compute_diff(_snap(a={"v": 1}, b={"v": 2}), _snap(c={"v": 3}))
        assert diff.source_count == 2
        assert diff.destination_count == 1

    def test_inputs_untouched(self):
        src = _snap(a={"v": 1})
        dst = _snap()
        compute_diff(src, dst)
        assert list(src) == ["a"]
        assert len(dst) == 0
