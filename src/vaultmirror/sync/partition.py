"""Split a changeset into round-robin shards, one per writer."""

from __future__ import annotations

from ..models import Change, ChangeSet, Shard


def partition(changeset: ChangeSet, workers: int) -> list[Shard]:
    """Deal changes out round-robin in path order.

    Change *i* lands in shard ``i % workers``. Empty shards are
    dropped, so at most ``min(workers, len(changeset))`` come back.

    Raises:
        ValueError: If workers is less than 1.
    """
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    buckets: list[list[Change]] = [[] for _ in range(workers)]
    for i, change in enumerate(changeset):
        buckets[i % workers].append(change)

    return [
        Shard(index=i, changes=tuple(bucket))
        for i, bucket in enumerate(buckets)
        if bucket
    ]
