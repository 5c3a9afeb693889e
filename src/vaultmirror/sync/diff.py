"""
Diff engine -- which source secrets the destination lacks or disagrees on.

Additive only: destination-only secrets are counted and reported but
never turned into changes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..models import (
    Action,
    Change,
    ChangeSet,
    DiffResult,
    SecretValue,
)

logger = logging.getLogger("vaultmirror.sync.diff")


def compute_diff(
    source: Mapping[str, SecretValue],
    destination: Mapping[str, SecretValue],
) -> DiffResult:
    """Compare two snapshots.

    Args:
        source: Snapshot of the source store.
        destination: Snapshot of the destination store.

    Returns:
        DiffResult with the changeset, the matching and skipped-empty
        counts, and the destination-only paths.
    """
    changes: list[Change] = []
    matching = 0
    skipped_empty = 0

    for path in sorted(source):
        value = source[path]
        if value.is_missing:
            logger.debug("Source %s has no data; not copying", path)
            skipped_empty += 1
            continue

        existing = destination.get(path)
        if existing is None or existing.is_missing:
            changes.append(Change(path, Action.CREATE, value))
        elif existing != value:
            changes.append(Change(path, Action.UPDATE, value))
        else:
            matching += 1

    destination_only = sorted(p for p in destination if p not in source)
    if destination_only:
        logger.warning(
            "Destination has %d secret(s) not in the source; leaving them alone",
            len(destination_only),
        )

    result = DiffResult(
        changeset=ChangeSet(tuple(changes)),
        matching=matching,
        skipped_empty=skipped_empty,
        destination_only=destination_only,
        source_count=len(source),
        destination_count=len(destination),
    )
    logger.info(
        "Diff: %d to create, %d to update, %d matching, %d empty skipped",
        len(result.changeset.by_action(Action.CREATE)),
        len(result.changeset.by_action(Action.UPDATE)),
        matching,
        skipped_empty,
    )
    return result
