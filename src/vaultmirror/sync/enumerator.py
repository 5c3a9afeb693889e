"""
Recursive enumerator -- walk a KV subtree into a flat snapshot.

Either the whole tree is read or an error is raised. A half-built
snapshot would make the diff mistake unread subtrees for absent ones,
so nothing partial ever leaves this module.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..client import StoreClient
from ..errors import (
    NotFoundError,
    PayloadError,
    SyncCancelledError,
    TraversalError,
    VaultMirrorError,
)
from ..models import (
    DEFAULT_MAX_DEPTH,
    PATH_DELIMITER,
    SecretSnapshot,
    SecretValue,
    StoreCapability,
    join_path,
    normalize_path,
)

logger = logging.getLogger("vaultmirror.sync.enumerator")


class _Walker:
    """Depth-first traversal state for one enumeration."""

    def __init__(
        self,
        client: StoreClient,
        capability: StoreCapability,
        max_depth: int,
        cancel: Optional[threading.Event] = None,
    ):
        self.client = client
        self.capability = capability
        self.max_depth = max_depth
        self.cancel = cancel
        self.entries: dict[str, SecretValue] = {}

    def check_cancelled(self, path: str) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise SyncCancelledError(f"Enumeration cancelled at {path}")

    def walk(self, path: str, depth: int) -> None:
        if depth > self.max_depth:
            raise TraversalError(
                f"Exceeded maximum depth {self.max_depth} at {path}"
            )

        self.check_cancelled(path)
        try:
            children = self.client.list(path)
        except NotFoundError:
            # Vault answers 404 for an empty or absent directory.
            logger.debug("Nothing listed under %s", path)
            return
        except VaultMirrorError as exc:
            raise TraversalError(f"Listing {path} failed: {exc}") from exc

        for name in children:
            if name.endswith(PATH_DELIMITER):
                child = name.rstrip(PATH_DELIMITER)
                if not child:
                    raise TraversalError(f"Empty directory name under {path}")
                self.walk(join_path(path, child), depth + 1)
            else:
                self.read_leaf(join_path(path, name))

    def read_leaf(self, list_path: str) -> None:
        read_path = self.capability.read_path(list_path)
        self.check_cancelled(read_path)
        try:
            raw = self.client.read(read_path)
        except NotFoundError:
            logger.warning("Secret %s vanished or is deleted; skipping", read_path)
            return
        except VaultMirrorError as exc:
            raise TraversalError(f"Reading {read_path} failed: {exc}") from exc

        try:
            value = SecretValue.from_payload(self.capability.unwrap(raw), read_path)
        except PayloadError as exc:
            raise TraversalError(str(exc)) from exc

        if value.is_missing:
            logger.debug("Secret %s has no data", read_path)
        self.entries[read_path] = value


def enumerate_tree(
    client: StoreClient,
    capability: StoreCapability,
    root: Optional[str] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    cancel_event: Optional[threading.Event] = None,
) -> SecretSnapshot:
    """Enumerate every secret under a root into a snapshot.

    Args:
        client: Session against the store being read.
        capability: Detected capability of that store.
        root: Listing path to start from. Defaults to the
            capability's traversal root.
        max_depth: Deepest directory level to descend into.
        cancel_event: When set, enumeration stops before the next
            list or read.

    Returns:
        SecretSnapshot keyed by each secret's read path.

    Raises:
        TraversalError: If any listing or read fails, or the tree is
            deeper than max_depth.
        SyncCancelledError: If cancel_event is set mid-walk.
    """
    start = normalize_path(root) if root is not None else capability.traversal_root
    walker = _Walker(client, capability, max_depth, cancel_event)
    walker.walk(start, 0)
    snapshot = SecretSnapshot(walker.entries)
    logger.info("Enumerated %d secrets under %s", len(snapshot), start)
    return snapshot
