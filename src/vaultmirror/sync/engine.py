"""
Mirror Engine -- orchestrates detection, traversal, diff, and writes.

    vaultmirror sync              ->  detect(src) -> enumerate(src) -> print
    vaultmirror sync --do-copy    ->  detect(src, dst) -> check -> enumerate both
                                      -> diff -> partition -> parallel write

Capabilities are detected once per run and frozen into a RunContext.
Every fatal error propagates out of here untouched.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..client import StoreClient
from ..models import (
    DiffResult,
    RunContext,
    SecretSnapshot,
    StoreEndpoint,
    SyncReport,
    SyncSettings,
)
from .capability import check_compatible, detect_capability
from .diff import compute_diff
from .enumerator import enumerate_tree
from .partition import partition
from .writer import ClientFactory, WriterPool, default_client_factory

logger = logging.getLogger("vaultmirror.sync.engine")


class MirrorEngine:
    """Copies a KV secret tree from a source Vault to a destination.

    Args:
        source: Source endpoint (address and token).
        destination: Destination endpoint; required for plan/sync.
        settings: Worker count, depth bound, timeouts.
        client_factory: Opens a session for an endpoint. Swapped out
            in tests for an in-memory store.
    """

    def __init__(
        self,
        source: StoreEndpoint,
        destination: Optional[StoreEndpoint] = None,
        settings: Optional[SyncSettings] = None,
        client_factory: ClientFactory = default_client_factory,
    ):
        self.source = source
        self.destination = destination
        self.settings = settings or SyncSettings()
        self.client_factory = client_factory

        self._context: Optional[RunContext] = None
        self._source_client: Optional[StoreClient] = None
        self._destination_client: Optional[StoreClient] = None

    def prepare(self) -> RunContext:
        """Connect to both stores, detect capabilities, and check them.

        Runs once; later calls return the same context.

        Raises:
            ConnectivityError: If a store cannot be reached.
            CapabilityError: If a store's layout cannot be detected.
            CapabilityMismatchError: If the stores disagree.
        """
        if self._context is not None:
            self._reopen_sessions()
            return self._context

        self._source_client = self.client_factory(self.source, self.settings)
        source_cap = detect_capability(self._source_client)
        source = self.source.with_capability(source_cap)

        destination = None
        if self.destination is not None:
            self._destination_client = self.client_factory(self.destination, self.settings)
            destination_cap = detect_capability(self._destination_client)
            check_compatible(source_cap, destination_cap)
            destination = self.destination.with_capability(destination_cap)

        self._context = RunContext(
            source=source, destination=destination, settings=self.settings,
        )
        return self._context

    def list_secrets(self, cancel_event: Optional[threading.Event] = None) -> SecretSnapshot:
        """Enumerate every secret in the source store."""
        context = self.prepare()
        return enumerate_tree(
            self._source_client,
            context.source.capability,
            max_depth=context.settings.max_depth,
            cancel_event=cancel_event,
        )

    def plan(self, cancel_event: Optional[threading.Event] = None) -> DiffResult:
        """Enumerate both stores and diff them. Writes nothing.

        Raises:
            ValueError: If no destination was configured.
            TraversalError: If either tree cannot be fully read.
            SyncCancelledError: If cancel_event is set during enumeration.
        """
        if self.destination is None:
            raise ValueError("A destination is required to plan a sync")

        context = self.prepare()
        max_depth = context.settings.max_depth

        source_snapshot = enumerate_tree(
            self._source_client,
            context.source.capability,
            max_depth=max_depth,
            cancel_event=cancel_event,
        )
        destination_snapshot = enumerate_tree(
            self._destination_client,
            context.destination.capability,
            max_depth=max_depth,
            cancel_event=cancel_event,
        )

        logger.info("The source Vault has %d secrets", len(source_snapshot))
        if not source_snapshot:
            logger.warning("The source Vault has no secrets")
        if destination_snapshot:
            logger.warning(
                "The destination Vault already has %d secrets", len(destination_snapshot),
            )

        return compute_diff(source_snapshot, destination_snapshot)

    def sync(
        self,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncReport:
        """Copy missing and changed secrets to the destination.

        Args:
            dry_run: Compute the changeset but write nothing.
            cancel_event: Aborts enumeration, or stops workers from
                starting new writes once writing has begun.

        Returns:
            SyncReport with per-key outcomes and the diff.
        """
        diff = self.plan(cancel_event)

        if dry_run:
            logger.info("Dry run: %d change(s) not written", len(diff.changeset))
            return SyncReport(dry_run=True, diff=diff)

        shards = partition(diff.changeset, self.settings.workers)
        # Workers open their own sessions; W bounds destination connections.
        self._close_destination()
        pool = WriterPool(self._context, self.client_factory)
        report = pool.run(shards, cancel_event=cancel_event)
        report.diff = diff
        return report

    def _reopen_sessions(self) -> None:
        # Sessions closed by sync() or close() are reopened on reuse.
        if self._source_client is None:
            self._source_client = self.client_factory(self.source, self.settings)
        if self.destination is not None and self._destination_client is None:
            self._destination_client = self.client_factory(self.destination, self.settings)

    def _close_destination(self) -> None:
        if self._destination_client is not None:
            self._destination_client.close()
            self._destination_client = None

    def close(self) -> None:
        """Close the detection/enumeration sessions."""
        if self._source_client is not None:
            self._source_client.close()
            self._source_client = None
        self._close_destination()

    def __enter__(self) -> MirrorEngine:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
