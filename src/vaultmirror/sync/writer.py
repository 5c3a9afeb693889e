"""
Parallel writer pool -- apply shards to the destination concurrently.

One thread per shard, each with its own destination session. A failed
write is recorded and the worker moves on; nothing is retried or
rolled back. The pool returns only after every worker has finished.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..client import StoreClient, connect
from ..models import (
    OutcomeStatus,
    RunContext,
    Shard,
    StoreCapability,
    StoreEndpoint,
    SyncReport,
    SyncSettings,
    WriteOutcome,
)

logger = logging.getLogger("vaultmirror.sync.writer")

ClientFactory = Callable[[StoreEndpoint, SyncSettings], StoreClient]


def default_client_factory(endpoint: StoreEndpoint, settings: SyncSettings) -> StoreClient:
    """Open a fresh HTTP session for an endpoint."""
    return connect(
        endpoint.address,
        endpoint.token.get_secret_value(),
        timeout=settings.timeout,
        verify=settings.verify_tls,
    )


class WriterPool:
    """Fixed pool of destination writers.

    Args:
        context: Run context; its destination endpoint must carry a
            detected capability.
        client_factory: Opens one destination session per worker.
    """

    def __init__(
        self,
        context: RunContext,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        if context.destination is None or context.destination.capability is None:
            raise ValueError("WriterPool needs a destination with a detected capability")
        self.context = context
        self.destination: StoreEndpoint = context.destination
        self.capability: StoreCapability = context.destination.capability
        self.client_factory = client_factory

    def run(
        self,
        shards: list[Shard],
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncReport:
        """Write every shard and wait for all workers.

        Args:
            shards: Disjoint shards from the partitioner.
            cancel_event: When set, workers stop issuing new writes;
                whatever was not started is reported as not attempted.

        Returns:
            SyncReport with one outcome per change, sorted by path.
        """
        cancel = cancel_event or threading.Event()
        outcomes: list[WriteOutcome] = []

        if shards:
            logger.info(
                "Starting %d writer(s) for %d change(s)",
                len(shards),
                sum(len(s) for s in shards),
            )
            with ThreadPoolExecutor(
                max_workers=len(shards), thread_name_prefix="vaultmirror-writer",
            ) as executor:
                futures = [
                    (shard, executor.submit(self._work, shard, cancel)) for shard in shards
                ]
                for shard, future in futures:
                    try:
                        outcomes.extend(future.result())
                    except Exception as exc:
                        logger.error("Worker %d crashed: %s", shard.index, exc)
                        outcomes.extend(self._failed(shard, exc))

        outcomes.sort(key=lambda o: o.path)
        report = SyncReport(outcomes=outcomes, cancelled=cancel.is_set())
        logger.info(
            "Writers finished: %d succeeded, %d failed, %d not attempted",
            len(report.succeeded),
            len(report.failed),
            len(report.not_attempted),
        )
        return report

    def _work(self, shard: Shard, cancel: threading.Event) -> list[WriteOutcome]:
        logger.info("Worker %d starting %d write(s)", shard.index, len(shard))
        outcomes: list[WriteOutcome] = []

        if cancel.is_set():
            return self._unattempted(shard, 0)

        try:
            client = self.client_factory(self.destination, self.context.settings)
        except Exception as exc:
            logger.error("Worker %d could not open a session: %s", shard.index, exc)
            return self._failed(shard, exc)

        try:
            for position, change in enumerate(shard.changes):
                if cancel.is_set():
                    logger.info("Worker %d cancelled", shard.index)
                    outcomes.extend(self._unattempted(shard, position))
                    break
                try:
                    client.write(change.path, self.capability.wrap(change.value))
                except Exception as exc:
                    logger.error("Worker %d failed to write %s: %s", shard.index, change.path, exc)
                    outcomes.append(
                        WriteOutcome(
                            change.path, change.action, OutcomeStatus.FAILED, shard.index, str(exc),
                        )
                    )
                    continue
                logger.debug("Worker %d wrote %s (%s)", shard.index, change.path, change.action.value)
                outcomes.append(
                    WriteOutcome(change.path, change.action, OutcomeStatus.SUCCESS, shard.index)
                )
        finally:
            try:
                client.close()
            except Exception as exc:
                logger.warning("Worker %d could not close its session: %s", shard.index, exc)

        logger.info("Worker %d finished %d write(s)", shard.index, len(shard))
        return outcomes

    @staticmethod
    def _failed(shard: Shard, exc: Exception) -> list[WriteOutcome]:
        return [
            WriteOutcome(c.path, c.action, OutcomeStatus.FAILED, shard.index, str(exc))
            for c in shard.changes
        ]

    @staticmethod
    def _unattempted(shard: Shard, start: int) -> list[WriteOutcome]:
        return [
            WriteOutcome(c.path, c.action, OutcomeStatus.NOT_ATTEMPTED, shard.index)
            for c in shard.changes[start:]
        ]
