"""
vaultmirror data models -- secrets, snapshots, changesets, run context.

Store-facing types (capability, endpoints, settings) are frozen pydantic
models, built once per run and never mutated afterwards. Pipeline types
(changes, shards, outcomes, reports) are plain dataclasses.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, SecretStr, ValidationError

from . import DEFAULT_WORKERS
from .errors import PayloadError

PATH_DELIMITER = "/"
METADATA_SEGMENT = "metadata"
DATA_SEGMENT = "data"
DEFAULT_MAX_DEPTH = 64


def normalize_path(path: str) -> str:
    """Strip leading, trailing, and doubled delimiters from a store path."""
    return PATH_DELIMITER.join(seg for seg in path.split(PATH_DELIMITER) if seg)


def join_path(parent: str, child: str) -> str:
    """Join a child name onto a parent path and normalize the result."""
    return normalize_path(f"{parent}{PATH_DELIMITER}{child}")


# ---------------------------------------------------------------------------
# Secrets and snapshots
# ---------------------------------------------------------------------------


class SecretValue(RootModel[dict[str, Any]]):
    """Payload of one leaf secret: a string-keyed field mapping.

    Equality is structural; key order is irrelevant. An empty payload
    counts as missing rather than as a distinct value.
    """

    model_config = ConfigDict(frozen=True)

    root: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any, path: str = "") -> SecretValue:
        """Validate a raw store payload into a SecretValue.

        Args:
            payload: Decoded JSON returned by the store, or None.
            path: Store path, used in the error message.

        Returns:
            SecretValue wrapping a copy of the payload.

        Raises:
            PayloadError: If the payload is not a string-keyed mapping.
        """
        if payload is None:
            return cls()
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise PayloadError(
                f"Secret at {path or '<unknown>'} is not a string-keyed mapping"
            ) from exc

    @property
    def is_missing(self) -> bool:
        return not self.root

    def as_dict(self) -> dict[str, Any]:
        """Return a deep copy of the field mapping."""
        return copy.deepcopy(self.root)

    def __getitem__(self, key: str) -> Any:
        return self.root[key]

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def __len__(self) -> int:
        return len(self.root)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self.root == other.root
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]


class SecretSnapshot(Mapping[str, SecretValue]):
    """Read-only mapping of secret path to value from one traversal.

    Iteration always follows sorted path order.
    """

    def __init__(self, entries: Optional[Mapping[str, SecretValue]] = None):
        self._entries: dict[str, SecretValue] = dict(
            sorted((entries or {}).items())
        )

    def __getitem__(self, path: str) -> SecretValue:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SecretSnapshot({len(self._entries)} secrets)"


# ---------------------------------------------------------------------------
# Changesets and shards
# ---------------------------------------------------------------------------


class Action(str, Enum):
    """What a write does to the destination."""

    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class Change:
    """One pending destination write."""

    path: str
    action: Action
    value: SecretValue


@dataclass(frozen=True)
class ChangeSet:
    """Path-ordered, immutable set of writes derived from two snapshots."""

    changes: tuple[Change, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.changes, key=lambda c: c.path))
        paths = [c.path for c in ordered]
        if len(set(paths)) != len(paths):
            raise ValueError("ChangeSet paths must be unique")
        object.__setattr__(self, "changes", ordered)
        object.__setattr__(self, "_by_path", {c.path: c for c in ordered})

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self) -> Iterator[Change]:
        return iter(self.changes)

    def paths(self) -> list[str]:
        return [c.path for c in self.changes]

    def get(self, path: str) -> Optional[Change]:
        return self._by_path.get(path)

    def by_action(self, action: Action) -> list[Change]:
        return [c for c in self.changes if c.action == action]


@dataclass(frozen=True)
class Shard:
    """One worker's disjoint slice of a changeset."""

    index: int
    changes: tuple[Change, ...] = ()

    def __len__(self) -> int:
        return len(self.changes)

    def paths(self) -> list[str]:
        return [c.path for c in self.changes]


# ---------------------------------------------------------------------------
# Store capability, endpoints, and run context
# ---------------------------------------------------------------------------


class ApiGeneration(str, Enum):
    """KV API generation of a store.

    V1 lists and reads in one namespace. V2 lists under
    ``<mount>/metadata`` and reads/writes under ``<mount>/data``.
    """

    V1 = "v1"
    V2 = "v2"


class StoreCapability(BaseModel):
    """Detected API generation and KV mount of one store."""

    model_config = ConfigDict(frozen=True)

    generation: ApiGeneration
    mount: str
    version: str = ""
    candidates: tuple[str, ...] = ()

    @property
    def metadata_root(self) -> str:
        return join_path(self.mount, METADATA_SEGMENT)

    @property
    def data_root(self) -> str:
        return join_path(self.mount, DATA_SEGMENT)

    @property
    def traversal_root(self) -> str:
        """Path the enumerator starts listing from."""
        if self.generation == ApiGeneration.V2:
            return self.metadata_root
        return normalize_path(self.mount)

    def read_path(self, list_path: str) -> str:
        """Map a listing path to the path used to read or write it.

        Only the metadata segment directly under the mount is rewritten,
        so secrets whose own names contain "metadata" are left alone.
        """
        list_path = normalize_path(list_path)
        if self.generation != ApiGeneration.V2:
            return list_path
        root = self.metadata_root
        if list_path == root or list_path.startswith(root + PATH_DELIMITER):
            return self.data_root + list_path[len(root):]
        return list_path

    def unwrap(self, raw: Optional[dict[str, Any]]) -> Any:
        """Extract the secret fields from a read response's data block."""
        if raw is None:
            return None
        if self.generation == ApiGeneration.V2:
            return raw.get(DATA_SEGMENT)
        return raw

    def wrap(self, value: SecretValue) -> dict[str, Any]:
        """Build the write request body for a secret value."""
        if self.generation == ApiGeneration.V2:
            return {DATA_SEGMENT: value.as_dict()}
        return value.as_dict()


class StoreEndpoint(BaseModel):
    """Address, token, and (once detected) capability of one store."""

    model_config = ConfigDict(frozen=True)

    address: str
    token: SecretStr
    capability: Optional[StoreCapability] = None

    def with_capability(self, capability: StoreCapability) -> StoreEndpoint:
        return self.model_copy(update={"capability": capability})


class SyncSettings(BaseModel):
    """Tunables for one run.

    Attributes:
        workers: Concurrent destination writers (and sessions).
        max_depth: Deepest directory level the enumerator will descend.
        timeout: Per-request HTTP timeout in seconds.
        verify_tls: Verify server certificates.
    """

    model_config = ConfigDict(frozen=True)

    workers: int = Field(DEFAULT_WORKERS, ge=1)
    max_depth: int = Field(DEFAULT_MAX_DEPTH, ge=1)
    timeout: float = Field(30.0, gt=0)
    verify_tls: bool = True


class RunContext(BaseModel):
    """Everything a run needs, built once and passed to each component."""

    model_config = ConfigDict(frozen=True)

    source: StoreEndpoint
    destination: Optional[StoreEndpoint] = None
    settings: SyncSettings = Field(default_factory=SyncSettings)

    @property
    def capability(self) -> Optional[StoreCapability]:
        return self.source.capability


# ---------------------------------------------------------------------------
# Outcomes and reports
# ---------------------------------------------------------------------------


class OutcomeStatus(str, Enum):
    """Result of one changeset entry."""

    SUCCESS = "success"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class WriteOutcome:
    """Per-key result reported by a writer."""

    path: str
    action: Action
    status: OutcomeStatus
    worker: int
    error: Optional[str] = None


@dataclass
class DiffResult:
    """Diff between a source and a destination snapshot.

    Attributes:
        changeset: Writes needed to bring the destination up to date.
        matching: Paths whose values already agree.
        skipped_empty: Source paths with no data, never copied.
        destination_only: Paths present only in the destination.
        source_count: Secrets in the source snapshot.
        destination_count: Secrets in the destination snapshot.
    """

    changeset: ChangeSet = field(default_factory=ChangeSet)
    matching: int = 0
    skipped_empty: int = 0
    destination_only: list[str] = field(default_factory=list)
    source_count: int = 0
    destination_count: int = 0

    @property
    def has_changes(self) -> bool:
        return len(self.changeset) > 0


@dataclass
class SyncReport:
    """Completion report for one synchronization run."""

    outcomes: list[WriteOutcome] = field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False
    diff: Optional[DiffResult] = None

    def _with_status(self, status: OutcomeStatus) -> list[WriteOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> list[WriteOutcome]:
        return self._with_status(OutcomeStatus.SUCCESS)

    @property
    def failed(self) -> list[WriteOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def not_attempted(self) -> list[WriteOutcome]:
        return self._with_status(OutcomeStatus.NOT_ATTEMPTED)

    @property
    def ok(self) -> bool:
        """True when every change was written."""
        return not self.failed and not self.not_attempted

    def to_dict(self) -> dict[str, Any]:
        """Serializable summary; secret values are never included."""
        data: dict[str, Any] = {
            "ok": self.ok,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "not_attempted": len(self.not_attempted),
            "outcomes": [
                {
                    "path": o.path,
                    "action": o.action.value,
                    "status": o.status.value,
                    "worker": o.worker,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }
        if self.diff is not None:
            data["diff"] = {
                "source_count": self.diff.source_count,
                "destination_count": self.diff.destination_count,
                "matching": self.diff.matching,
                "skipped_empty": self.diff.skipped_empty,
                "destination_only": list(self.diff.destination_only),
                "changes": [
                    {"path": c.path, "action": c.action.value}
                    for c in self.diff.changeset
                ],
            }
        return data
