"""Exception taxonomy for vaultmirror.

Fatal errors (connectivity, capability, traversal) abort a run.
WriteError is recorded per key and never stops sibling writes.
"""

from __future__ import annotations

from typing import Optional


class VaultMirrorError(Exception):
    """Base class for every error raised by vaultmirror."""


class ConnectivityError(VaultMirrorError):
    """A session could not be established or the token was rejected."""


class CapabilityError(VaultMirrorError):
    """The store's KV mount or API generation could not be determined."""


class CapabilityMismatchError(VaultMirrorError):
    """Source and destination disagree on API generation or mount root."""


class TraversalError(VaultMirrorError):
    """Enumeration of a secret tree failed; the snapshot is unusable."""


class PayloadError(VaultMirrorError):
    """A secret payload is not a string-keyed mapping."""


class StoreRequestError(VaultMirrorError):
    """The store answered with an unexpected HTTP status.

    Attributes:
        status_code: HTTP status returned by the store, if any.
        path: Store path the request targeted.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, path: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class NotFoundError(StoreRequestError):
    """The store returned 404 for a path."""


class WriteError(StoreRequestError):
    """A single destination write failed."""


class SyncCancelledError(VaultMirrorError):
    """The run was cancelled before any write was issued."""
