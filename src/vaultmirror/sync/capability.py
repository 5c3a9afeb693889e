"""
Capability detection -- which KV API generation a store speaks and
where its KV mount lives.

Vault 0.10 introduced KV version 2, which lists under
``<mount>/metadata`` and reads under ``<mount>/data``. Source and
destination must agree on both before anything is traversed.
"""

from __future__ import annotations

import logging
import re

from ..client import StoreClient
from ..errors import (
    CapabilityError,
    CapabilityMismatchError,
    ConnectivityError,
    VaultMirrorError,
)
from ..models import ApiGeneration, StoreCapability, normalize_path

logger = logging.getLogger("vaultmirror.sync.capability")

# "generic" is what pre-0.8 servers call the KV backend.
KV_MOUNT_TYPES = ("kv", "generic")

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)")


def parse_version(version: str) -> tuple[int, int]:
    """Extract (major, minor) from a server version string.

    Accepts forms like ``0.9.5``, ``1.15.2+ent`` and
    ``1.4.0 (build abc)``.

    Raises:
        CapabilityError: If no major.minor pair can be found.
    """
    token = (version or "").strip().split(" ")[0]
    match = _VERSION_RE.match(token)
    if not match:
        raise CapabilityError(f"Cannot parse Vault version {version!r}")
    return int(match.group(1)), int(match.group(2))


def classify_generation(version: str) -> ApiGeneration:
    """Generation 2 for any version >= 0.10, else generation 1."""
    major, minor = parse_version(version)
    if major > 0 or minor >= 10:
        return ApiGeneration.V2
    return ApiGeneration.V1


def select_kv_mount(mounts: dict[str, str]) -> tuple[str, tuple[str, ...]]:
    """Pick the KV mount to traverse.

    Candidates are taken in sorted mount-path order and the first one
    wins. The store itself gives no ordering, so with several KV mounts
    the choice is arbitrary and a warning is logged.

    Returns:
        (chosen mount path, all candidate mount paths)

    Raises:
        CapabilityError: If the store has no KV mount.
    """
    candidates = tuple(
        sorted(
            normalize_path(path)
            for path, mount_type in mounts.items()
            if mount_type in KV_MOUNT_TYPES
        )
    )
    if not candidates:
        raise CapabilityError("No key-value secrets mount found")
    if len(candidates) > 1:
        logger.warning(
            "Found %d KV mounts (%s); using %s",
            len(candidates),
            ", ".join(candidates),
            candidates[0],
        )
    return candidates[0], candidates


def detect_capability(client: StoreClient) -> StoreCapability:
    """Detect a store's KV mount and API generation.

    Args:
        client: Live session against the store.

    Returns:
        StoreCapability for the store.

    Raises:
        ConnectivityError: If the store cannot be reached.
        CapabilityError: If the mount table or version is unusable.
    """
    try:
        mounts = client.list_mounts()
    except ConnectivityError:
        raise
    except VaultMirrorError as exc:
        raise CapabilityError(f"Cannot list mounts: {exc}") from exc

    mount, candidates = select_kv_mount(mounts)

    try:
        version = client.health()
    except ConnectivityError:
        raise
    except VaultMirrorError as exc:
        raise CapabilityError(f"Cannot read server version: {exc}") from exc

    generation = classify_generation(version)
    capability = StoreCapability(
        generation=generation,
        mount=mount,
        version=version,
        candidates=candidates,
    )
    logger.info(
        "Detected Vault %s: KV %s at %s", version, generation.value, mount,
    )
    return capability


def check_compatible(source: StoreCapability, destination: StoreCapability) -> None:
    """Refuse to sync between stores with different layouts.

    Raises:
        CapabilityMismatchError: If generation or mount root differ.
    """
    if source.generation != destination.generation:
        raise CapabilityMismatchError(
            f"KV API differs: source is {source.generation.value}, "
            f"destination is {destination.generation.value}"
        )
    if source.mount != destination.mount:
        raise CapabilityMismatchError(
            f"KV mount differs: source is {source.mount}, "
            f"destination is {destination.mount}"
        )
