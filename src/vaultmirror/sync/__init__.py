"""
Vault-to-Vault sync -- detect, enumerate, diff, partition, write.

Additive only: secrets are created or refreshed on the destination,
never deleted.
"""

from .capability import check_compatible, detect_capability
from .diff import compute_diff
from .engine import MirrorEngine
from .enumerator import enumerate_tree
from .partition import partition
from .writer import WriterPool

__all__ = [
    "MirrorEngine",
    "WriterPool",
    "check_compatible",
    "compute_diff",
    "detect_capability",
    "enumerate_tree",
    "partition",
]
