"""
vaultmirror: copy a Vault KV secret tree from one server to another.

Walks the source tree, diffs it against the destination, and writes
the missing or changed secrets with a bounded pool of workers.
Destination-only secrets are reported, never deleted.
"""

__version__ = "0.1.0"

DEFAULT_ADDR = "http://127.0.0.1:8200"
DEFAULT_WORKERS = 10
