"""Logging setup shared by the CLI entry points."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send logs to stderr at INFO, or DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    # urllib3 logs every request URL at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
