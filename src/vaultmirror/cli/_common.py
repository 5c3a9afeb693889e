"""Shared helpers for the CLI command modules.

Rich consoles, endpoint construction from flags, signal-driven
cancellation, and the fatal-error exit path.
"""

from __future__ import annotations

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, NoReturn, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ..errors import VaultMirrorError
from ..models import StoreEndpoint, SyncSettings

console = Console()
err_console = Console(stderr=True)


def fail(message: str) -> NoReturn:
    """Print an error and exit 1."""
    err_console.print(f"[bold red]Error:[/] {escape(message)}", highlight=False)
    sys.exit(1)


def make_endpoint(address: Optional[str], token: Optional[str], label: str) -> StoreEndpoint:
    """Build an endpoint from CLI flags, exiting 1 when one is missing."""
    if not address:
        fail(f"Unspecified {label} address (--{label}-addr)")
    if not token:
        fail(f"Unspecified {label} token (--{label}-token)")
    return StoreEndpoint(address=address, token=token)


def make_settings(workers: int, max_depth: int, timeout: float, no_verify: bool) -> SyncSettings:
    try:
        return SyncSettings(
            workers=workers,
            max_depth=max_depth,
            timeout=timeout,
            verify_tls=not no_verify,
        )
    except ValidationError as exc:
        fail(f"Invalid settings: {exc}")


@contextmanager
def cancel_on_signals(event: threading.Event) -> Iterator[threading.Event]:
    """Set ``event`` on SIGINT/SIGTERM for the duration of the block.

    Enumeration aborts at its next request; once writing has begun,
    in-flight writes finish and workers stop picking up new ones.
    """
    def _handler(signum, frame):
        err_console.print(
            f"\n[yellow]Received {signal.Signals(signum).name}; "
            "stopping after in-flight requests...[/]"
        )
        event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not the main thread; cancellation stays caller-driven.
            pass
    try:
        yield event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def report_fatal(exc: VaultMirrorError) -> NoReturn:
    fail(f"{type(exc).__name__}: {exc}")
