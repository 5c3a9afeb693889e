"""Sync command: list the source tree, or copy it to the destination."""

from __future__ import annotations

import json
import sys
import threading

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .. import DEFAULT_ADDR, DEFAULT_WORKERS
from ..errors import VaultMirrorError
from ..logs import setup_logging
from ..models import DEFAULT_MAX_DEPTH, Action, OutcomeStatus, SecretSnapshot, SyncReport
from ..sync import MirrorEngine
from ._common import (
    cancel_on_signals,
    console,
    make_endpoint,
    make_settings,
    report_fatal,
)


def _print_snapshot(snapshot: SecretSnapshot, fmt: str) -> None:
    if fmt == "json":
        click.echo(json.dumps({p: v.root for p, v in snapshot.items()}, indent=2, sort_keys=True))
        return
    for path, value in snapshot.items():
        click.echo(f"{path} {json.dumps(value.root, sort_keys=True)}")


def _print_report(report: SyncReport) -> None:
    diff = report.diff
    lines = []
    if diff is not None:
        lines += [
            f"Source secrets: [bold]{diff.source_count}[/]",
            f"Destination secrets: [bold]{diff.destination_count}[/]",
            f"Matching: {diff.matching}",
            f"Empty in source (skipped): {diff.skipped_empty}",
            f"To create: [cyan]{len(diff.changeset.by_action(Action.CREATE))}[/]",
            f"To update: [cyan]{len(diff.changeset.by_action(Action.UPDATE))}[/]",
        ]
        if diff.destination_only:
            lines.append(
                f"Destination-only: [yellow]{len(diff.destination_only)}[/] (left untouched)"
            )
    if report.dry_run:
        lines.append("[yellow]Dry run: nothing written[/]")
    else:
        lines += [
            f"Written: [green]{len(report.succeeded)}[/]",
            f"Failed: [red]{len(report.failed)}[/]",
            f"Not attempted: [yellow]{len(report.not_attempted)}[/]",
        ]
    if report.cancelled:
        lines.append("[yellow]Cancelled before all writes were issued[/]")

    if report.ok:
        title, style = "Sync Complete", "green"
    else:
        title, style = "Sync Incomplete", "red"
    console.print()
    console.print(Panel("\n".join(lines), title=title, border_style=style))

    if report.dry_run and diff is not None and diff.has_changes:
        table = Table(title="Planned changes")
        table.add_column("Path", style="cyan")
        table.add_column("Action")
        for change in diff.changeset:
            table.add_row(escape(change.path), change.action.value)
        console.print(table)

    problems = [o for o in report.outcomes if o.status != OutcomeStatus.SUCCESS]
    if problems:
        table = Table(title="Unwritten secrets")
        table.add_column("Path", style="cyan")
        table.add_column("Status")
        table.add_column("Worker", justify="right")
        table.add_column("Error", style="dim")
        for outcome in problems:
            status = (
                "[red]failed[/]"
                if outcome.status == OutcomeStatus.FAILED
                else "[yellow]not attempted[/]"
            )
            table.add_row(
                escape(outcome.path), status, str(outcome.worker), escape(outcome.error or ""),
            )
        console.print(table)
    console.print()


def register_sync_commands(main: click.Group) -> None:
    """Register the sync command."""

    @main.command("sync")
    @click.option("--do-copy", is_flag=True, default=False,
                  help="Copy secrets from source to destination (default: list source only).")
    @click.option("--src-addr", envvar="VAULTMIRROR_SRC_ADDR", default=DEFAULT_ADDR,
                  show_default=True, help="Source Vault address.")
    @click.option("--src-token", envvar="VAULTMIRROR_SRC_TOKEN", default=None,
                  help="Source Vault token (required).")
    @click.option("--dst-addr", envvar="VAULTMIRROR_DST_ADDR", default=None,
                  help="Destination Vault address (required for --do-copy).")
    @click.option("--dst-token", envvar="VAULTMIRROR_DST_TOKEN", default=None,
                  help="Destination Vault token (required for --do-copy).")
    @click.option("--workers", "-w", default=DEFAULT_WORKERS, show_default=True,
                  type=int, help="Concurrent destination writers.")
    @click.option("--max-depth", default=DEFAULT_MAX_DEPTH, show_default=True,
                  type=int, help="Deepest directory level to traverse.")
    @click.option("--timeout", default=30.0, show_default=True, type=float,
                  help="Per-request timeout in seconds.")
    @click.option("--no-verify", is_flag=True, help="Skip TLS certificate verification.")
    @click.option("--dry-run", is_flag=True, help="With --do-copy, show the plan without writing.")
    @click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text",
                  help="Output format.")
    @click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
    def sync(do_copy, src_addr, src_token, dst_addr, dst_token, workers,
             max_depth, timeout, no_verify, dry_run, fmt, verbose):
        """List the source secrets, or copy them to the destination.

        Without --do-copy every source secret is printed as a path and
        its JSON value. With --do-copy, secrets missing from or different
        on the destination are written by a pool of workers. Secrets that
        exist only on the destination are reported and left alone.

        Examples:

            vaultmirror sync --src-token s.xxxx

            vaultmirror sync --do-copy --src-token s.xxxx \\
                --dst-addr https://vault-dr:8200 --dst-token s.yyyy
        """
        setup_logging(verbose)

        source = make_endpoint(src_addr, src_token, "src")
        destination = make_endpoint(dst_addr, dst_token, "dst") if do_copy else None
        settings = make_settings(workers, max_depth, timeout, no_verify)

        engine = MirrorEngine(source, destination, settings)
        try:
            with cancel_on_signals(threading.Event()) as cancel:
                if not do_copy:
                    snapshot = engine.list_secrets(cancel_event=cancel)
                else:
                    report = engine.sync(dry_run=dry_run, cancel_event=cancel)
        except VaultMirrorError as exc:
            report_fatal(exc)
        finally:
            engine.close()

        if not do_copy:
            _print_snapshot(snapshot, fmt)
            return

        if fmt == "json":
            click.echo(json.dumps(report.to_dict(), indent=2))
        else:
            _print_report(report)

        if not report.ok:
            sys.exit(1)
