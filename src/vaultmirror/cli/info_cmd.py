"""Info command: show the detected KV layout of one Vault."""

from __future__ import annotations

import json

import click
from rich.panel import Panel

from .. import DEFAULT_ADDR
from ..errors import VaultMirrorError
from ..logs import setup_logging
from ..models import SyncSettings
from ..sync.capability import detect_capability
from ..sync.writer import default_client_factory
from ._common import console, make_endpoint, report_fatal


def register_info_commands(main: click.Group) -> None:
    """Register the info command."""

    @main.command("info")
    @click.option("--addr", envvar="VAULTMIRROR_SRC_ADDR", default=DEFAULT_ADDR,
                  show_default=True, help="Vault address.")
    @click.option("--token", envvar="VAULTMIRROR_SRC_TOKEN", default=None,
                  help="Vault token (required).")
    @click.option("--no-verify", is_flag=True, help="Skip TLS certificate verification.")
    @click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
    @click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
    def info(addr, token, no_verify, as_json, verbose):
        """Show a Vault's version, KV API generation, and KV mount."""
        setup_logging(verbose)
        endpoint = make_endpoint(addr, token, "src")
        settings = SyncSettings(verify_tls=not no_verify)

        try:
            client = default_client_factory(endpoint, settings)
            try:
                capability = detect_capability(client)
            finally:
                client.close()
        except VaultMirrorError as exc:
            report_fatal(exc)

        if as_json:
            data = capability.model_dump(mode="json")
            data["traversal_root"] = capability.traversal_root
            click.echo(json.dumps(data, indent=2))
            return

        console.print()
        console.print(
            Panel(
                f"Address: [cyan]{endpoint.address}[/]\n"
                f"Version: [bold]{capability.version}[/]\n"
                f"KV API: [bold]{capability.generation.value}[/]\n"
                f"Mount: [cyan]{capability.mount}[/]\n"
                f"Traversal root: {capability.traversal_root}\n"
                f"KV mounts found: {', '.join(capability.candidates)}",
                title="Vault Capability",
                border_style="cyan",
            )
        )
        console.print()
