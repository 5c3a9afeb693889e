"""
vaultmirror CLI.

The main Click group lives here; each command module registers its
commands via a register function.

Entry point: vaultmirror.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="vaultmirror")
def main():
    """vaultmirror: copy Vault KV secrets between servers.

    Lists the source tree, or with --do-copy writes every missing or
    changed secret to the destination. Never deletes.
    """


from .sync_cmd import register_sync_commands
from .info_cmd import register_info_commands

register_sync_commands(main)
register_info_commands(main)
