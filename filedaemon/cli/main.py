# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import logging

import click

from filedaemon.cli.transfer import get_file, list_files, put_file, usage
from filedaemon.client import DEFAULT_HOST, DEFAULT_PORT

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group("filedaemon", context_settings=CONTEXT_SETTINGS)
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="File daemon address")
@click.option("--port", default=DEFAULT_PORT, show_default=True, type=int, help="File daemon port")
@click.option("--timeout", default=10.0, show_default=True, type=float, help="Socket timeout")
@click.option("-v", "--verbose", is_flag=True, help="Increase output verbosity")
def cli(host: str, port: int, timeout: float, verbose: bool):
    """Browse and transfer files served by a file daemon."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


def main():
    """Register commands and run the CLI."""
    cli.add_command(list_files)
    cli.add_command(get_file)
    cli.add_command(put_file)
    cli.add_command(usage)

    cli()


if __name__ == "__main__":
    main()
