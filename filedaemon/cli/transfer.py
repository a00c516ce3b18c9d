# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import json
import logging
import posixpath
from pathlib import Path
from typing import Optional

import click
import prettytable

from filedaemon.cli.common import (
    JSON_FORMAT,
    JSON_INDENT_FORMAT,
    TABLE_FORMAT,
    VALUE_FORMAT,
    click_option_format,
    get_client,
)
from filedaemon.client import ClientError
from filedaemon.fileserver.schemas import KIND_DIR, Entry, EntryList

logger = logging.getLogger(__name__)


def display_entries(path: str, entries: list[Entry], format: str):
    """Display a listing depending on the format."""
    if format == VALUE_FORMAT:
        for entry in entries:
            click.echo(entry.to_line())
    elif format == TABLE_FORMAT:
        table = prettytable.PrettyTable()
        table.title = f"Contents of {path}"
        table.field_names = ["Name", "Type", "Size"]
        table.align["Name"] = "l"
        table.align["Size"] = "r"
        for entry in entries:
            kind = "directory" if entry.kind == KIND_DIR else "file"
            table.add_row([entry.name, kind, entry.size])
        click.echo(table)
    elif format in (JSON_FORMAT, JSON_INDENT_FORMAT):
        indent = 2 if format == JSON_INDENT_FORMAT else None
        click.echo(json.dumps(EntryList(entries).model_dump(), indent=indent))


@click.command("ls")
@click.argument("path", default=".")
@click_option_format
@click.pass_context
def list_files(ctx: click.Context, path: str, format: str):
    """List a remote directory."""
    try:
        with get_client(ctx) as client:
            entries = client.list(path)
    except ClientError as e:
        raise click.ClickException(str(e))
    logger.debug("Found %s entries in %s", len(entries), path)
    display_entries(path, entries, format)


@click.command("get")
@click.argument("remote")
@click.argument("local", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def get_file(ctx: click.Context, remote: str, local: Optional[Path]):
    """Download REMOTE into LOCAL (defaults to the remote file name)."""
    local = local or Path(posixpath.basename(remote.rstrip("/")))
    try:
        with get_client(ctx) as client:
            # Fail on a missing remote before truncating the local file.
            client.stat(remote)
            with open(local, "wb") as f:
                try:
                    size = client.get(remote, f)
                except ClientError:
                    f.close()
                    local.unlink(missing_ok=True)
                    raise
    except ClientError as e:
        raise click.ClickException(str(e))
    click.echo(f"Downloaded {size} bytes to {local}")


@click.command("put")
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("remote", required=False)
@click.pass_context
def put_file(ctx: click.Context, local: Path, remote: Optional[str]):
    """Upload LOCAL to REMOTE (defaults to the local file name)."""
    remote = remote or local.name
    try:
        with get_client(ctx) as client:
            reply = client.put(local, remote)
    except ClientError as e:
        raise click.ClickException(str(e))
    click.echo(reply)


@click.command("usage")
@click.pass_context
def usage(ctx: click.Context):
    """Show the commands understood by the server."""
    try:
        with get_client(ctx) as client:
            click.echo(client.help())
    except ClientError as e:
        raise click.ClickException(str(e))
