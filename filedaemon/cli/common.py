# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import click

from filedaemon.client import FileClient

VALUE_FORMAT = "value"
JSON_FORMAT = "json"
JSON_INDENT_FORMAT = "json-indent"
TABLE_FORMAT = "table"

click_option_format = click.option(
    "-f",
    "--format",
    default=VALUE_FORMAT,
    type=click.Choice([VALUE_FORMAT, TABLE_FORMAT, JSON_FORMAT, JSON_INDENT_FORMAT]),
    help="Output format",
)


def get_client(ctx: click.Context) -> FileClient:
    """Build a client from the options of the root command."""
    params = ctx.find_root().params
    return FileClient(params["host"], params["port"], timeout=params["timeout"])

