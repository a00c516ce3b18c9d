# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Per-connection command loop of the file daemon.

A session reads one command line at a time, dispatches it and flushes the
reply before reading the next line. Filesystem problems are answered with
a single ``ERR`` line and the session goes on; failures of the connection
itself end the session silently.
"""

import socket
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List

from oslo_log import log as logging

from .paths import resolve_in_root
from .utils import (
    BadRequestError,
    ConnectionClosedError,
    list_entries,
    open_for_send,
    parse_size,
    receive_file,
    send_file,
)

LOG = logging.getLogger(__name__)

UNKNOWN_COMMAND = "ERR unknown cmd"
LINE_TOO_LONG = "ERR line too long"
FAREWELL = "Bye."

# Longest command line accepted, newline included.
MAX_LINE_LENGTH = 8192

HELP_TEXT = (
    "Available commands:\n"
    "  list [path]        list a directory (default: .)\n"
    "  get <path>         download a file, raw bytes follow the reply\n"
    "  put <path> <size>  upload <size> raw bytes sent after the command\n"
    "  help               show this message\n"
    "  quit               close the connection"
)


def parse_command(line: str) -> List[str]:
    """Split a command line into the verb and up to two arguments."""
    parts = line.split(None, 2)
    if parts:
        parts[0] = parts[0].lower()
    return parts


class ConnectionHandler:
    """Serve the protocol for one session over a pair of byte streams."""

    def __init__(self, rfile: BinaryIO, wfile: BinaryIO, root: Path, peer: str = "-"):
        self._rfile = rfile
        self._wfile = wfile
        self._root = Path(root)
        self._peer = peer
        self._commands: Dict[str, Callable[[List[str]], bool]] = {
            "list": self._list,
            "get": self._get,
            "put": self._put,
            "help": self._help,
            "quit": self._quit,
        }

    def serve(self) -> None:
        """Run the command loop until ``quit`` or end of stream."""
        while True:
            raw = self._rfile.readline(MAX_LINE_LENGTH)
            if not raw:
                LOG.debug("Peer %s closed the connection", self._peer)
                return
            if len(raw) == MAX_LINE_LENGTH and not raw.endswith(b"\n"):
                # The rest of the line cannot be resynchronised.
                LOG.warning("Line from %s exceeds %d bytes", self._peer, MAX_LINE_LENGTH)
                self._reply(LINE_TOO_LONG)
                return
            line = raw.rstrip(b"\r\n").decode("utf-8", errors="replace")
            args = parse_command(line)
            if not args:
                continue
            verb = args[0]
            command = self._commands.get(verb)
            if command is None:
                self._reply(UNKNOWN_COMMAND)
                keep_going = True
            else:
                keep_going = command(args[1:])
            LOG.info("%s: %s", self._peer, verb)
            if not keep_going:
                return

    def _reply(self, *lines: str) -> None:
        for line in lines:
            self._wfile.write(line.encode("utf-8") + b"\n")
        self._wfile.flush()

    def _list(self, args: List[str]) -> bool:
        path_arg = args[0] if args else "."
        directory = resolve_in_root(self._root, path_arg)
        if not directory.is_dir():
            self._reply(f"ERR not a directory: {path_arg}")
            return True
        try:
            entries = list_entries(directory)
        except BadRequestError as exc:
            self._reply(f"ERR {exc}: {path_arg}")
            return True
        self._reply(
            f"OK {len(entries)} entries in {path_arg}", *(e.to_line() for e in entries)
        )
        return True

    def _get(self, args: List[str]) -> bool:
        if not args:
            self._reply("ERR usage: get <path>")
            return True
        path_arg = args[0]
        try:
            src = open_for_send(resolve_in_root(self._root, path_arg))
        except BadRequestError as exc:
            self._reply(f"ERR {exc}: {path_arg}")
            return True
        with src:
            self._reply(f"OK sending {path_arg}")
            sent = send_file(src, self._wfile)
        LOG.debug("Sent %d bytes of %s to %s", sent, path_arg, self._peer)
        return True

    def _put(self, args: List[str]) -> bool:
        if len(args) < 2:
            self._reply("ERR usage: put <path> <size>")
            return True
        path_arg, size_arg = args[0], args[1]
        try:
            size = parse_size(size_arg)
        except BadRequestError as exc:
            self._reply(f"ERR {exc}: {size_arg}")
            return True
        try:
            receive_file(self._rfile, resolve_in_root(self._root, path_arg), size)
        except BadRequestError as exc:
            self._reply(f"ERR {exc}: {path_arg}")
            return True
        self._reply(f"OK stored {size} bytes in {path_arg}")
        return True

    def _help(self, args: List[str]) -> bool:
        self._reply(HELP_TEXT)
        return True

    def _quit(self, args: List[str]) -> bool:
        self._reply(FAREWELL)
        return False


def handle_connection(conn: socket.socket, peer: str, root: Path) -> None:
    """Serve one accepted socket, closing it when the session ends."""
    LOG.info("Accepted connection from %s", peer)
    try:
        with conn, conn.makefile("rb") as rfile, conn.makefile("wb") as wfile:
            ConnectionHandler(rfile, wfile, root, peer).serve()
    except (OSError, ConnectionClosedError) as exc:
        LOG.info("Session with %s ended: %s", peer, exc)
    else:
        LOG.info("Session with %s closed", peer)
