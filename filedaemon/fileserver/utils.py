"""Filesystem helpers for the fileserver protocol (socket-agnostic)."""

# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
import logging
import os
from pathlib import Path
from typing import BinaryIO

from .schemas import KIND_DIR, KIND_FILE, Entry

LOG = logging.getLogger(__name__)

CHUNK_READ_SIZE = 64 * 1024


class BadRequestError(Exception):
    """Raised when a client request cannot be served.

    The message is sent back to the client as a single ``ERR`` line.
    """

    pass


class ConnectionClosedError(Exception):
    """Raised when the peer closes the stream in the middle of a frame."""

    pass


def ensure_root(root: Path) -> Path:
    """Create the server root if needed and return its absolute path."""
    root = Path(root).absolute()
    root.mkdir(parents=True, exist_ok=True)
    return root


def parse_size(raw: str) -> int:
    """Parse the byte count of a ``put`` request.

    Only positive decimal integers are accepted.
    """
    if not (raw.isascii() and raw.isdigit()):
        raise BadRequestError("invalid size")
    size = int(raw)
    if size <= 0:
        raise BadRequestError("invalid size")
    return size


def list_entries(directory: Path) -> list[Entry]:
    """Return the entries of ``directory`` sorted by name.

    Directories are reported with size 0. Entries whose metadata cannot be
    read (e.g. dangling symlinks) are skipped.
    """
    try:
        with os.scandir(directory) as it:
            dirents = list(it)
    except OSError as exc:
        LOG.warning("Failed to read directory %s: %s", directory, exc)
        raise BadRequestError("cannot read directory")

    entries = []
    for dirent in sorted(dirents, key=lambda d: d.name):
        try:
            if dirent.is_dir():
                entries.append(Entry(kind=KIND_DIR, size=0, name=dirent.name))
            else:
                entries.append(
                    Entry(kind=KIND_FILE, size=dirent.stat().st_size, name=dirent.name)
                )
        except OSError as exc:
            LOG.warning("Skipping unreadable entry %s: %s", dirent.path, exc)
    return entries


def open_for_send(path: Path) -> BinaryIO:
    """Open a regular file for a ``get`` reply."""
    if not path.is_file():
        raise BadRequestError("no such file")
    try:
        return open(path, "rb")
    except OSError as exc:
        LOG.warning("Failed to open %s: %s", path, exc)
        raise BadRequestError("no such file")


def send_file(src_fp: BinaryIO, out_fp: BinaryIO) -> int:
    """Copy an opened file into the connection stream verbatim."""
    sent = 0
    for buf in iter(lambda: src_fp.read(CHUNK_READ_SIZE), b""):
        out_fp.write(buf)
        sent += len(buf)
    out_fp.flush()
    return sent


def receive_file(in_fp: BinaryIO, destination: Path, size: int) -> None:
    """Consume exactly ``size`` bytes from ``in_fp`` into ``destination``.

    The whole frame is read from the stream even when the destination cannot
    be created or written, so the next command line stays aligned. A local
    failure is reported once the frame is drained.
    """
    out = None
    failure = None
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        out = open(destination, "wb")
    except (OSError, ValueError) as exc:
        # ValueError: the name holds a NUL byte.
        failure = exc

    try:
        remaining = size
        while remaining:
            buf = in_fp.read(min(CHUNK_READ_SIZE, remaining))
            if not buf:
                raise ConnectionClosedError(
                    f"stream closed with {remaining} of {size} bytes outstanding"
                )
            remaining -= len(buf)
            if out is None:
                continue
            try:
                out.write(buf)
            except OSError as exc:
                failure = exc
                _close_quietly(out)
                out = None
    finally:
        if out is not None:
            try:
                out.close()
            except OSError as exc:
                failure = exc

    if failure is not None:
        LOG.warning("Failed to write %s: %s", destination, failure)
        raise BadRequestError("cannot write file")


def _close_quietly(fp) -> None:
    try:
        fp.close()
    except Exception as exc:
        LOG.warning("Failed to close %s: %s", getattr(fp, "name", fp), exc)
