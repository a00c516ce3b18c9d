# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import logging
import posixpath
import socket
from pathlib import Path
from typing import BinaryIO, List, Optional

from filedaemon.fileserver.handler import HELP_TEXT
from filedaemon.fileserver.schemas import KIND_FILE, Entry
from filedaemon.fileserver.utils import CHUNK_READ_SIZE

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9090

OK_PREFIX = "OK"
HELP_LINES = len(HELP_TEXT.splitlines())


class ClientError(Exception):
    """Raised when the server rejects a request or breaks the protocol."""


class FileClient:
    """Blocking client for the file daemon line protocol.

    ``get`` replies carry no length, so the size of a download is looked up
    with a ``list`` of the parent directory first.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._rfile: Optional[BinaryIO] = None
        self._wfile: Optional[BinaryIO] = None

    def __enter__(self) -> "FileClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def connect(self) -> None:
        try:
            self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise ClientError(f"Cannot connect to {self.host}:{self.port}: {e}")
        self._rfile = self._sock.makefile("rb")
        self._wfile = self._sock.makefile("wb")

    def close(self) -> None:
        """Send ``quit`` when still connected and release the socket."""
        if self._sock is None:
            return
        try:
            self._send_line("quit")
            self._read_line()
        except (OSError, ClientError) as e:
            logger.debug("Ignoring error on quit: %s", e)
        finally:
            for f in (self._rfile, self._wfile):
                try:
                    f.close()
                except OSError:
                    pass
            self._sock.close()
            self._sock = self._rfile = self._wfile = None

    def list(self, path: str = ".") -> List[Entry]:
        """List a remote directory."""
        self._send_line(f"list {path}")
        header = self._expect_ok()
        try:
            count = int(header.split()[1])
        except (IndexError, ValueError):
            raise ClientError(f"malformed listing header: {header}")
        lines = [self._read_line() for _ in range(count)]
        try:
            return [Entry.from_line(line) for line in lines]
        except ValueError as e:
            raise ClientError(f"malformed listing entry: {e}")

    def stat(self, path: str) -> Entry:
        """Return the listing entry of a remote path."""
        parent, name = posixpath.split(path.rstrip("/"))
        for entry in self.list(parent or "."):
            if entry.name == name:
                return entry
        raise ClientError(f"no such file: {path}")

    def get(self, path: str, out_fp: BinaryIO) -> int:
        """Download a remote file into ``out_fp``."""
        entry = self.stat(path)
        if entry.kind != KIND_FILE:
            raise ClientError(f"not a file: {path}")
        self._send_line(f"get {path}")
        self._expect_ok()
        remaining = entry.size
        while remaining:
            try:
                buf = self._rfile.read(min(CHUNK_READ_SIZE, remaining))
            except OSError as e:
                raise ClientError(f"Failed to download {path}: {e}")
            if not buf:
                raise ClientError("connection closed during download")
            out_fp.write(buf)
            remaining -= len(buf)
        return entry.size

    def put(self, local: Path, path: str) -> str:
        """Upload a local file, returning the server confirmation."""
        size = Path(local).stat().st_size
        self._send_line(f"put {path} {size}")
        if size == 0:
            # Zero-length frames are rejected by the server.
            return self._expect_ok()
        try:
            with open(local, "rb") as f:
                for buf in iter(lambda: f.read(CHUNK_READ_SIZE), b""):
                    self._wfile.write(buf)
            self._wfile.flush()
        except OSError as e:
            raise ClientError(f"Failed to upload {local}: {e}")
        return self._expect_ok()

    def help(self) -> str:
        self._send_line("help")
        return "\n".join(self._read_line() for _ in range(HELP_LINES))

    def _send_line(self, line: str) -> None:
        try:
            self._wfile.write(line.encode("utf-8") + b"\n")
            self._wfile.flush()
        except OSError as e:
            raise ClientError(f"Failed to send request: {e}")

    def _read_line(self) -> str:
        try:
            raw = self._rfile.readline()
        except OSError as e:
            raise ClientError(f"Failed to read reply: {e}")
        if not raw:
            raise ClientError("connection closed by server")
        return raw.rstrip(b"\r\n").decode("utf-8", errors="replace")

    def _expect_ok(self) -> str:
        line = self._read_line()
        if not line.startswith(OK_PREFIX):
            raise ClientError(line)
        return line
