# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""TCP server for the line-oriented file transfer protocol.

The listening socket is polled rather than blocked on, so that the accept
loop notices the shutdown signal within ``poll_interval`` seconds. Every
accepted connection is served by its own daemon thread; setting the
shutdown signal only stops admission of new connections, sessions already
running are left alone. Configuration comes from ``oslo_config`` and the
daemon is wrapped in an ``oslo_service`` service object.
"""

import os
import socket
import sys
import threading
from pathlib import Path
from typing import Optional, TextIO, Tuple

from oslo_config import cfg
from oslo_log import log as logging
from oslo_service import service

from .handler import handle_connection
from .utils import ensure_root

LOG = logging.getLogger(__name__)

CONSOLE_QUIT = "quit"

fileserver_opts = [
    cfg.HostAddressOpt(
        "host",
        default=os.environ.get("FILESERVER_HOST", "127.0.0.1"),
        help="Listen address for the file server",
    ),
    cfg.PortOpt(
        "port",
        default=int(os.environ.get("FILESERVER_PORT", "9090")),
        help="TCP listen port for the file server",
    ),
    cfg.StrOpt(
        "root",
        default=os.environ.get("FILESERVER_ROOT", "data"),
        help="Directory served to clients, created at startup when missing",
    ),
    cfg.FloatOpt(
        "poll_interval",
        default=0.1,
        min=0.001,
        help="Seconds to wait between accept attempts when no client is pending",
    ),
]

CONF = cfg.CONF
CONF.register_opts(fileserver_opts, group="fileserver")
logging.register_options(CONF)


def bind_listener(host: str, port: int) -> socket.socket:
    """Bind a non-blocking listening socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen()
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class Acceptor:
    """Poll a listening socket and hand each connection to its own thread."""

    def __init__(
        self,
        sock: socket.socket,
        root: Path,
        shutdown: threading.Event,
        poll_interval: float = 0.1,
    ):
        self._sock = sock
        self._root = root
        self._shutdown = shutdown
        self._poll_interval = poll_interval

    @property
    def address(self) -> Tuple[str, int]:
        return self._sock.getsockname()[:2]

    def run(self) -> None:
        """Accept connections until the shutdown signal is set."""
        LOG.info("Listening on %s:%s", *self.address)
        try:
            while not self._shutdown.is_set():
                try:
                    conn, addr = self._sock.accept()
                except BlockingIOError:
                    self._shutdown.wait(self._poll_interval)
                    continue
                except OSError as exc:
                    LOG.error("Error accepting connection: %s", exc)
                    break
                self._spawn(conn, addr)
        finally:
            self._sock.close()
        LOG.info("Server stopped accepting connections")

    def _spawn(self, conn: socket.socket, addr) -> threading.Thread:
        conn.setblocking(True)
        peer = "%s:%s" % addr[:2]
        thread = threading.Thread(
            target=handle_connection,
            args=(conn, peer, self._root),
            name=f"session-{peer}",
            daemon=True,
        )
        thread.start()
        return thread


def watch_console(stream: TextIO, shutdown: threading.Event) -> None:
    """Set ``shutdown`` when the operator types ``quit``."""
    for line in stream:
        command = line.strip()
        if command == CONSOLE_QUIT:
            LOG.info("Shutting down server...")
            shutdown.set()
            return
        if command:
            LOG.warning("Unknown command: %s", command)


class FileDaemonService(service.ServiceBase):
    """File daemon wrapped as an oslo service."""

    def __init__(
        self,
        host: str,
        port: int,
        root: Path,
        poll_interval: float = 0.1,
        console: Optional[TextIO] = None,
    ):
        self._host = host
        self._port = port
        self._root = Path(root)
        self._poll_interval = poll_interval
        self._console = console
        self.shutdown = threading.Event()
        self.acceptor: Optional[Acceptor] = None
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Create the root, bind the socket and start accepting."""
        root = ensure_root(self._root)
        sock = bind_listener(self._host, self._port)
        self.acceptor = Acceptor(sock, root, self.shutdown, self._poll_interval)
        self._thread = threading.Thread(target=self.acceptor.run, name="acceptor", daemon=True)
        self._thread.start()
        if self._console is not None:
            threading.Thread(
                target=watch_console,
                args=(self._console, self.shutdown),
                name="console",
                daemon=True,
            ).start()

    def stop(self, graceful=True):
        """Stop admitting new connections."""
        self.shutdown.set()

    def wait(self):
        """Wait for the accept loop to finish."""
        if self._thread is not None:
            self._thread.join()

    def reset(self, exiting=False):
        """Reset service state (no-op)."""
        return


def main(argv=None) -> int:
    """Run the file daemon until ``quit`` is typed on the console."""
    CONF(
        sys.argv[1:] if argv is None else argv,
        project="filedaemon",
        prog="filedaemon-server",
        version="0.1.0",
    )
    logging.setup(CONF, "filedaemon")

    daemon = FileDaemonService(
        CONF.fileserver.host,
        CONF.fileserver.port,
        Path(CONF.fileserver.root),
        CONF.fileserver.poll_interval,
        console=sys.stdin,
    )
    try:
        daemon.start()
    except OSError as exc:
        LOG.error("Failed to start file server: %s", exc)
        return 1
    try:
        daemon.wait()
    except KeyboardInterrupt:
        daemon.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
