# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import io
import socket
import sys
import threading
from pathlib import Path

import pytest
from click.testing import CliRunner

from filedaemon.cli.main import cli
from filedaemon.cli.transfer import get_file, list_files, put_file
from filedaemon.client import ClientError, FileClient
from filedaemon.fileserver import server
from filedaemon.fileserver.server import FileDaemonService, bind_listener, watch_console
from filedaemon.fileserver.schemas import Entry


@pytest.fixture
def daemon(tmp_path: Path):
    """A running file daemon on an ephemeral loopback port."""
    svc = FileDaemonService("127.0.0.1", 0, tmp_path / "data", poll_interval=0.01)
    svc.start()
    yield svc
    svc.stop()
    svc.wait()


def _client(svc: FileDaemonService) -> FileClient:
    host, port = svc.acceptor.address
    return FileClient(host, port, timeout=5)


class TestFileDaemonService:
    def test_creates_root(self, daemon, tmp_path: Path):
        assert (tmp_path / "data").is_dir()

    def test_put_list_get_round_trip(self, daemon, tmp_path: Path):
        payload = bytes(range(256)) * 100
        local = tmp_path / "upload.bin"
        local.write_bytes(payload)

        with _client(daemon) as client:
            assert client.put(local, "dir/upload.bin") == (
                f"OK stored {len(payload)} bytes in dir/upload.bin"
            )
            assert client.list() == [Entry(kind="d", size=0, name="dir")]
            assert client.list("dir") == [
                Entry(kind="f", size=len(payload), name="upload.bin")
            ]
            out = io.BytesIO()
            assert client.get("dir/upload.bin", out) == len(payload)
            # The connection is still usable after a download.
            assert client.help().startswith("Available commands:")

        assert out.getvalue() == payload
        assert (tmp_path / "data" / "dir" / "upload.bin").read_bytes() == payload

    def test_error_reply(self, daemon):
        with _client(daemon) as client:
            with pytest.raises(ClientError, match="no such file: missing.txt"):
                client.get("missing.txt", io.BytesIO())
            with pytest.raises(ClientError, match="ERR not a directory: nope"):
                client.list("nope")
            client.put(Path(__file__), "sub/file.py")
            with pytest.raises(ClientError, match="not a file: sub"):
                client.get("sub", io.BytesIO())

    def test_sessions_are_independent(self, daemon, tmp_path: Path):
        results = []

        def upload(n):
            local = tmp_path / f"local{n}"
            local.write_bytes(b"%04d" % n)
            with _client(daemon) as client:
                results.append(client.put(local, f"file{n}"))

        threads = [threading.Thread(target=upload, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(results) == 8
        with _client(daemon) as client:
            assert [e.name for e in client.list()] == [f"file{n}" for n in range(8)]

    def test_stop_only_affects_new_connections(self, daemon):
        host, port = daemon.acceptor.address
        with _client(daemon) as client:
            # Completes a round trip so the session is being served.
            assert client.list() == []
            daemon.stop()
            daemon.wait()

            # Running sessions keep being served.
            assert client.list() == []

            with pytest.raises(ClientError):
                FileClient(host, port, timeout=1).connect()

    def test_quit_closes_session(self, daemon):
        host, port = daemon.acceptor.address
        with socket.create_connection((host, port), timeout=5) as sock:
            sock.sendall(b"quit\n")
            received = b""
            while chunk := sock.recv(1024):
                received += chunk
        assert received == b"Bye.\n"


    def test_reset_accepts_exiting_flag(self, tmp_path: Path):
        svc = FileDaemonService("127.0.0.1", 0, tmp_path / "data")
        assert svc.reset() is None
        assert svc.reset(exiting=True) is None


class TestBindListener:
    def test_bind_failure_is_raised(self):
        with socket.socket() as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            with pytest.raises(OSError):
                bind_listener("127.0.0.1", taken.getsockname()[1])

    def test_start_fails_when_port_taken(self, tmp_path: Path):
        with socket.socket() as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            svc = FileDaemonService("127.0.0.1", taken.getsockname()[1], tmp_path / "data")
            with pytest.raises(OSError):
                svc.start()


class TestWatchConsole:
    def test_quit_sets_shutdown(self):
        shutdown = threading.Event()
        console = io.StringIO("status\n\n  quit  \nnever read\n")
        watch_console(console, shutdown)
        assert shutdown.is_set()
        assert console.readline() == "never read\n"

    def test_unknown_input_is_reported(self, mocker):
        log = mocker.patch.object(server, "LOG")
        shutdown = threading.Event()
        watch_console(io.StringIO("status\n"), shutdown)
        assert not shutdown.is_set()
        log.warning.assert_called_once_with("Unknown command: %s", "status")

    def test_console_quit_stops_daemon(self, tmp_path: Path):
        read_end, write_end = socket.socketpair()
        with read_end, write_end, read_end.makefile("r") as console:
            svc = FileDaemonService(
                "127.0.0.1", 0, tmp_path / "data", poll_interval=0.01, console=console
            )
            svc.start()
            write_end.sendall(b"quit\n")
            svc.wait()
            assert svc.shutdown.is_set()


class TestMain:
    def test_uses_configuration(self, mocker, tmp_path: Path):
        mocker.patch("filedaemon.fileserver.server.logging.setup")
        service_cls = mocker.patch("filedaemon.fileserver.server.FileDaemonService")
        conf = tmp_path / "filedaemon.conf"
        conf.write_text(
            "[fileserver]\n"
            "host = 0.0.0.0\n"
            "port = 9999\n"
            f"root = {tmp_path / 'served'}\n"
            "poll_interval = 0.5\n"
        )

        assert server.main(["--config-file", str(conf)]) == 0

        service_cls.assert_called_once_with(
            "0.0.0.0", 9999, tmp_path / "served", 0.5, console=sys.stdin
        )
        service_cls.return_value.start.assert_called_once_with()
        service_cls.return_value.wait.assert_called_once_with()

    def test_startup_failure(self, mocker):
        mocker.patch("filedaemon.fileserver.server.logging.setup")
        service_cls = mocker.patch("filedaemon.fileserver.server.FileDaemonService")
        service_cls.return_value.start.side_effect = OSError(98, "Address already in use")

        assert server.main([]) == 1
        service_cls.return_value.wait.assert_not_called()


def test_cli_against_daemon(daemon, tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for command in (list_files, get_file, put_file):
        cli.add_command(command)
    port = str(daemon.acceptor.address[1])
    (tmp_path / "notes.txt").write_text("some notes\n")

    runner = CliRunner()
    result = runner.invoke(cli, ["--port", port, "put", "notes.txt", "docs/notes.txt"])
    assert result.exit_code == 0, result.output
    assert "OK stored 11 bytes in docs/notes.txt" in result.output

    result = runner.invoke(cli, ["--port", port, "ls", "docs"])
    assert result.exit_code == 0, result.output
    assert result.output == "f 11 notes.txt\n"

    result = runner.invoke(cli, ["--port", port, "get", "docs/notes.txt", "copy.txt"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "copy.txt").read_text() == "some notes\n"
