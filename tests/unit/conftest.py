# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import io
from pathlib import Path

import pytest

from filedaemon.fileserver.handler import ConnectionHandler


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Server root nested in tmp_path so that escapes have somewhere to land."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def session(root: Path):
    """Run a whole session over in-memory streams and return what was sent."""

    def _run(data: bytes) -> bytes:
        rfile = io.BytesIO(data)
        wfile = io.BytesIO()
        ConnectionHandler(rfile, wfile, root, peer="test").serve()
        return wfile.getvalue()

    return _run
