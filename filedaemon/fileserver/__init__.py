# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Fileserver package for browsing and transferring files over TCP.

Exposes the threaded line-protocol server and the helpers it is built on.
"""

from .handler import ConnectionHandler, handle_connection
from .server import Acceptor, FileDaemonService

__all__ = [
    "Acceptor",
    "ConnectionHandler",
    "FileDaemonService",
    "handle_connection",
]
