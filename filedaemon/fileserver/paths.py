# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Map client supplied paths onto the server root."""

import re
from pathlib import Path

_SEPARATORS = re.compile(r"[/\\]")
_DRIVE = re.compile(r"^[A-Za-z]:$")


def split_components(path_str: str) -> list[str]:
    """Return the structural components of a client path.

    Root markers, empty and ``.`` components are dropped, as is a leading
    drive marker such as ``C:``. ``..`` components are kept.
    """
    parts = [p for p in _SEPARATORS.split(path_str) if p not in ("", ".")]
    if parts and _DRIVE.match(parts[0]):
        parts = parts[1:]
    return parts


def resolve_in_root(root: Path, path_str: str) -> Path:
    """Resolve a client path under ``root``.

    ``..`` pops one accumulated component and is clamped at the root, so no
    number of parent references can leave it. The result is purely lexical:
    nothing is checked on disk.
    """
    stack: list[str] = []
    for part in split_components(path_str):
        if part == "..":
            if stack:
                stack.pop()
            continue
        stack.append(part)
    return Path(root).joinpath(*stack)
