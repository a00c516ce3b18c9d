# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Pydantic schemas for directory listings."""
from typing import Literal

import pydantic

KIND_DIR = "d"
KIND_FILE = "f"


class Entry(pydantic.BaseModel):
    """A single row of a directory listing."""

    model_config = pydantic.ConfigDict(frozen=True)

    kind: Literal["d", "f"] = pydantic.Field(description="d for directories, f for files")
    size: int = pydantic.Field(ge=0, description="Byte length, always 0 for directories")
    name: str = pydantic.Field(description="Entry name inside the listed directory")

    def to_line(self) -> str:
        return f"{self.kind} {self.size} {self.name}"

    @classmethod
    def from_line(cls, line: str) -> "Entry":
        """Parse a ``<kind> <size> <name>`` listing line.

        Raises ValueError (or pydantic.ValidationError, a subclass) when the
        line does not match the schema.
        """
        try:
            kind, size, name = line.split(" ", 2)
        except ValueError:
            raise ValueError(f"malformed listing line: {line!r}")
        return cls(kind=kind, size=size, name=name)


class EntryList(pydantic.RootModel[list[Entry]]):
    """Root schema for a directory listing."""
