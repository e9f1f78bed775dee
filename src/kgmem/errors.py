"""Error kinds raised by the graph store and operations.

All of them derive from KGMemoryError so the MCP server and the CLI can
report any library failure as ``<kind>: <message>`` without guessing.
"""

from __future__ import annotations


class KGMemoryError(Exception):
    """Base class for every kgmem failure."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.args[0] if self.args else self.kind


class InvalidIdentifier(KGMemoryError):
    """Project identifier is empty, whitespace, or unsafe after sanitizing."""


class InvalidPayload(KGMemoryError):
    """Request payload is missing a field or has a field of the wrong type."""


class StorageUnavailable(KGMemoryError):
    """Project directory or record file cannot be created, read or written."""


class CorruptStore(KGMemoryError):
    """Backing record contains a line that cannot be decoded."""

    def __init__(self, message: str, *, path: str = "", line_no: int = 0) -> None:
        super().__init__(message)
        self.path = path
        self.line_no = line_no


class EntityNotFound(KGMemoryError):
    """An operation referenced an entity name that is not in the graph."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Entity with name {name} not found")
        self.name = name
