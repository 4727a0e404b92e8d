"""Exception types and per-unit scan error records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class NotestackError(Exception):
    """Base class for every error raised by notestack."""


class NoteOperationError(NotestackError):
    """A single-note operation (load, update, get) failed for *path*."""

    def __init__(self, operation: str, path: str, message: str = "") -> None:
        self.operation = operation
        self.path = path
        self.message = message or "operation failed"
        super().__init__(f"{operation} {path}: {self.message}")

    def to_dict(self) -> dict[str, Any]:
        return {"operation": self.operation, "path": self.path, "message": self.message}


class NoteNotFoundError(NoteOperationError):
    def __init__(self, operation: str, path: str) -> None:
        super().__init__(operation, path, "note not found")


class NoteParseError(NotestackError):
    """Malformed frontmatter or undecodable text; always degraded, never surfaced."""


class IndexCorruptError(NotestackError):
    """The on-disk index could not be deserialised."""


@dataclass
class ScanError:
    """One unit (file or zone root) skipped during a multi-file operation."""

    path: str
    operation: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "operation": self.operation, "message": self.message}
