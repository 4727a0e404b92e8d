"""notestack: zoned markdown notes with a metadata index and ranked search."""

from notestack.actionables import ActionableIndex
from notestack.cache import ContentCache
from notestack.config import VaultConfig
from notestack.db import IndexDB
from notestack.errors import (
    IndexCorruptError,
    NoteNotFoundError,
    NoteOperationError,
    NoteParseError,
    NotestackError,
    ScanError,
)
from notestack.index import MetadataIndex, VaultIndex
from notestack.note import ActionableItem, Note, NoteMetadata, RelatedNote, SearchBatch, SearchResult
from notestack.parser import NoteParser, parse_note
from notestack.search import SearchEngine
from notestack.zones import Zone, ZoneLayout

__all__ = [
    "ActionableIndex",
    "ActionableItem",
    "ContentCache",
    "IndexCorruptError",
    "IndexDB",
    "MetadataIndex",
    "Note",
    "NoteMetadata",
    "NoteNotFoundError",
    "NoteOperationError",
    "NoteParseError",
    "NoteParser",
    "NotestackError",
    "RelatedNote",
    "ScanError",
    "SearchBatch",
    "SearchEngine",
    "SearchResult",
    "VaultConfig",
    "VaultIndex",
    "Zone",
    "ZoneLayout",
    "parse_note",
]
