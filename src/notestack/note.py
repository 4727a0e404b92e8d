"""Core note dataclasses: parsed notes, index metadata, search and task results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import PurePosixPath
from typing import Any


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_datetime(value: Any) -> datetime | None:
    """Best-effort conversion of a frontmatter/JSON value to an aware datetime."""
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            return to_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def jsonable(value: Any) -> Any:
    """Make a frontmatter value safe for ``json.dumps``."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass
class Note:
    """A single markdown note in the corpus."""

    path: str
    title: str
    body: str
    tags: list[str] = field(default_factory=list)
    #: Wikilink targets and markdown ``.md`` link targets
    links: list[str] = field(default_factory=list)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    frontmatter: dict[str, Any] = field(default_factory=dict)

    @property
    def slug(self) -> str:
        """Filesystem-stable identifier derived from the filename stem."""
        return PurePosixPath(self.path).stem

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "slug": self.slug,
            "title": self.title,
            "body": self.body,
            "tags": self.tags,
            "links": self.links,
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
            "frontmatter": jsonable(self.frontmatter),
        }


@dataclass
class NoteMetadata:
    """Everything about a note except its body text."""

    path: str
    title: str
    tags: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    frontmatter: dict[str, Any] = field(default_factory=dict)
    word_count: int = 0
    has_actionables: bool = False
    linked_issues: list[str] = field(default_factory=list)
    linked_notes: list[str] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return PurePosixPath(self.path).stem

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "title": self.title,
            "tags": list(self.tags),
            "links": list(self.links),
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
            "frontmatter": jsonable(self.frontmatter),
            "wordCount": self.word_count,
            "hasActionables": self.has_actionables,
            "linkedIssues": list(self.linked_issues),
            "linkedNotes": list(self.linked_notes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NoteMetadata":
        created = coerce_datetime(data.get("created"))
        modified = coerce_datetime(data.get("modified"))
        if created is None or modified is None:
            raise ValueError(f"record {data.get('path')!r} has invalid timestamps")
        return cls(
            path=str(data["path"]),
            title=str(data.get("title", "")),
            tags=list(data.get("tags") or []),
            links=list(data.get("links") or []),
            created=created,
            modified=modified,
            frontmatter=dict(data.get("frontmatter") or {}),
            word_count=int(data.get("wordCount", 0)),
            has_actionables=bool(data.get("hasActionables", False)),
            linked_issues=list(data.get("linkedIssues") or []),
            linked_notes=list(data.get("linkedNotes") or []),
        )


@dataclass
class IndexRecord:
    """A :class:`NoteMetadata` plus the file fingerprint it was derived from."""

    meta: NoteMetadata
    mtime: float

    @property
    def path(self) -> str:
        return self.meta.path

    def to_dict(self) -> dict[str, Any]:
        return {**self.meta.to_dict(), "mtime": self.mtime}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexRecord":
        return cls(meta=NoteMetadata.from_dict(data), mtime=float(data["mtime"]))


@dataclass
class SearchResult:
    note: NoteMetadata
    excerpt: str
    score: float
    matched_tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.note.path,
            "title": self.note.title,
            "excerpt": self.excerpt,
            "tags": list(self.note.tags),
            "created": self.note.created.isoformat(),
            "modified": self.note.modified.isoformat(),
            "score": self.score,
            "matched_tags": list(self.matched_tags),
        }


@dataclass
class SearchBatch:
    """One slice of a streamed search."""

    batch: int
    results: list[SearchResult]
    has_more: bool
    total_found: int
    total_processed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch": self.batch,
            "has_more": self.has_more,
            "total_found": self.total_found,
            "total_processed": self.total_processed,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class ActionableItem:
    source_note: str    # path of the note that contains the line
    content: str        # line with checkbox, strikethrough and tags removed
    tags: list[str]
    context: str        # previous, current and next line
    status: str = "open"
    priority: str | None = None
    linked_issue: str | None = None
    line: int = 0       # 1-based line number within the body

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_note": self.source_note,
            "content": self.content,
            "tags": self.tags,
            "context": self.context,
            "status": self.status,
            "priority": self.priority,
            "linked_issue": self.linked_issue,
            "line": self.line,
        }


@dataclass
class RelatedNote:
    path: str
    title: str
    relationship: str   # linked | tagged | similar
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "title": self.title,
            "relationship": self.relationship,
            "score": self.score,
        }
