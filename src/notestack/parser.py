"""Frontmatter, title, tag, link, issue-reference and actionable parser.

Each lexical rule is a module-level function so it can be tested alone.
Precedence, where rules overlap:

1. Frontmatter is split off first; every other rule sees only the body.
2. Title: frontmatter ``title`` > first ``# heading`` > cleaned filename.
3. Tags: frontmatter ``tags`` + inline ``#tag`` tokens.  A token made only of
   digits (``#42``) is an issue reference, never a tag.
4. Links: ``[[wikilinks]]`` + ``[label](path.md)`` markdown links.
5. Issue references: ``owner/repo#N``, ``repo-name#N`` or a standalone ``#N``.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from notestack.errors import NoteParseError
from notestack.note import ActionableItem, Note, NoteMetadata, coerce_datetime

logger = logging.getLogger(__name__)

# YAML front-matter block at the very start of the file
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)
# First top-level heading
_H1_RE = re.compile(r"^#[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
# Leading "2025-01-20-" on note filenames
_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-")
# [[Target]], [[Target|Alias]], [[Target#Heading]]
_WIKILINK_RE = re.compile(r"\[\[([^\]|#]+)(?:[|#][^\]]*)?\]\]")
# owner/repo#123 or repo-name#123
_ISSUE_FULL_RE = re.compile(r"([A-Za-z0-9_-]+[/-][A-Za-z0-9_-]+#\d+)")
# Standalone #123
_ISSUE_SHORT_RE = re.compile(r"(?:^|(?<=\s))#(\d+)(?=\s|$)")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_CHECKBOX_MARKERS = ("- [ ]", "- [x]", "- [X]")
# "urgent" as a whole word, not "non-urgent" or "urgently"
_URGENT_RE = re.compile(r"(?<![\w-])urgent(?![\w-])")
_LEADING_TASK_RE = re.compile(r"^\s*(?:[-*+]\s+)?(?:\[[ xX]\]\s*)?")
_STRIKE_RE = re.compile(r"~~(.+?)~~")

WORDS_PER_BYTE = 1 / 5


def _tag_pattern(prefix: str) -> re.Pattern[str]:
    # Not after a word char, a backtick, a slash or another prefix char, so URL
    # fragments, code spans and repo#12 references are skipped.
    guard = re.escape(prefix[-1]) if prefix else ""
    return re.compile(rf"(?<![\w`/{guard}]){re.escape(prefix)}([A-Za-z0-9_-]+)")


# ---------------------------------------------------------------------------
# Lexical rules
# ---------------------------------------------------------------------------


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML front-matter from body text.

    Returns ``(metadata_dict, body)``; ``metadata_dict`` is empty when there
    is no front-matter block or when the block is not a YAML mapping.
    """
    content = content.lstrip("\ufeff")
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        meta = yaml.safe_load(match.group(1)) or {}
        if not isinstance(meta, dict):
            raise NoteParseError(f"frontmatter is a {type(meta).__name__}, not a mapping")
    except (yaml.YAMLError, NoteParseError) as exc:
        logger.warning("Ignoring malformed frontmatter: %s", exc)
        meta = {}
    return {str(k): v for k, v in meta.items()}, content[match.end() :]


def title_from_filename(path: str) -> str:
    stem = PurePosixPath(path).stem or "Untitled"
    stem = _DATE_PREFIX_RE.sub("", stem)
    return " ".join(word[:1].upper() + word[1:] for word in stem.split("-"))


def parse_title(frontmatter: dict[str, Any], body: str, path: str) -> str:
    title = frontmatter.get("title")
    if title not in (None, ""):
        return str(title).strip()
    m = _H1_RE.search(_CODE_BLOCK_RE.sub("", body))
    if m:
        return m.group(1).strip()
    return title_from_filename(path)


def parse_tags(text: str, prefix: str = "#") -> list[str]:
    """Return all inline tags found in *text* (de-duped, ordered)."""
    seen: dict[str, None] = {}
    for m in _tag_pattern(prefix).finditer(text):
        tag = m.group(1)
        if not tag.isdigit():
            seen.setdefault(tag, None)
    return list(seen)


def frontmatter_tags(frontmatter: dict[str, Any], prefix: str = "#") -> list[str]:
    raw = frontmatter.get("tags") or []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raw = [raw]
    tags = (str(t).strip() for t in raw if t is not None)
    return list(dict.fromkeys(t[len(prefix):] if prefix and t.startswith(prefix) else t for t in tags if t))


def parse_wikilinks(text: str) -> list[str]:
    """Return all ``[[WikiLink]]`` targets found in *text* (de-duped, ordered)."""
    return list(dict.fromkeys(m.group(1).strip() for m in _WIKILINK_RE.finditer(text)))


def parse_links(text: str, extension: str = ".md") -> list[str]:
    """Wikilink targets followed by markdown links whose target ends in *extension*."""
    md_link_re = re.compile(rf"(?<!!)\[([^\]]+)\]\(([^)\s]+{re.escape(extension)})\)")
    links = parse_wikilinks(text) + [m.group(2) for m in md_link_re.finditer(text)]
    return list(dict.fromkeys(links))


def parse_issue_refs(text: str) -> list[str]:
    refs = [m.group(1) for m in _ISSUE_FULL_RE.finditer(text)]
    refs += [f"#{m.group(1)}" for m in _ISSUE_SHORT_RE.finditer(text)]
    return list(dict.fromkeys(refs))


def count_words(text: str) -> int:
    cleaned = re.sub(r"[#*_\[\]()]", "", _CODE_BLOCK_RE.sub("", text))
    return len([w for w in cleaned.split() if w])


def estimate_word_count(size_bytes: int) -> int:
    return int(size_bytes * WORDS_PER_BYTE)


def make_excerpt(text: str, max_length: int = 200) -> str:
    """First paragraph of *text* with code and inline decoration removed."""
    cleaned = _CODE_BLOCK_RE.sub("", text.replace("\r\n", "\n"))
    cleaned = re.sub(r"^#+\s", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"\*\*(.+?)\*\*", r"\1", cleaned)
    cleaned = re.sub(r"__(.+?)__", r"\1", cleaned)
    cleaned = re.sub(r"\*(.+?)\*", r"\1", cleaned)
    cleaned = re.sub(r"!?\[([^\]]+)\]\([^)]+\)", r"\1", cleaned)
    cleaned = re.sub(r"\[\[[^\]|]+\|([^\]]+)\]\]", r"\1", cleaned)
    cleaned = re.sub(r"\[\[([^\]]+)\]\]", r"\1", cleaned).strip()

    first = re.split(r"\n[ \t]*\n", cleaned, maxsplit=1)[0].strip()
    if len(first) <= max_length:
        return first
    return first[:max_length] + "..."


def priority_of(text: str) -> str | None:
    lower = text.lower()
    if "#high" in lower or "priority: high" in lower or _URGENT_RE.search(lower):
        return "high"
    if "#low" in lower or "priority: low" in lower:
        return "low"
    if "#medium" in lower or "priority: medium" in lower:
        return "medium"
    return None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class NoteParser:
    """Turns raw note text into :class:`Note`, :class:`NoteMetadata` and tasks."""

    def __init__(
        self,
        tag_prefix: str = "#",
        actionable_marker: str = "#actionable",
        note_extension: str = ".md",
    ) -> None:
        self.tag_prefix = tag_prefix
        self.actionable_marker = actionable_marker
        self.note_extension = note_extension
        self._tag_re = _tag_pattern(tag_prefix)
        self._marker_re = re.compile(re.escape(actionable_marker) + r"(?![\w-])")

    @property
    def actionable_tag(self) -> str:
        marker = self.actionable_marker
        return marker[len(self.tag_prefix):] if marker.startswith(self.tag_prefix) else marker

    def parse(self, path: str, content: str, created: datetime, modified: datetime) -> Note:
        frontmatter, body = parse_frontmatter(content)
        tags = frontmatter_tags(frontmatter, self.tag_prefix) + parse_tags(body, self.tag_prefix)
        return Note(
            path=path,
            title=parse_title(frontmatter, body, path),
            body=body.strip(),
            tags=list(dict.fromkeys(tags)),
            links=parse_links(body, self.note_extension),
            created=coerce_datetime(frontmatter.get("created")) or created,
            modified=coerce_datetime(frontmatter.get("modified")) or modified,
            frontmatter=frontmatter,
        )

    def to_metadata(self, note: Note, size_bytes: int | None = None) -> NoteMetadata:
        """Drop the body; word count is estimated when *size_bytes* is given."""
        if size_bytes is None:
            word_count = count_words(note.body)
        else:
            word_count = estimate_word_count(size_bytes)
        return NoteMetadata(
            path=note.path,
            title=note.title,
            tags=list(note.tags),
            links=list(note.links),
            created=note.created,
            modified=note.modified,
            frontmatter=dict(note.frontmatter),
            word_count=word_count,
            has_actionables=self.has_actionable_marker(note.body) or self.actionable_tag in note.tags,
            linked_issues=parse_issue_refs(note.body),
            linked_notes=list(note.links),
        )

    def has_actionable_marker(self, text: str) -> bool:
        return bool(self._marker_re.search(text)) or any(m in text for m in _CHECKBOX_MARKERS)

    def _strip_tags(self, text: str) -> str:
        return self._tag_re.sub(lambda m: m.group(0) if m.group(1).isdigit() else "", text)

    def clean_actionable(self, line: str) -> str:
        text = _LEADING_TASK_RE.sub("", line, count=1)
        text = _STRIKE_RE.sub(r"\1", text)
        text = self._strip_tags(text)
        return " ".join(text.split())

    def extract_actionables(self, note: Note) -> list[ActionableItem]:
        """One item per qualifying body line; fenced code is skipped."""
        items: list[ActionableItem] = []
        lines = note.body.split("\n")
        in_code_block = False
        for i, line in enumerate(lines):
            if _FENCE_RE.match(line):
                in_code_block = not in_code_block
                continue
            if in_code_block or not self.has_actionable_marker(line):
                continue

            done = "~~" in line or "[x]" in line or "[X]" in line
            refs = parse_issue_refs(line)
            items.append(
                ActionableItem(
                    source_note=note.path,
                    content=self.clean_actionable(line),
                    tags=parse_tags(line, self.tag_prefix),
                    context="\n".join(lines[max(0, i - 1) : i + 2]),
                    status="done" if done else "open",
                    priority=priority_of(line),
                    linked_issue=refs[0] if refs else None,
                    line=i + 1,
                )
            )
        return items


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


def read_text(path: Path) -> str:
    """Read *path* as UTF-8, replacing undecodable bytes instead of failing."""
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("Undecodable bytes in %s, parsing best-effort: %s", path, exc)
        return raw.decode("utf-8", errors="replace")


def file_stamps(stat: os.stat_result) -> tuple[datetime, datetime]:
    """``(created, modified)`` from a stat result; birth time where the OS has one."""
    born = getattr(stat, "st_birthtime", None) or min(stat.st_ctime, stat.st_mtime)
    return (
        datetime.fromtimestamp(born, tz=timezone.utc),
        datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )


def parse_note(path: Path, rel_path: str, parser: NoteParser | None = None) -> tuple[Note, os.stat_result]:
    """Read a note file and return the parsed :class:`Note` with its stat result."""
    parser = parser or NoteParser()
    stat = path.stat()
    content = read_text(path)
    created, modified = file_stamps(stat)
    return parser.parse(rel_path, content, created, modified), stat
