"""Relation scoring: which notes are related to a reference note.

A candidate earns points for a direct link in either direction, for every
shared tag, and for every shared title word longer than three characters.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable, Protocol

from notestack.note import RelatedNote

LINK_SCORE = 50
SHARED_TAG_SCORE = 10
SHARED_TITLE_WORD_SCORE = 5
MIN_TITLE_WORD_LENGTH = 4


class Linkable(Protocol):
    path: str
    title: str
    tags: list[str]
    links: list[str]


def link_key(link: str, extension: str = ".md") -> str:
    """Normalise a link target: lower-case, ``/`` separated, extension dropped."""
    key = link.strip().replace("\\", "/").lower()
    if key.startswith("./"):
        key = key[2:]
    if key.endswith(extension):
        key = key[: -len(extension)]
    return key


def note_keys(path: str, title: str, extension: str = ".md") -> set[str]:
    """Every key a link may use to point at the note at *path*."""
    full = link_key(path, extension)
    return {full, PurePosixPath(full).name, title.strip().lower()}


def links_to(source: Linkable, target: Linkable) -> bool:
    keys = note_keys(target.path, target.title)
    for link in source.links:
        key = link_key(link)
        if key in keys or PurePosixPath(key).name in keys:
            return True
    return False


def _title_words(title: str) -> set[str]:
    return {w for w in title.lower().split() if len(w) >= MIN_TITLE_WORD_LENGTH}


def relation_score(reference: Linkable, candidate: Linkable) -> tuple[int, str]:
    """Return ``(score, relationship)`` for *candidate* against *reference*."""
    linked = links_to(reference, candidate) or links_to(candidate, reference)
    shared_tags = set(reference.tags) & set(candidate.tags)
    shared_words = _title_words(reference.title) & _title_words(candidate.title)

    score = (LINK_SCORE if linked else 0)
    score += len(shared_tags) * SHARED_TAG_SCORE
    score += len(shared_words) * SHARED_TITLE_WORD_SCORE

    if linked:
        relationship = "linked"
    elif shared_tags:
        relationship = "tagged"
    else:
        relationship = "similar"
    return score, relationship


def rank_related(reference: Linkable, pool: Iterable[Linkable], max_results: int = 5) -> list[RelatedNote]:
    """Top *max_results* candidates with a positive score, best first."""
    scored: list[RelatedNote] = []
    for candidate in pool:
        if candidate.path == reference.path:
            continue
        score, relationship = relation_score(reference, candidate)
        if score > 0:
            scored.append(RelatedNote(candidate.path, candidate.title, relationship, score))
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:max_results]
