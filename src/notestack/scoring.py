"""Ranking weights and scoring functions for search.

Three scores exist:

* ``score_metadata`` - tag-only searches, never touches note bodies.
* ``estimate_relevance`` - cheap pre-ordering of query candidates from metadata.
* ``score_note`` - the full score once a candidate's body has been loaded.

All of them add the same zone weight and recency term.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from notestack.note import Note, NoteMetadata
from notestack.parser import make_excerpt
from notestack.zones import Zone

CONFIDENCE_THRESHOLD = 25
RECENCY_WINDOW = timedelta(days=30)


@dataclass(frozen=True)
class ScoringWeights:
    exact_title_match: float = 200
    title_word_match: float = 50
    exact_tag_match: float = 20
    content_first_paragraph: float = 5
    content_match: float = 1
    recency_boost: float = 10
    estimate_title_contains: float = 100
    estimate_tag_contains: float = 50
    zone_boost: dict[Zone, float] = field(
        default_factory=lambda: {
            Zone.NOTES: 5,
            Zone.MAPS: 4,
            Zone.DAILY: 3,
            Zone.SCRATCHPAD: 2,
            Zone.INBOX: 1,
            Zone.ARCHIVE: 0,
        }
    )

    def zone_weight(self, zone: Zone | None) -> float:
        return self.zone_boost.get(zone, 0) if zone is not None else 0


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass
class Score:
    score: float
    matched_tags: list[str] = field(default_factory=list)
    #: The query appeared in the title, a tag or the body
    query_matched: bool = False


def recency(modified: datetime, now: datetime | None = None, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    """Linear decay from ``recency_boost`` for a note touched now to 0 after 30 days."""
    now = now or datetime.now(timezone.utc)
    age = max(0.0, (now - modified).total_seconds())
    return max(0.0, weights.recency_boost * (1 - age / RECENCY_WINDOW.total_seconds()))


def exact_tag_hits(requested: list[str] | None, tags: list[str]) -> list[str]:
    return [t for t in (requested or []) if t in tags]


def score_metadata(
    meta: NoteMetadata,
    zone: Zone | None,
    tags: list[str] | None = None,
    now: datetime | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Score:
    matched = exact_tag_hits(tags, meta.tags)
    total = len(matched) * weights.exact_tag_match
    total += weights.zone_weight(zone) + recency(meta.modified, now, weights)
    return Score(total, matched)


def title_matches(title: str, query: str) -> bool:
    return query.lower() in title.lower()


def tag_matches(tags: list[str], query: str) -> bool:
    q = query.lower()
    return any(q in t.lower() for t in tags)


def estimate_relevance(
    meta: NoteMetadata,
    zone: Zone | None,
    query: str,
    now: datetime | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    q = query.lower()
    title = meta.title.lower()
    total = weights.zone_weight(zone)
    if title == q:
        total += weights.exact_title_match
    if q in title:
        total += weights.estimate_title_contains
    if tag_matches(meta.tags, query):
        total += weights.estimate_tag_contains
    return total + recency(meta.modified, now, weights)


def first_paragraph(body: str) -> str:
    return body.replace("\r\n", "\n").split("\n\n", 1)[0]


def score_note(
    note: Note,
    zone: Zone | None,
    query: str,
    tags: list[str] | None = None,
    now: datetime | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Score:
    """Full relevance of a loaded note for *query*."""
    q = query.lower()
    title = note.title.lower()
    matched = exact_tag_hits(tags, note.tags)
    total = len(matched) * weights.exact_tag_match

    title_hit = q in title
    if title == q:
        total += weights.exact_title_match
    elif title_hit:
        title_words = title.split()
        word_hits = [w for w in dict.fromkeys(q.split()) if w in title_words]
        if word_hits:
            # Capped so a partial title never outranks an exact one
            total += min(
                len(word_hits) * weights.title_word_match,
                weights.exact_title_match - weights.title_word_match,
            )
        else:
            total += weights.title_word_match / 2

    body = note.body.lower()
    occurrences = body.count(q) if q else 0
    if occurrences:
        lead = first_paragraph(body).count(q)
        total += lead * weights.content_first_paragraph
        total += (occurrences - lead) * weights.content_match

    total += weights.zone_weight(zone) + recency(note.modified, now, weights)
    matched_query = title_hit or occurrences > 0 or tag_matches(note.tags, query)
    return Score(total, matched, matched_query)


def contextual_excerpt(body: str, query: str, context_length: int = 200) -> str:
    """Text around the first occurrence of *query*, else the note's lead paragraph."""
    idx = body.lower().find(query.lower()) if query else -1
    if idx == -1:
        return make_excerpt(body, context_length)

    half = context_length // 2
    start = max(0, idx - half)
    end = min(len(body), idx + len(query) + half)
    excerpt = body[start:end].strip()
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(body):
        excerpt = excerpt + "..."
    return excerpt
