"""
codex/ranker.py -- Rank snapshot records against a typed query.

A record matches when the query is empty (show-all mode) or when its label,
compared case-insensitively, equals or starts with the query.  Results are
ordered by ``(score, category priority, label length)`` where score is 0 for
an exact match and 1 otherwise, then capped.

This module is pure: the same (query, snapshot) always yields the same list.
"""

from __future__ import annotations

from codex.models import CATEGORY_PRIORITY, EntityRecord, EntitySnapshot

DEFAULT_LIMIT = 20

SCORE_EXACT = 0
SCORE_PREFIX = 1


def match_score(query: str, label: str) -> int | None:
    """Return the score of *label* for *query*, or ``None`` if it does not match."""
    if not query:
        return SCORE_PREFIX
    needle = query.lower()
    hay = label.lower()
    if hay == needle:
        return SCORE_EXACT
    if hay.startswith(needle):
        return SCORE_PREFIX
    return None


def rank_key(score: int, record: EntityRecord) -> tuple[int, int, int]:
    return (score, CATEGORY_PRIORITY[record.category], len(record.label))


def rank_candidates(
    query: str,
    snapshot: EntitySnapshot,
    limit: int = DEFAULT_LIMIT,
) -> list[EntityRecord]:
    """Return the ranked, capped candidates for *query*.

    An empty result is a valid answer, not an error.
    """
    scored: list[tuple[tuple[int, int, int], EntityRecord]] = []
    for record in snapshot.iter_records():
        score = match_score(query, record.label)
        if score is None:
            continue
        scored.append((rank_key(score, record), record))

    # sort() is stable: equal keys keep snapshot order
    scored.sort(key=lambda pair: pair[0])
    return [record for _, record in scored[:limit]]
